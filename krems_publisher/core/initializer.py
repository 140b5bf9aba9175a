"""Repository initialization: clone the site into the vault."""

import logging
import sys
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Union

from krems_publisher.core.models import (
    CommandFailure,
    DirectoryNotEmptyError,
    FeedbackCallback,
    PathSafetyError,
    RepositoryInitError,
    no_feedback,
)
from krems_publisher.core.runner import Argument, CommandRunner, git
from krems_publisher.transforms.site_config import CONFIG_FILENAME, render_site_config, site_config_from_repository

logger = logging.getLogger(__name__)

TEMPLATE_REPOSITORY_URL = "https://github.com/mreider/krems-example"

# Files of the example site that belong to its owner, not to a seeded copy
TEMPLATE_BOILERPLATE_FILES = ("CNAME",)

GIT_NOT_EMPTY_MESSAGE = "already exists and is not an empty directory"


class InitMode(Enum):
    """How a new site repository is obtained."""

    # Clone the user's own repository (forked from the template on GitHub)
    DIRECT_CLONE = "direct"
    # Clone the example template and repoint it at the user's repository
    TEMPLATE_SEED = "template"


class RepositoryInitializer:
    """Clones a site repository into a directory below the storage root."""

    def __init__(
        self,
        runner: CommandRunner,
        storage_root: Path,
        template_url: str = TEMPLATE_REPOSITORY_URL,
        platform: Optional[str] = None,
    ):
        """Initialize RepositoryInitializer.

        Args:
            runner: CommandRunner used for every git and delete command
            storage_root: Vault root; clones run from here and deletes stay inside it
            template_url: Example repository cloned in template-seed mode
            platform: sys.platform identifier, selects the delete command
        """
        self.runner = runner
        self.storage_root = Path(storage_root)
        self.template_url = template_url
        self.platform = platform or sys.platform

    async def initialize(
        self,
        repository_url: str,
        target: Union[str, Path],
        mode: InitMode = InitMode.DIRECT_CLONE,
        feedback: Optional[FeedbackCallback] = None,
        **site_options: str,
    ) -> Path:
        """Clone a site repository into target.

        Args:
            repository_url: The user's site repository
            target: Destination, absolute or relative to the storage root
            mode: DIRECT_CLONE or TEMPLATE_SEED
            feedback: Optional callback receiving (message, level) progress notices
            **site_options: Extra site_config_from_repository() arguments,
                used in template-seed mode

        Returns:
            Absolute path of the cloned repository

        Raises:
            DirectoryNotEmptyError: target exists and is not an empty directory
            RepositoryInitError: A step failed; its stage attribute names which
        """
        notify = feedback or no_feedback
        path = self._absolute(target)
        self.check_target(path)

        if mode is InitMode.TEMPLATE_SEED:
            notify(f"Cloning example site from {self.template_url}...", "status")
            await self._clone(self.template_url, path)
            await self._repoint_remote(path, repository_url)
            notify("Pointed origin at your repository.", "status")
            self._remove_boilerplate(path)
            self._write_site_config(path, repository_url, site_options)
            notify(f"Generated {CONFIG_FILENAME}.", "status")
        else:
            notify(f"Cloning your repository from {repository_url}...", "status")
            await self._clone(repository_url, path)

        notify("Repository cloned successfully!", "success")
        return path

    async def reclone(
        self,
        repository_url: str,
        target: Union[str, Path],
        confirm: Callable[[str], bool],
        feedback: Optional[FeedbackCallback] = None,
    ) -> Path:
        """Delete target and clone a fresh shallow copy.

        Args:
            repository_url: The user's site repository
            target: Directory to wipe, absolute or relative to the storage root
            confirm: Called with a warning text; only a return value of True proceeds
            feedback: Optional callback receiving (message, level) progress notices

        Returns:
            Absolute path of the cloned repository

        Raises:
            RepositoryInitError: Not confirmed (stage 'confirm') or a step failed
            PathSafetyError: target is not inside the storage root
        """
        notify = feedback or no_feedback
        path = self._absolute(target)
        self.check_inside_root(path)

        warning = (
            f"This will permanently delete {path} and everything in it, "
            f"then clone {repository_url} again. Unpushed changes will be lost."
        )
        if confirm(warning) is not True:
            raise RepositoryInitError("confirm", "Re-clone cancelled; nothing was deleted.")

        if path.exists():
            notify(f"Deleting {path}...", "status")
            try:
                await self.runner.run(self._delete_command(path), cwd=self.storage_root)
            except CommandFailure as e:
                raise RepositoryInitError("delete", f"Failed to delete {path}: {e.detail}") from e

        notify(f"Cloning your repository from {repository_url}...", "status")
        await self._clone(repository_url, path, "--depth", "1")
        notify("Repository cloned successfully!", "success")
        return path

    def check_target(self, path: Path) -> None:
        """Allow only a missing path or an empty directory.

        Raises:
            DirectoryNotEmptyError: path is a file or a non-empty directory
        """
        if not path.exists():
            return
        if path.is_dir() and not any(path.iterdir()):
            return
        raise DirectoryNotEmptyError(path)

    def check_inside_root(self, path: Path) -> None:
        """Raises PathSafetyError unless path resolves strictly below the storage root."""
        root = self.storage_root.resolve()
        resolved = Path(path).resolve()
        if resolved == root or root not in resolved.parents:
            raise PathSafetyError(resolved, root)

    def _absolute(self, target: Union[str, Path]) -> Path:
        return self.storage_root / target

    def _delete_command(self, path: Path) -> List[Argument]:
        if self.platform == "win32":
            return ["cmd", "/c", "rmdir", "/s", "/q", path]
        return ["rm", "-rf", path]

    async def _clone(self, url: str, path: Path, *options: str) -> None:
        try:
            await self.runner.run(git("clone", *options, url, path), cwd=self.storage_root)
        except CommandFailure as e:
            if GIT_NOT_EMPTY_MESSAGE in e.detail:
                raise DirectoryNotEmptyError(path) from e
            raise RepositoryInitError("clone", f"Cloning failed: {e.detail}") from e

    async def _repoint_remote(self, path: Path, repository_url: str) -> None:
        try:
            await self.runner.run(git("remote", "set-url", "origin", repository_url), cwd=path)
        except CommandFailure as e:
            raise RepositoryInitError("remote", f"Failed to set remote URL: {e.detail}") from e

    def _remove_boilerplate(self, path: Path) -> None:
        for name in TEMPLATE_BOILERPLATE_FILES:
            boilerplate = path / name
            if not boilerplate.exists():
                continue
            try:
                boilerplate.unlink()
            except OSError as e:
                raise RepositoryInitError("cleanup", f"Failed to remove {boilerplate}: {e}") from e
            logger.info("Removed template file %s", boilerplate)

    def _write_site_config(self, path: Path, repository_url: str, site_options: dict) -> None:
        try:
            config = site_config_from_repository(repository_url, **site_options)
        except ValueError as e:
            raise RepositoryInitError("config", str(e)) from e
        try:
            (path / CONFIG_FILENAME).write_text(render_site_config(config), encoding='utf-8')
        except OSError as e:
            raise RepositoryInitError("config", f"Failed to write {CONFIG_FILENAME}: {e}") from e

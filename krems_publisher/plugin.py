"""Plugin facade wiring settings and the orchestration components.

Every action validates settings first, runs one component operation and
returns the notices it produced. Failures become error notices, so no
exception reaches the host.
"""

import logging
from pathlib import Path
from typing import Callable, List, Optional

import httpx

from krems_publisher.core.initializer import InitMode, RepositoryInitializer
from krems_publisher.core.models import KremsError, Notice, PreviewError, PublishResult
from krems_publisher.core.preview import OutputCallback, PreviewController, PreviewState
from krems_publisher.core.provisioner import BinaryProvisioner
from krems_publisher.core.publish import PublishWorkflow
from krems_publisher.core.runner import CommandRunner
from krems_publisher.core.settings import Settings, SettingsStore

logger = logging.getLogger(__name__)

SETTINGS_FILENAME = "data.yaml"
PLUGIN_ID = "krems-publisher"

ConfirmCallback = Callable[[str], bool]

DOWNLOAD_PROMPT = (
    "To preview your site locally, this will download the Krems binary "
    "(if not already present) and set executable permissions. This step is for "
    "local preview and not strictly necessary for publishing to GitHub. "
    "Is it okay to proceed?"
)


class NoticeLog:
    """Collects notices and forwards them to an optional listener."""

    def __init__(self, listener: Optional[Callable[[Notice], None]] = None):
        self.notices: List[Notice] = []
        self.listener = listener

    def __call__(self, message: str, level: str) -> None:
        notice = Notice(message, level)
        self.notices.append(notice)
        if self.listener is not None:
            self.listener(notice)

    def fail(self, error: Exception) -> List[Notice]:
        self(str(error), "error")
        return self.notices


class KremsPlugin:
    """Clone, preview and publish a krems site stored in a vault."""

    def __init__(
        self,
        storage_root: Path,
        store: SettingsStore,
        runner: CommandRunner,
        provisioner: BinaryProvisioner,
        initializer: RepositoryInitializer,
        preview: PreviewController,
        workflow: PublishWorkflow,
    ):
        self.storage_root = Path(storage_root)
        self.store = store
        self.runner = runner
        self.provisioner = provisioner
        self.initializer = initializer
        self.preview = preview
        self.workflow = workflow

    @property
    def settings(self) -> Settings:
        return self.store.settings

    @property
    def site_dir(self) -> Path:
        return self.storage_root / self.settings.local_path

    def load(self) -> Settings:
        settings = self.store.load()
        logger.info("Krems Publisher loaded.")
        return settings

    def unload(self) -> None:
        """Kill any running preview server."""
        self.preview.shutdown()
        logger.info("Krems Publisher unloaded.")

    async def clone_repository(
        self,
        fresh: bool = False,
        confirm: Optional[ConfirmCallback] = None,
        listener: Optional[Callable[[Notice], None]] = None,
    ) -> List[Notice]:
        """Clone the configured repository into the local site directory.

        Args:
            fresh: Wipe the directory and re-clone; requires confirm
            confirm: Asked before anything is deleted
            listener: Receives each notice as it is produced
        """
        log = NoticeLog(listener)
        settings = self.settings
        try:
            settings.require_repository()
            if fresh:
                if confirm is None:
                    raise KremsError("Re-cloning requires an explicit confirmation.")
                await self.initializer.reclone(
                    settings.repository_url, settings.local_path, confirm, feedback=log
                )
            else:
                await self.initializer.initialize(
                    settings.repository_url,
                    settings.local_path,
                    mode=self._init_mode(),
                    feedback=log,
                    alternative_css_dir=settings.alternative_css_dir,
                    alternative_js_dir=settings.alternative_js_dir,
                    favicon=settings.alternative_favicon,
                )
        except KremsError as e:
            logger.error("Cloning error: %s", e)
            return log.fail(e)
        return log.notices

    async def start_preview(
        self,
        confirm: Optional[ConfirmCallback] = None,
        on_output: Optional[OutputCallback] = None,
        listener: Optional[Callable[[Notice], None]] = None,
    ) -> List[Notice]:
        """Start the local preview server.

        Args:
            confirm: Asked before the binary may be downloaded; declining cancels
            on_output: Receives (line, stream) for each line the server prints
            listener: Receives each notice as it is produced
        """
        log = NoticeLog(listener)
        settings = self.settings
        try:
            settings.require_local_path()
            if self.preview.state is not PreviewState.STOPPED:
                raise PreviewError(f"Krems server is already {self.preview.state.value}.")
            if confirm is not None and not confirm(DOWNLOAD_PROMPT):
                log("Local preview cancelled by user.", "status")
                return log.notices
            await self.preview.start(self.site_dir, settings.port_number, on_output=on_output, feedback=log)
            self._record_binary_path(log)
        except KremsError as e:
            logger.error("Error starting Krems: %s", e)
            return log.fail(e)
        log(f"Krems server starting on port {settings.port_number}.", "success")
        return log.notices

    async def stop_preview(self, listener: Optional[Callable[[Notice], None]] = None) -> List[Notice]:
        log = NoticeLog(listener)
        local_dir = self.site_dir if self.settings.local_path else None
        await self.preview.stop(local_dir, feedback=log)
        return log.notices

    async def publish(
        self,
        message: Optional[str] = None,
        listener: Optional[Callable[[Notice], None]] = None,
    ) -> List[Notice]:
        """Add, commit and push the local site directory."""
        log = NoticeLog(listener)
        settings = self.settings
        try:
            settings.require_repository()
            result: PublishResult = await self.workflow.publish(
                self.site_dir,
                settings.repository_url,
                message=message,
                token=settings.token,
                author_name=settings.author_name,
                author_email=settings.author_email,
                feedback=log,
            )
        except KremsError as e:
            logger.error("Push error: %s", e)
            return log.fail(e)
        logger.info("Published %s (committed=%s)", settings.repository_url, result.committed)
        return log.notices

    def _init_mode(self) -> InitMode:
        try:
            return InitMode(self.settings.init_mode)
        except ValueError:
            raise KremsError(f"Unknown init mode: {self.settings.init_mode}") from None

    def _record_binary_path(self, log: NoticeLog) -> None:
        relative = self.provisioner.relative_path.as_posix()
        if self.settings.binary_path == relative:
            return
        try:
            self.store.update(binary_path=relative)
        except OSError as e:
            logger.error("Failed to save binary path: %s", e)
            log(f"Krems started, but saving settings failed: {e}", "error")


def create_plugin_from_config(
    storage_root: Path,
    settings_path: Optional[Path] = None,
    client: Optional[httpx.AsyncClient] = None,
    platform: Optional[str] = None,
) -> KremsPlugin:
    """Build a KremsPlugin with its settings loaded.

    Args:
        storage_root: Vault root directory
        settings_path: Settings file (default: <root>/.obsidian/plugins/krems-publisher/data.yaml)
        client: httpx client for the binary download
        platform: sys.platform identifier override

    Returns:
        A loaded KremsPlugin
    """
    root = Path(storage_root)
    if settings_path is None:
        settings_path = root / ".obsidian" / "plugins" / PLUGIN_ID / SETTINGS_FILENAME

    runner = CommandRunner()
    provisioner = BinaryProvisioner(root, plugin_id=PLUGIN_ID, platform=platform, client=client)
    plugin = KremsPlugin(
        storage_root=root,
        store=SettingsStore(settings_path),
        runner=runner,
        provisioner=provisioner,
        initializer=RepositoryInitializer(runner, root, platform=platform),
        preview=PreviewController(provisioner, runner),
        workflow=PublishWorkflow(runner),
    )
    plugin.load()
    return plugin

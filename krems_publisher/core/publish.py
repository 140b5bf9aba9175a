"""Publish workflow: add, commit and push the site repository."""

import logging
from pathlib import Path
from typing import Dict, Optional, Union

from krems_publisher.core.models import (
    CommandFailure,
    CommandResult,
    FeedbackCallback,
    PublishError,
    PublishResult,
    Secret,
    no_feedback,
)
from krems_publisher.core.runner import CommandRunner, git
from krems_publisher.core.settings import DEFAULT_AUTHOR_EMAIL, DEFAULT_AUTHOR_NAME

logger = logging.getLogger(__name__)

DEFAULT_COMMIT_MESSAGE = "latest site version"
DEFAULT_BRANCH = "main"
HTTPS_PREFIX = "https://"

# Matched against git's output; git has no dedicated exit code for this case
NOTHING_TO_COMMIT = "nothing to commit"


def commit_environment(author_name: Optional[str], author_email: Optional[str]) -> Dict[str, str]:
    """Author and committer identity for `git commit`, with defaults."""
    name = author_name or DEFAULT_AUTHOR_NAME
    email = author_email or DEFAULT_AUTHOR_EMAIL
    return {
        'GIT_AUTHOR_NAME': name,
        'GIT_AUTHOR_EMAIL': email,
        'GIT_COMMITTER_NAME': name,
        'GIT_COMMITTER_EMAIL': email,
    }


def authenticated_url(repository_url: str, token: Secret) -> Optional[Secret]:
    """Embed token in an https repository URL.

    Returns:
        The URL wrapped in a Secret, or None when there is no token or the
        URL does not use https
    """
    if not token or not repository_url.startswith(HTTPS_PREFIX):
        return None
    rest = repository_url[len(HTTPS_PREFIX):]
    return Secret(f"{HTTPS_PREFIX}{token.get_secret_value()}@{rest}")


def is_nothing_to_commit(failure: CommandFailure) -> bool:
    return NOTHING_TO_COMMIT in failure.stdout or NOTHING_TO_COMMIT in failure.stderr


class PublishWorkflow:
    """Stages, commits and pushes a local site repository.

    Each step must succeed before the next one runs. The only tolerated
    failure is a commit with nothing to commit.
    """

    def __init__(self, runner: CommandRunner):
        self.runner = runner

    async def publish(
        self,
        local_dir: Union[str, Path],
        repository_url: str,
        message: Optional[str] = None,
        token: Optional[Secret] = None,
        author_name: Optional[str] = None,
        author_email: Optional[str] = None,
        feedback: Optional[FeedbackCallback] = None,
    ) -> PublishResult:
        """Publish local changes to the remote repository.

        Args:
            local_dir: The cloned site repository
            repository_url: Remote URL; used for the authenticated push
            message: Commit message (default: "latest site version")
            token: Personal access token for https remotes
            author_name: Commit author (default: "Krems Obsidian Plugin")
            author_email: Commit email (default: "krems-plugin@example.com")
            feedback: Optional callback receiving (message, level) notices

        Returns:
            PublishResult; stderr of successful steps is in warnings

        Raises:
            PublishError: A step failed; its stage attribute names which
        """
        notify = feedback or no_feedback
        result = PublishResult()
        commit_message = (message or "").strip() or DEFAULT_COMMIT_MESSAGE

        notify("Adding files (git add .)...", "status")
        output = await self._step("add", git("add", "."), local_dir)
        self._warn(result, notify, "Git add", output)

        notify(f'Committing with message: "{commit_message}"...', "status")
        try:
            output = await self.runner.run(
                git("commit", "-m", commit_message),
                cwd=local_dir,
                env=commit_environment(author_name, author_email),
            )
        except CommandFailure as e:
            if not is_nothing_to_commit(e):
                raise PublishError("commit", f"Commit failed: {e.detail}") from e
            logger.info("Nothing to commit in %s", local_dir)
            notify("No changes to commit. Proceeding to push...", "status")
        else:
            result.committed = True
            self._warn(result, notify, "Git commit", output)

        push_url = authenticated_url(repository_url, token or Secret(""))
        if push_url is not None:
            branch = await self._current_branch(local_dir, result, notify)
            result.branch = branch
            result.authenticated = True
            notify(f"Pushing to {repository_url} (authenticated)...", "status")
            output = await self._step("push", git("push", push_url, branch), local_dir)
        else:
            notify(
                f"Pushing to {repository_url} (unauthenticated, ensure credential helper or SSH is set up)...",
                "status",
            )
            output = await self._step("push", git("push"), local_dir)

        if output.stderr:
            result.warnings.append(output.stderr)
            notify(f"Push successful with warnings: {output.stderr}", "success")
        else:
            notify("Site pushed successfully!", "success")
        return result

    async def _step(self, stage: str, args, local_dir) -> CommandResult:
        try:
            return await self.runner.run(args, cwd=local_dir)
        except CommandFailure as e:
            raise PublishError(stage, f"{stage.capitalize()} failed: {e.message}\nStderr: {e.stderr}") from e

    async def _current_branch(self, local_dir, result: PublishResult, notify: FeedbackCallback) -> str:
        try:
            output = await self.runner.run(git("rev-parse", "--abbrev-ref", "HEAD"), cwd=local_dir)
        except CommandFailure as e:
            warning = f"Could not determine current branch (using '{DEFAULT_BRANCH}'). Details: {e.detail}"
            logger.warning(warning)
            result.warnings.append(warning)
            notify(f"Warning: {warning}", "status")
            return DEFAULT_BRANCH
        self._warn(result, notify, "Git branch check", output)
        return output.stdout or DEFAULT_BRANCH

    def _warn(self, result: PublishResult, notify: FeedbackCallback, label: str, output: CommandResult) -> None:
        if output.stderr:
            result.warnings.append(output.stderr)
            notify(f"{label} (warnings): {output.stderr}", "status")

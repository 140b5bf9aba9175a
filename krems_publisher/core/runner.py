"""Command runner for invoking git and the preview binary."""

import asyncio
import logging
import os
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Union

from krems_publisher.core.models import CommandFailure, CommandResult, Secret

logger = logging.getLogger(__name__)

Argument = Union[str, Path, Secret]


def display_command(args: Sequence[Argument]) -> str:
    """Render an argument vector for logs and error messages.

    Secret arguments are masked.
    """
    return " ".join(str(arg) for arg in args)


def redact(text: str, args: Sequence[Argument]) -> str:
    """Remove the raw value of any Secret argument from text."""
    for arg in args:
        if isinstance(arg, Secret) and arg:
            text = text.replace(arg.get_secret_value(), Secret.MASK)
    return text


class CommandRunner:
    """Runs external programs from an argument vector.

    Never goes through a shell: each argument reaches the program as-is.
    """

    def __init__(self, base_env: Optional[Mapping[str, str]] = None):
        """Initialize CommandRunner.

        Args:
            base_env: Environment inherited by every command (default: os.environ)
        """
        self.base_env = base_env

    async def run(
        self,
        args: Sequence[Argument],
        cwd: Union[str, Path],
        env: Optional[Dict[str, str]] = None,
    ) -> CommandResult:
        """Run a command to completion.

        Args:
            args: Program and arguments; Secret values are unwrapped only here
            cwd: Working directory
            env: Variables merged over the inherited environment

        Returns:
            CommandResult with stripped stdout and stderr

        Raises:
            CommandFailure: The command exited non-zero or could not be launched
        """
        display = display_command(args)
        argv = [
            arg.get_secret_value() if isinstance(arg, Secret) else str(arg)
            for arg in args
        ]
        logger.debug("Running: %s (cwd=%s)", display, cwd)

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                cwd=str(cwd),
                env=self._merge_env(env),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error("Could not launch %s: %s", display, e)
            raise CommandFailure(f"Command failed: {display}. Error: {e}") from e

        stdout_bytes, stderr_bytes = await process.communicate()
        stdout = redact(stdout_bytes.decode("utf-8", errors="replace").strip(), args)
        stderr = redact(stderr_bytes.decode("utf-8", errors="replace").strip(), args)

        if process.returncode != 0:
            logger.error(
                "Command failed: %s (exit %s)\nStdout: %s\nStderr: %s",
                display, process.returncode, stdout, stderr,
            )
            raise CommandFailure(
                f"Command failed: {display}. Exit code {process.returncode}",
                stdout=stdout,
                stderr=stderr,
                returncode=process.returncode,
            )

        if stderr:
            logger.warning("Command successful but stderr present: %s\nStderr: %s", display, stderr)

        return CommandResult(stdout=stdout, stderr=stderr)

    def _merge_env(self, overrides: Optional[Dict[str, str]]) -> Optional[Dict[str, str]]:
        base = self.base_env if self.base_env is not None else os.environ
        if not overrides and self.base_env is None:
            return None
        merged: Dict[str, str] = dict(base)
        merged.update(overrides or {})
        return merged


def git(*args: Argument) -> List[Argument]:
    """Build a git argument vector."""
    return ["git", *args]

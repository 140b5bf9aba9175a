"""Local preview server lifecycle."""

import asyncio
import logging
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Union

from krems_publisher.core.models import (
    CommandFailure,
    FeedbackCallback,
    KremsError,
    PreviewError,
    no_feedback,
)
from krems_publisher.core.provisioner import BinaryProvisioner
from krems_publisher.core.runner import CommandRunner

logger = logging.getLogger(__name__)

OutputCallback = Callable[[str, str], None]


class PreviewState(Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    FAILED = "failed"


class PreviewController:
    """Owns the single krems preview subprocess.

    Transitions: STOPPED -> STARTING -> RUNNING -> STOPPED, and
    STARTING -> FAILED -> STOPPED when provisioning or spawning fails.
    Only RUNNING holds a live process. Leaving RUNNING is driven by the
    process exit, never by stop() itself.
    """

    def __init__(self, provisioner: BinaryProvisioner, runner: CommandRunner):
        self.provisioner = provisioner
        self.runner = runner
        self.state = PreviewState.STOPPED
        self.local_dir: Optional[Path] = None
        self._process: Optional[asyncio.subprocess.Process] = None
        self._watcher: Optional["asyncio.Task[int]"] = None

    @property
    def is_running(self) -> bool:
        return self.state is PreviewState.RUNNING

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process else None

    async def start(
        self,
        local_dir: Union[str, Path],
        port: int,
        on_output: Optional[OutputCallback] = None,
        feedback: Optional[FeedbackCallback] = None,
    ) -> None:
        """Provision the binary and spawn `krems --run --port <port>`.

        Returns as soon as the process is spawned; no readiness check is made.

        Args:
            local_dir: Site directory, used as the working directory
            port: Port for the preview server
            on_output: Called with (line, 'stdout' | 'stderr') for each output line
            feedback: Optional callback receiving (message, level) notices,
                including the exit notice

        Raises:
            PreviewError: A preview is already starting or running, or the spawn failed
            ProvisioningError: The binary could not be installed
        """
        if self.state is not PreviewState.STOPPED:
            raise PreviewError(f"Krems server is already {self.state.value}.")

        notify = feedback or no_feedback
        self.state = PreviewState.STARTING
        try:
            binary = await self.provisioner.ensure_binary(notify)
            notify(f"Starting Krems server on port {port}...", "status")
            process = await asyncio.create_subprocess_exec(
                str(binary), "--run", "--port", str(port),
                cwd=str(local_dir),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except KremsError:
            self._fail()
            raise
        except OSError as e:
            self._fail()
            logger.error("Failed to start Krems process: %s", e)
            raise PreviewError(f"Failed to start Krems: {e}") from e

        self.local_dir = Path(local_dir)
        self._process = process
        self.state = PreviewState.RUNNING
        logger.info("Krems server started (pid %s) on port %s", process.pid, port)
        self._watcher = asyncio.ensure_future(self._watch(process, on_output, notify))

    async def stop(
        self,
        local_dir: Union[str, Path, None] = None,
        feedback: Optional[FeedbackCallback] = None,
    ) -> Optional[int]:
        """Terminate the preview server, then run `krems --clean`.

        Stopping an idle controller is a no-op apart from the cleanup pass.

        Args:
            local_dir: Site directory to clean (default: the last started one)
            feedback: Optional callback receiving (message, level) notices

        Returns:
            Exit code of the terminated process, or None if nothing was running
        """
        notify = feedback or no_feedback
        code = None

        if self.state is PreviewState.RUNNING and self._process is not None:
            notify("Stopping Krems server...", "status")
            try:
                self._process.terminate()
            except ProcessLookupError:
                pass
            code = await self.wait()
        else:
            notify("Krems server is not running.", "status")
            if self._process is None and self.state is not PreviewState.STARTING:
                self.state = PreviewState.STOPPED

        await self.clean(local_dir or self.local_dir, notify)
        return code

    async def wait(self) -> Optional[int]:
        """Wait for the running server to exit and return its exit code."""
        if self._watcher is None:
            return None
        return await asyncio.shield(self._watcher)

    async def clean(self, local_dir: Union[str, Path, None], feedback: Optional[FeedbackCallback] = None) -> bool:
        """Best-effort `krems --clean` in local_dir.

        Failures are reported through feedback and the log, never raised.

        Returns:
            True if the cleanup command succeeded
        """
        notify = feedback or no_feedback
        if local_dir is None:
            return False
        try:
            binary = self.provisioner.binary_path
        except KremsError as e:
            notify(f"Cleanup skipped: {e}", "error")
            return False
        if not binary.exists():
            return False

        notify("Cleaning up .tmp directory...", "status")
        try:
            await self.runner.run([binary, "--clean"], cwd=local_dir)
        except CommandFailure as e:
            logger.error("Krems clean error: %s", e.detail)
            notify(f"Cleanup failed: {e.detail}", "error")
            return False
        notify("Cleanup successful.", "status")
        return True

    def shutdown(self) -> None:
        """Force-kill a live server. Safe to call at any time."""
        process = self._process
        if process is not None and process.returncode is None:
            logger.info("Killing active Krems process (pid %s).", process.pid)
            try:
                process.kill()
            except ProcessLookupError:
                pass
        self._process = None
        self.state = PreviewState.STOPPED

    def _fail(self) -> None:
        self.state = PreviewState.FAILED
        self._process = None
        self.state = PreviewState.STOPPED

    async def _watch(
        self,
        process: asyncio.subprocess.Process,
        on_output: Optional[OutputCallback],
        notify: FeedbackCallback,
    ) -> int:
        try:
            await asyncio.gather(
                _pump(process.stdout, "stdout", on_output),
                _pump(process.stderr, "stderr", on_output),
            )
            code = await process.wait()
        finally:
            if process.returncode is None:
                try:
                    process.kill()
                except ProcessLookupError:
                    pass
            if self._process is process:
                self._process = None
                self.state = PreviewState.STOPPED
        logger.info("Krems server exited with code %s", code)
        notify(f"Krems server exited with code {code}.", "status" if code == 0 else "error")
        return code


async def _pump(
    stream: Optional[asyncio.StreamReader],
    name: str,
    on_output: Optional[OutputCallback],
) -> None:
    if stream is None:
        return
    async for raw in stream:
        line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
        if on_output is None:
            continue
        try:
            on_output(line, name)
        except Exception:
            logger.exception("Krems %s handler failed on line %r", name, line)

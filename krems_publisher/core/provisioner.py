"""Download and install the krems preview binary."""

import logging
import os
import sys
from pathlib import Path
from typing import Optional

import httpx

from krems_publisher.core.models import FeedbackCallback, ProvisioningError, UnsupportedPlatformError, no_feedback

logger = logging.getLogger(__name__)

RELEASE_URL = "https://github.com/mreider/krems/releases/latest/download/{asset}"

PLATFORM_ASSETS = {
    "win32": "krems-windows-amd64.exe",
    "darwin": "krems-darwin-amd64",
    "linux": "krems-linux-amd64",
}

EXECUTABLE_MODE = 0o755


def asset_name(platform: str) -> str:
    """Return the release asset for a sys.platform identifier.

    Raises:
        UnsupportedPlatformError: No asset is published for this platform
    """
    try:
        return PLATFORM_ASSETS[platform]
    except KeyError:
        raise UnsupportedPlatformError(
            f"Unsupported operating system for Krems download: {platform}"
        ) from None


class BinaryProvisioner:
    """Ensures the platform-specific krems executable exists on disk."""

    def __init__(
        self,
        storage_root: Path,
        config_dir: str = ".obsidian",
        plugin_id: str = "krems-publisher",
        platform: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize BinaryProvisioner.

        Args:
            storage_root: Vault root; the binary lives in a plugin-private dir below it
            config_dir: Name of the vault's configuration directory
            plugin_id: Plugin directory name under <config_dir>/plugins
            platform: sys.platform identifier (default: the running interpreter's)
            client: httpx client to download with (default: a fresh one per download)
        """
        self.storage_root = Path(storage_root)
        self.install_dir = Path(config_dir) / "plugins" / plugin_id / "bin"
        self.platform = platform or sys.platform
        self.client = client

    @property
    def is_windows(self) -> bool:
        return self.platform == "win32"

    @property
    def relative_path(self) -> Path:
        """Install location relative to the storage root."""
        return self.install_dir / asset_name(self.platform)

    @property
    def binary_path(self) -> Path:
        """Absolute install location."""
        return self.storage_root / self.relative_path

    async def ensure_binary(self, feedback: Optional[FeedbackCallback] = None) -> Path:
        """Return the local binary, downloading it first if needed.

        Args:
            feedback: Optional callback receiving (message, level) progress notices

        Returns:
            Absolute path to the executable

        Raises:
            UnsupportedPlatformError: Unknown platform, raised before any I/O
            ProvisioningError: Download or permission change failed
        """
        notify = feedback or no_feedback
        asset = asset_name(self.platform)
        target = self.binary_path

        if target.exists():
            notify("Krems binary already downloaded.", "status")
            self._make_executable(target, "Found Krems binary, but failed to set executable permission")
            return target

        notify(f"Downloading Krems for {self.platform}...", "status")
        target.parent.mkdir(parents=True, exist_ok=True)
        await self._download(RELEASE_URL.format(asset=asset), target)
        notify("Krems downloaded successfully.", "status")

        if not self.is_windows:
            notify("Setting executable permissions...", "status")
        self._make_executable(target, "Failed to set executable permission on downloaded Krems")
        return target

    async def _download(self, url: str, target: Path) -> None:
        client = self.client or httpx.AsyncClient()
        partial = target.with_name(target.name + ".part")
        logger.info("Downloading %s to %s", url, target)
        try:
            async with client.stream("GET", url, follow_redirects=True) as response:
                if response.status_code != 200:
                    raise ProvisioningError(
                        f"Failed to download Krems: Server responded with {response.status_code}"
                    )
                with open(partial, "wb") as f:
                    async for chunk in response.aiter_bytes():
                        f.write(chunk)
            os.replace(partial, target)
        except httpx.HTTPError as e:
            logger.error("Krems download error: %s", e)
            raise ProvisioningError(f"Failed to download Krems: {e}") from e
        except OSError as e:
            logger.error("Krems download error: %s", e)
            raise ProvisioningError(f"Failed to save Krems to {target}: {e}") from e
        finally:
            # Only a complete download may ever appear at target
            if partial.exists():
                partial.unlink()
            if self.client is None:
                await client.aclose()

    def _make_executable(self, target: Path, message: str) -> None:
        if self.is_windows:
            return
        try:
            os.chmod(target, EXECUTABLE_MODE)
        except OSError as e:
            logger.error("%s: %s", message, e)
            raise ProvisioningError(f"{message}. Please check manually.") from e

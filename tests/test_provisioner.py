"""Tests for BinaryProvisioner."""

import asyncio
import os
import stat
import sys

import httpx
import pytest

from krems_publisher.core.models import ProvisioningError, UnsupportedPlatformError
from krems_publisher.core.provisioner import BinaryProvisioner, asset_name

BINARY_BYTES = b"\x7fELF fake krems binary"


class RecordingTransport:
    """httpx handler that records requests and serves a fixed response."""

    def __init__(self, status_code: int = 200, content: bytes = BINARY_BYTES, error: Exception = None):
        self.requests = []
        self.status_code = status_code
        self.content = content
        self.error = error

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status_code, content=self.content)


def provision(provisioner_kwargs, transport, feedback=None):
    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(transport)) as client:
            provisioner = BinaryProvisioner(client=client, **provisioner_kwargs)
            return await provisioner.ensure_binary(feedback)
    return asyncio.run(go())


class TestAssetName:
    """Tests for asset_name()."""

    @pytest.mark.parametrize("platform,expected", [
        ("win32", "krems-windows-amd64.exe"),
        ("darwin", "krems-darwin-amd64"),
        ("linux", "krems-linux-amd64"),
    ])
    def test_known_platforms(self, platform, expected):
        assert asset_name(platform) == expected

    def test_unknown_platform(self):
        with pytest.raises(UnsupportedPlatformError, match="Unsupported operating system"):
            asset_name("sunos5")


class TestBinaryProvisioner:
    """Tests for BinaryProvisioner.ensure_binary()."""

    def test_install_path_is_plugin_private(self, tmp_path):
        provisioner = BinaryProvisioner(tmp_path, platform="linux")
        expected = tmp_path / ".obsidian" / "plugins" / "krems-publisher" / "bin" / "krems-linux-amd64"
        assert provisioner.binary_path == expected
        assert provisioner.relative_path.as_posix() == ".obsidian/plugins/krems-publisher/bin/krems-linux-amd64"

    def test_downloads_when_missing(self, tmp_path):
        transport = RecordingTransport()
        path = provision({"storage_root": tmp_path, "platform": "linux"}, transport)

        assert path.read_bytes() == BINARY_BYTES
        assert len(transport.requests) == 1
        assert str(transport.requests[0].url) == (
            "https://github.com/mreider/krems/releases/latest/download/krems-linux-amd64"
        )

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
    def test_sets_executable_bit_after_download(self, tmp_path):
        path = provision({"storage_root": tmp_path, "platform": "darwin"}, RecordingTransport())
        assert stat.S_IMODE(path.stat().st_mode) == 0o755

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
    def test_windows_binary_is_not_chmodded(self, tmp_path):
        path = provision({"storage_root": tmp_path, "platform": "win32"}, RecordingTransport())
        assert path.name == "krems-windows-amd64.exe"
        assert stat.S_IMODE(path.stat().st_mode) & 0o111 == 0

    def test_existing_binary_is_not_downloaded_again(self, tmp_path):
        target = BinaryProvisioner(tmp_path, platform="linux").binary_path
        target.parent.mkdir(parents=True)
        target.write_bytes(b"already here")

        transport = RecordingTransport()
        notices = []
        path = provision(
            {"storage_root": tmp_path, "platform": "linux"},
            transport,
            feedback=lambda message, level: notices.append(message),
        )

        assert path == target
        assert path.read_bytes() == b"already here"
        assert transport.requests == []
        assert "Krems binary already downloaded." in notices

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
    def test_existing_binary_gets_executable_bit_back(self, tmp_path):
        target = BinaryProvisioner(tmp_path, platform="linux").binary_path
        target.parent.mkdir(parents=True)
        target.write_bytes(b"already here")
        os.chmod(target, 0o644)

        provision({"storage_root": tmp_path, "platform": "linux"}, RecordingTransport())

        assert stat.S_IMODE(target.stat().st_mode) == 0o755

    def test_chmod_failure_on_existing_binary_is_an_error(self, tmp_path, monkeypatch):
        target = BinaryProvisioner(tmp_path, platform="linux").binary_path
        target.parent.mkdir(parents=True)
        target.write_bytes(b"already here")

        def refuse(path, mode):
            raise PermissionError("read-only file system")

        monkeypatch.setattr("krems_publisher.core.provisioner.os.chmod", refuse)

        with pytest.raises(ProvisioningError, match="executable permission"):
            provision({"storage_root": tmp_path, "platform": "linux"}, RecordingTransport())

    def test_repeated_calls_download_once(self, tmp_path):
        transport = RecordingTransport()

        async def go():
            async with httpx.AsyncClient(transport=httpx.MockTransport(transport)) as client:
                provisioner = BinaryProvisioner(tmp_path, platform="linux", client=client)
                first = await provisioner.ensure_binary()
                second = await provisioner.ensure_binary()
                return first, second

        first, second = asyncio.run(go())
        assert first == second
        assert len(transport.requests) == 1

    def test_unsupported_platform_fails_before_any_io(self, tmp_path):
        transport = RecordingTransport()
        with pytest.raises(UnsupportedPlatformError, match="Unsupported operating system"):
            provision({"storage_root": tmp_path, "platform": "sunos5"}, transport)

        assert transport.requests == []
        assert not (tmp_path / ".obsidian").exists()

    def test_non_success_status_fails(self, tmp_path):
        transport = RecordingTransport(status_code=404, content=b"Not Found")
        with pytest.raises(ProvisioningError, match="Server responded with 404"):
            provision({"storage_root": tmp_path, "platform": "linux"}, transport)

    def test_transport_error_fails(self, tmp_path):
        transport = RecordingTransport(error=httpx.ConnectError("connection refused"))
        with pytest.raises(ProvisioningError, match="connection refused") as exc_info:
            provision({"storage_root": tmp_path, "platform": "linux"}, transport)
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)


class InterruptedStream(httpx.AsyncByteStream):
    """Response body that drops the connection after the first chunk."""

    async def __aiter__(self):
        yield b"\x7fELF partial"
        raise httpx.ReadError("connection reset by peer")


class TestInterruptedDownload:
    """A dropped connection must not leave a binary behind."""

    def test_retry_downloads_complete_binary(self, tmp_path):
        requests = []

        def handler(request):
            requests.append(request)
            if len(requests) == 1:
                return httpx.Response(200, stream=InterruptedStream())
            return httpx.Response(200, content=BINARY_BYTES)

        async def go():
            async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
                provisioner = BinaryProvisioner(tmp_path, platform="linux", client=client)
                with pytest.raises(ProvisioningError, match="connection reset"):
                    await provisioner.ensure_binary()
                leftovers = sorted(p.name for p in provisioner.binary_path.parent.iterdir())
                return leftovers, await provisioner.ensure_binary()

        leftovers, path = asyncio.run(go())

        assert leftovers == []
        assert len(requests) == 2
        assert path.read_bytes() == BINARY_BYTES

    def test_failed_status_leaves_nothing(self, tmp_path):
        with pytest.raises(ProvisioningError):
            provision({"storage_root": tmp_path, "platform": "linux"}, RecordingTransport(status_code=500))

        install_dir = BinaryProvisioner(tmp_path, platform="linux").binary_path.parent
        assert list(install_dir.iterdir()) == []

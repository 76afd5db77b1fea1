import stat
import sys

import pytest
import requests

from dkn_launcher.local.exceptions import DownloadError
from dkn_launcher.local.external import BinaryInstaller, ReleaseChannel
from dkn_launcher.local.external.installer import asset_name, get_os_and_arch, make_executable

DOWNLOAD_URL = "https://example.com/download"


@pytest.mark.parametrize(
    "sys_platform, machine, expected",
    [
        ("linux", "x86_64", ("linux", "amd64")),
        ("linux", "aarch64", ("linux", "arm64")),
        ("darwin", "arm64", ("macos", "arm64")),
        ("win32", "AMD64", ("windows", "amd64")),
        ("freebsd", "riscv64", ("unknown", "unknown")),
    ],
)
def test_get_os_and_arch(sys_platform, machine, expected):
    assert get_os_and_arch(sys_platform, machine) == expected


def test_asset_name():
    assert asset_name("linux", "amd64") == "dkn-compute-binary-linux-amd64"
    assert asset_name("windows", "amd64") == "dkn-compute-binary-windows-amd64.exe"


class FakeResolver:
    def __init__(self):
        self.channels = []

    def resolve(self, channel):
        self.channels.append(channel)
        return "v1.9.0"


@pytest.fixture
def resolver():
    return FakeResolver()


@pytest.fixture
def installer(resolver):
    return BinaryInstaller(resolver, download_url=DOWNLOAD_URL, asset="dkn-compute-binary-linux-amd64")


@pytest.fixture
def downloads(mocker):
    """Maps URL -> (status, body) and records the URLs requested."""
    routes = {}
    requested = []

    def get(url, **kwargs):
        requested.append(url)
        status, body = routes.get(url, (404, b""))
        res = mocker.MagicMock()
        res.__enter__.return_value = res
        res.status_code = status
        res.headers = {"content-length": str(len(body))}
        res.iter_content.return_value = [body[i:i + 4] for i in range(0, len(body), 4)]
        return res

    mocker.patch("dkn_launcher.local.external.installer.requests.get", side_effect=get)
    return routes, requested


def test_install_writes_binary(installer, downloads, tmp_path):
    routes, requested = downloads
    routes[f"{DOWNLOAD_URL}/v2.0.0/dkn-compute-binary-linux-amd64"] = (200, b"compute-v2")
    dest = tmp_path / "dkn_compute"

    assert installer.install("v2.0.0", dest) == "v2.0.0"

    assert dest.read_bytes() == b"compute-v2"
    assert requested == [f"{DOWNLOAD_URL}/v2.0.0/dkn-compute-binary-linux-amd64"]


def test_missing_asset_falls_back_to_previous(installer, resolver, downloads, tmp_path, caplog):
    routes, requested = downloads
    routes[f"{DOWNLOAD_URL}/v1.9.0/dkn-compute-binary-linux-amd64"] = (200, b"compute-v1.9")
    dest = tmp_path / "dkn_compute"

    assert installer.install("v2.0.0", dest) == "v1.9.0"

    assert resolver.channels == [ReleaseChannel.PREVIOUS]
    assert dest.read_bytes() == b"compute-v1.9"
    assert requested == [
        f"{DOWNLOAD_URL}/v2.0.0/dkn-compute-binary-linux-amd64",
        f"{DOWNLOAD_URL}/v1.9.0/dkn-compute-binary-linux-amd64",
    ]
    assert "currently being built" in caplog.text


def test_server_error_does_not_fall_back(installer, resolver, downloads, tmp_path):
    routes, _ = downloads
    routes[f"{DOWNLOAD_URL}/v2.0.0/dkn-compute-binary-linux-amd64"] = (500, b"")
    dest = tmp_path / "dkn_compute"
    dest.write_bytes(b"old")

    with pytest.raises(DownloadError) as exc:
        installer.install("v2.0.0", dest)

    assert exc.value.status_code == 500
    assert resolver.channels == []
    assert dest.read_bytes() == b"old"


def test_connection_error(installer, mocker, tmp_path):
    mocker.patch("dkn_launcher.local.external.installer.requests.get", side_effect=requests.ConnectionError("offline"))

    with pytest.raises(DownloadError, match="offline"):
        installer.install("v2.0.0", tmp_path / "dkn_compute")


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
def test_make_executable(tmp_path):
    path = tmp_path / "dkn_compute"
    path.write_bytes(b"")
    path.chmod(0o644)

    make_executable(path)

    assert path.stat().st_mode & stat.S_IXUSR


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
def test_install_without_exec_bits(installer, downloads, tmp_path):
    routes, _ = downloads
    routes[f"{DOWNLOAD_URL}/v2.0.0/dkn-compute-binary-linux-amd64"] = (200, b"compute-v2")
    dest = tmp_path / "temp-dkn_compute"

    installer.install("v2.0.0", dest, executable=False)

    assert not dest.stat().st_mode & stat.S_IXUSR

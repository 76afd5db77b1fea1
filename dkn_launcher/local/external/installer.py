import sys
import stat
import logging
import platform
from pathlib import Path
from typing import Optional, Tuple

import requests

from dkn_launcher import settings
from dkn_launcher.local.exceptions import DownloadError
from dkn_launcher.local.external.releases import ReleaseChannel, ReleaseResolver

log = logging.getLogger(__name__)

_OS_NAMES = {"linux": "linux", "darwin": "macos", "win32": "windows"}
_ARCH_NAMES = {"x86_64": "amd64", "amd64": "amd64", "arm64": "arm64", "aarch64": "arm64"}


def get_os_and_arch(sys_platform: Optional[str] = None, machine: Optional[str] = None) -> Tuple[str, str]:
    """Returns the host OS and CPU architecture as used in release asset names."""
    sys_platform = sys_platform if sys_platform is not None else sys.platform
    machine = machine if machine is not None else platform.machine()
    return _OS_NAMES.get(sys_platform, "unknown"), _ARCH_NAMES.get(machine.lower(), "unknown")


def asset_name(os_name: str, arch: str) -> str:
    """Builds the release asset file name for a platform."""
    extension = ".exe" if os_name == "windows" else ""
    return f"dkn-compute-binary-{os_name}-{arch}{extension}"


def make_executable(path: Path) -> None:
    """Grants execute permission on POSIX platforms; a no-op on Windows."""
    if sys.platform == "win32":
        return
    mode = path.stat().st_mode
    path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


class BinaryInstaller:
    """Downloads versioned compute node binaries for the host platform."""

    def __init__(
        self,
        resolver: ReleaseResolver,
        download_url: str = settings.COMPUTE_DOWNLOAD_URL,
        timeout: float = settings.HTTP_TIMEOUT,
        asset: Optional[str] = None,
    ):
        self.resolver = resolver
        self.download_url = download_url
        self.timeout = timeout
        self.asset = asset or asset_name(*get_os_and_arch())

    def asset_url(self, version: str) -> str:
        return f"{self.download_url}/{version}/{self.asset}"

    def _download_file(self, url: str, dest_path: Path) -> None:
        """Streams `url` to `dest_path` with a simple progress bar; removes the partial file on failure."""
        log.info(f"Downloading from {url}...")
        written = False
        try:
            with requests.get(url, stream=True, timeout=self.timeout, headers={"User-Agent": settings.HTTP_USER_AGENT}) as r:
                if not 200 <= r.status_code < 300:
                    raise DownloadError(f"Bad status downloading {url}: {r.status_code}", status_code=r.status_code)
                total_size = int(r.headers.get("content-length", 0))
                written = True
                with open(dest_path, "wb") as f:
                    downloaded = 0
                    for chunk in r.iter_content(chunk_size=8192):
                        f.write(chunk)
                        downloaded += len(chunk)
                        done = int(50 * downloaded / total_size) if total_size else 0
                        sys.stdout.write(f"\r[{'=' * done}{' ' * (50 - done)}] {downloaded / 1024 / 1024:.2f} MB")
                        sys.stdout.flush()
            sys.stdout.write("\n")
            log.info(f"Successfully downloaded to '{dest_path}'.")
        except DownloadError:
            raise
        except (requests.RequestException, OSError) as e:
            if written:
                dest_path.unlink(missing_ok=True)
            raise DownloadError(f"Download of {url} failed: {e}")

    def install(self, version: str, destination: Path, executable: bool = True) -> str:
        """
        Downloads the compute node binary for `version` to `destination`.

        A 404 means the release exists but its binaries are still being built,
        so the previous stable version is installed instead.

        :param version: The version tag to install.
        :param destination: The file the binary is written to.
        :param executable: Whether to grant execute permission after the download.
        :return: The version that was actually installed.
        :raises DownloadError: On any other failed download.
        :raises ReleaseError: If the fallback version could not be resolved.
        """
        try:
            self._download_file(self.asset_url(version), destination)
        except DownloadError as e:
            if e.status_code != 404:
                raise
            log.warning(
                "The latest compute binaries are currently being built. Downloading the previous version. "
                "You can restart the launcher in ~20 minutes to run the latest version."
            )
            version = self.resolver.resolve(ReleaseChannel.PREVIOUS)
            self._download_file(self.asset_url(version), destination)

        if executable:
            try:
                make_executable(destination)
            except OSError as e:
                raise DownloadError(f"Couldn't give exec privileges to '{destination}': {e}")
        return version

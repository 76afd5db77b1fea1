from typing import Optional


class LauncherError(Exception):
    """Base class for every error the launcher reports to the user."""


class EnvFileError(LauncherError):
    """The env file could not be loaded, fetched or written."""


class InvalidInputError(LauncherError):
    """The user gave an unusable answer to a required prompt."""


class ReleaseError(LauncherError):
    """Base class for release index failures."""


class ReleaseFetchError(ReleaseError):
    """The release index could not be reached or returned an error status."""


class NoTagsFound(ReleaseError):
    """The release index returned no tag matching the requested channel."""


class MalformedResponse(ReleaseError):
    """The release index returned an entry without the expected fields."""


class DownloadError(LauncherError):
    """A binary download failed. `status_code` is set when the server answered."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ProcessStartError(LauncherError):
    """The compute node executable could not be spawned."""


class ProcessStopError(LauncherError):
    """A running process could not be stopped."""


class OllamaError(LauncherError):
    """The local Ollama server is unavailable and could not be started."""

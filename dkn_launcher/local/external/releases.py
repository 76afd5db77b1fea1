import enum
import logging
from typing import Any, Dict, List, Tuple

import requests

from dkn_launcher import settings
from dkn_launcher.local.exceptions import MalformedResponse, NoTagsFound, ReleaseFetchError

log = logging.getLogger(__name__)


class ReleaseChannel(enum.Enum):
    """Selection policy for the compute node version tag."""
    LATEST = "latest"
    DEV = "dev"
    PREVIOUS = "previous"


class ReleaseResolver:
    """Resolves version tags from the GitHub release index."""

    def __init__(
        self,
        latest_release_url: str = settings.COMPUTE_LATEST_RELEASE_URL,
        tags_url: str = settings.COMPUTE_TAGS_URL,
        launcher_release_url: str = settings.LAUNCHER_LATEST_RELEASE_URL,
        dev_suffix: str = settings.DEV_TAG_SUFFIX,
        timeout: float = settings.HTTP_TIMEOUT,
    ):
        self.latest_release_url = latest_release_url
        self.tags_url = tags_url
        self.launcher_release_url = launcher_release_url
        self.dev_suffix = dev_suffix
        self.timeout = timeout

    def _get_json(self, url: str) -> Any:
        """GETs `url` and decodes the JSON body, wrapping every failure with the URL."""
        try:
            res = requests.get(url, timeout=self.timeout, headers={"User-Agent": settings.HTTP_USER_AGENT})
            res.raise_for_status()
            return res.json()
        except requests.RequestException as e:
            raise ReleaseFetchError(f"Failed to fetch {url}: {e}")
        except ValueError as e:
            raise ReleaseFetchError(f"Failed to parse the JSON response of {url}: {e}")

    def _latest_release_tag(self, url: str) -> str:
        release = self._get_json(url)
        tag_name = release.get("tag_name") if isinstance(release, dict) else None
        if not isinstance(tag_name, str):
            raise MalformedResponse(f"tag_name not found or not a string in the response of {url}")
        return tag_name

    def get_sorted_tags(self) -> List[Dict[str, Any]]:
        """
        Fetches the tag listing, newest first as ordered by the index.

        :raises NoTagsFound: If the listing is empty.
        """
        tags = self._get_json(self.tags_url)
        if not isinstance(tags, list):
            raise MalformedResponse(f"Expected a list of tags from {self.tags_url}")
        if not tags:
            raise NoTagsFound(f"No tags found at {self.tags_url}")
        return tags

    def _tag_names(self) -> List[str]:
        names = []
        for tag in self.get_sorted_tags():
            name = tag.get("name") if isinstance(tag, dict) else None
            if not isinstance(name, str):
                raise MalformedResponse(f"Failed to extract tag name from {tag!r}")
            names.append(name)
        return names

    def resolve(self, channel: ReleaseChannel) -> str:
        """
        Returns the version tag selected by `channel`.

        - LATEST: the tag of the latest published release.
        - DEV: the first tag carrying the development suffix.
        - PREVIOUS: the second non-development tag, i.e. the stable tag before the latest.

        :raises ReleaseError: On fetch failures, malformed entries or when no tag matches.
        """
        if channel is ReleaseChannel.LATEST:
            tag = self._latest_release_tag(self.latest_release_url)
        elif channel is ReleaseChannel.DEV:
            tag = next((name for name in self._tag_names() if name.endswith(self.dev_suffix)), None)
        else:
            stable = [name for name in self._tag_names() if not name.endswith(self.dev_suffix)]
            tag = stable[1] if len(stable) > 1 else None

        if tag is None:
            raise NoTagsFound(f"No valid {channel.value} tag found at {self.tags_url}")
        log.debug(f"Resolved {channel.value} compute node version: {tag}")
        return tag

    def newest_version(self, current: str, channel: ReleaseChannel = ReleaseChannel.LATEST) -> Tuple[bool, str]:
        """
        Compares the recorded version with the newest one on `channel`.

        :return: (True if the tags differ, the newest tag)
        """
        newest = self.resolve(channel)
        return newest != current, newest

    def latest_launcher_version(self) -> str:
        """Returns the tag of the latest launcher release."""
        return self._latest_release_tag(self.launcher_release_url)

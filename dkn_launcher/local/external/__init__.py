"""
This module initializes the release management system.
It exposes the `ReleaseResolver` for version tags and the `BinaryInstaller`
that downloads the compute node executable.
"""

from .installer import BinaryInstaller
from .releases import ReleaseChannel, ReleaseResolver

__all__ = ["BinaryInstaller", "ReleaseChannel", "ReleaseResolver"]

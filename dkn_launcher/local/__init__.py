"""
Local package for the DKN Compute Launcher.

This package holds everything that runs on the host machine: the env file
store, the release and binary management, the Ollama helper, the console
prompts and the process supervisor.
"""

from .exceptions import LauncherError

__all__ = ["LauncherError"]

"""
DKN Compute Launcher.

Prepares the local environment, installs the dkn-compute binary and keeps it
running and up to date.
"""

__version__ = "0.1.0"

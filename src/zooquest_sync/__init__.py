# SPDX-License-Identifier: MIT
"""ZooQuest sync - cached, offline-tolerant access to server collections."""

from importlib.metadata import PackageNotFoundError, version

from .cache import CacheStore
from .sync import SyncCoordinator


__all__: list[str] = ["CacheStore", "SyncCoordinator", "__version__"]

# Get version from installed package metadata
__version__: str
try:
    __version__ = version("zooquest-sync")
except PackageNotFoundError:
    # Package is not installed, use development fallback
    __version__ = "development"

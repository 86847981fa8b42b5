"""Version information for Burnmail."""

__version__ = "1.2.0"
__version_info__ = tuple(int(x) for x in __version__.split("."))

# Release information
__title__ = "burnmail"
__description__ = "Disposable mail.tm inbox in your terminal"
__author__ = "Burnmail Contributors"
__license__ = "MIT"
__copyright__ = "Copyright 2025-2026 Burnmail Contributors"


def get_version() -> str:
    """Return the current version string."""
    return __version__


def get_version_info() -> tuple[int, ...]:
    """Return the version as a tuple of integers."""
    return __version_info__

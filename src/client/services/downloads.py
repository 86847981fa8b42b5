"""
Attachment download helpers.
"""

import logging
import os
import platform
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


def get_downloads_dir(
    override: Optional[str] = None, system: Optional[str] = None
) -> Path:
    """
    Resolve the directory attachments are saved to.

    Args:
        override: Directory configured by the user, used as is.
        system: Platform name as returned by ``platform.system()``.

    Returns:
        The platform downloads directory, or the current directory when
        that does not exist.
    """
    if override:
        return Path(override).expanduser()

    system = system or platform.system()
    home = Path.home()

    if system == "Windows":
        profile = os.getenv("USERPROFILE") or (
            os.getenv("HOMEDRIVE", "") + os.getenv("HOMEPATH", "")
        )
        directory = Path(profile) / "Downloads"
    elif system == "Darwin":
        directory = home / "Downloads"
    elif system == "Linux":
        xdg = os.getenv("XDG_DOWNLOAD_DIR")
        directory = Path(xdg) if xdg else home / "Downloads"
    else:
        directory = Path.cwd()

    if not directory.is_dir():
        logger.debug("%s does not exist, saving to current directory", directory)
        directory = Path.cwd()

    return directory


def unique_path(directory: Path, filename: str) -> Path:
    """
    Pick a path in ``directory`` that does not exist yet.

    Path components in ``filename`` are dropped. Collisions get a numeric
    suffix before the extension: ``name_1.ext``, ``name_2.ext``...
    """
    name = Path(filename.replace("\\", "/")).name
    if name in ("", ".", ".."):
        name = "attachment"
    candidate = Path(directory) / name
    stem, suffix = candidate.stem, candidate.suffix

    counter = 1
    while candidate.exists():
        candidate = Path(directory) / f"{stem}_{counter}{suffix}"
        counter += 1

    return candidate


def save_attachment(directory: Path, filename: str, data: bytes) -> Path:
    """
    Write attachment bytes without overwriting existing files.

    Returns:
        Path of the written file.

    Raises:
        OSError: If the file cannot be written.
    """
    path = unique_path(directory, filename)
    path.write_bytes(data)
    logger.info("Saved attachment to %s", path)
    return path

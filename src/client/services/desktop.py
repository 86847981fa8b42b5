"""
Clipboard and web browser integration.
"""

import logging
import os
import platform
import shutil
import subprocess
import tempfile
import threading
import webbrowser
from pathlib import Path
from typing import Optional, Sequence

from common.exceptions import DesktopIntegrationError

logger = logging.getLogger(__name__)

CLIPBOARD_COMMANDS = {
    "Darwin": [["pbcopy"]],
    "Windows": [["clip"]],
    "Linux": [
        ["wl-copy"],
        ["xclip", "-selection", "clipboard"],
        ["xsel", "--clipboard", "--input"],
    ],
}


def copy_to_clipboard(text: str, system: Optional[str] = None) -> None:
    """
    Place ``text`` on the system clipboard.

    Args:
        text: Text to copy.
        system: Platform name as returned by ``platform.system()``.

    Raises:
        DesktopIntegrationError: If no clipboard tool accepted the text.
    """
    system = system or platform.system()
    candidates = CLIPBOARD_COMMANDS.get(system, CLIPBOARD_COMMANDS["Linux"])

    errors = []
    for command in candidates:
        if shutil.which(command[0]) is None:
            continue
        try:
            subprocess.run(
                command,
                input=text.encode("utf-8"),
                check=True,
                timeout=5,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
            logger.debug("Copied %d characters with %s", len(text), command[0])
            return
        except (OSError, subprocess.SubprocessError) as e:
            errors.append(f"{command[0]}: {e}")

    raise DesktopIntegrationError(
        "No clipboard tool available", {"errors": errors} if errors else None
    )


def _remove_later(path: Path, delay: float) -> threading.Timer:
    def remove() -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.debug("Failed to remove %s: %s", path, e)

    timer = threading.Timer(delay, remove)
    timer.daemon = True
    timer.start()
    return timer


def open_html_in_browser(
    fragments: Sequence[str], cleanup_delay: float = 30.0
) -> Path:
    """
    Show HTML content in the default web browser.

    The content is written to a temporary ``burnmail-*.html`` file that is
    removed ``cleanup_delay`` seconds later.

    Returns:
        Path of the temporary file.

    Raises:
        DesktopIntegrationError: If the file cannot be written or opened.
    """
    try:
        fd, name = tempfile.mkstemp(prefix="burnmail-", suffix=".html")
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write("".join(fragments))
    except OSError as e:
        raise DesktopIntegrationError(f"Failed to write HTML preview: {e}")

    path = Path(name)
    try:
        opened = webbrowser.open(path.as_uri())
    except webbrowser.Error as e:
        opened = False
        logger.debug("Browser error: %s", e)

    if not opened:
        path.unlink(missing_ok=True)
        raise DesktopIntegrationError("No web browser available")

    _remove_later(path, cleanup_delay)
    return path

"""
Events and requests exchanged between the terminal loop and the controller.

Events flow into the controller one at a time. Requests describe the
background work the controller wants performed; each request is turned
into exactly one completion event by the request worker.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Union

from common.models import Attachment, MessageDetail, MessageSummary


# =============================================================================
# Requests
# =============================================================================


@dataclass(frozen=True)
class LoadMessages:
    """Fetch the inbox listing."""


@dataclass(frozen=True)
class LoadMessageDetail:
    """Fetch one message; ``mark_read`` also flags it seen on the server."""

    message_id: str
    mark_read: bool = False


@dataclass(frozen=True)
class DeleteMessage:
    """Delete the open message."""

    message_id: str


@dataclass(frozen=True)
class BulkDelete:
    """Delete every selected message concurrently."""

    message_ids: tuple[str, ...]


@dataclass(frozen=True)
class DownloadAttachment:
    """Save one attachment to the downloads directory."""

    message_id: str
    attachment: Attachment


@dataclass(frozen=True)
class CopyToClipboard:
    """Put text on the clipboard."""

    text: str
    label: str


@dataclass(frozen=True)
class OpenInBrowser:
    """Show HTML fragments in a web browser."""

    fragments: tuple[str, ...]


Request = Union[
    LoadMessages,
    LoadMessageDetail,
    DeleteMessage,
    BulkDelete,
    DownloadAttachment,
    CopyToClipboard,
    OpenInBrowser,
]


# =============================================================================
# Events
# =============================================================================


@dataclass(frozen=True)
class KeyPressed:
    """A key name such as ``"j"``, ``"enter"`` or ``"ctrl+c"``."""

    key: str


@dataclass(frozen=True)
class Resized:
    width: int
    height: int


@dataclass(frozen=True)
class Tick:
    """Auto-refresh timer fired."""


@dataclass(frozen=True)
class RetryDue:
    """The delay before re-issuing a failed request elapsed."""

    request: Request


@dataclass(frozen=True)
class MessagesLoaded:
    messages: tuple[MessageSummary, ...]


@dataclass(frozen=True)
class MessageDetailLoaded:
    detail: MessageDetail


@dataclass(frozen=True)
class MessageDeleted:
    message_id: str


@dataclass(frozen=True)
class MessagesBulkDeleted:
    message_ids: tuple[str, ...]


@dataclass(frozen=True)
class RequestFailed:
    """Background work for ``request`` raised ``error``."""

    request: Request
    error: Exception


@dataclass(frozen=True)
class AttachmentSaved:
    filename: str
    path: Path


@dataclass(frozen=True)
class ClipboardCopied:
    label: str


@dataclass(frozen=True)
class BrowserOpened:
    """HTML preview handed to the browser."""


Event = Union[
    KeyPressed,
    Resized,
    Tick,
    RetryDue,
    MessagesLoaded,
    MessageDetailLoaded,
    MessageDeleted,
    MessagesBulkDeleted,
    RequestFailed,
    AttachmentSaved,
    ClipboardCopied,
    BrowserOpened,
]

EVENT_TYPES = Event.__args__

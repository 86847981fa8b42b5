"""
Mutable state of the interactive inbox browser.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from common.models import MessageDetail, MessageSummary

from .events import Request
from .render import Column, SortMode, columns_for_width

# Rows taken by the title, status, search box and column header above the
# table, and by the footer below it.
HEADER_HEIGHT = 5
FOOTER_HEIGHT = 3
MIN_BODY_HEIGHT = 5


class Screen(Enum):
    """The screen currently shown; exactly one is active."""

    LIST = "list"
    DETAIL = "detail"
    HELP = "help"
    CONFIRM = "confirm"


class ConfirmAction(Enum):
    """Actions gated behind a yes/no confirmation."""

    QUIT = "quit"
    DELETE_SINGLE = "delete_single"
    DELETE_BULK = "delete_bulk"


@dataclass(frozen=True)
class PendingConfirmation:
    action: ConfirmAction
    description: str


@dataclass
class Viewport:
    """Terminal geometry and the column layout derived from it."""

    width: int = 80
    height: int = 24
    columns: tuple[Column, ...] = field(
        default_factory=lambda: columns_for_width(80)
    )

    @property
    def body_height(self) -> int:
        """Rows available for the message table or detail body."""
        return max(MIN_BODY_HEIGHT, self.height - HEADER_HEIGHT - FOOTER_HEIGHT)

    def resize(self, width: int, height: int) -> None:
        self.width = max(1, width)
        self.height = max(1, height)
        self.columns = columns_for_width(self.width)


@dataclass
class SessionState:
    """
    Everything the browser shows, owned by the controller.

    ``view`` is always ``filter`` then ``sort`` applied to ``messages``;
    ``selection`` holds positions into ``view``.
    """

    address: str = ""
    messages: list[MessageSummary] = field(default_factory=list)
    view: list[MessageSummary] = field(default_factory=list)
    details: dict[str, MessageDetail] = field(default_factory=dict)

    screen: Screen = Screen.LIST
    return_to: Screen = Screen.LIST
    confirmation: Optional[PendingConfirmation] = None

    cursor: int = 0
    list_offset: int = 0
    open_detail: Optional[MessageDetail] = None
    detail_lines: list[str] = field(default_factory=list)
    detail_offset: int = 0
    pending_detail_id: Optional[str] = None

    search_mode: bool = False
    search_text: str = ""
    sort_mode: SortMode = SortMode.DATE
    auto_refresh: bool = True
    bulk_mode: bool = False
    selection: set[int] = field(default_factory=set)

    loading: bool = True
    status: str = ""
    last_error: Optional[str] = None
    # Failed attempts and the scheduled re-issue, keyed by request type.
    retry_counts: dict[type, int] = field(default_factory=dict)
    pending_retries: dict[type, Request] = field(default_factory=dict)

    viewport: Viewport = field(default_factory=Viewport)
    running: bool = True

    @property
    def current(self) -> Optional[MessageSummary]:
        """Message under the cursor."""
        if 0 <= self.cursor < len(self.view):
            return self.view[self.cursor]
        return None

    @property
    def selected_ids(self) -> tuple[str, ...]:
        """Ids of the selected messages in view order."""
        return tuple(
            self.view[index].id
            for index in sorted(self.selection)
            if index < len(self.view)
        )

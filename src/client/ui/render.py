"""
Pure rendering helpers for the inbox browser.

Everything here maps data to text: filtering, sorting, column layout,
row and detail formatting. Nothing performs I/O or touches state.
"""

import textwrap
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Sequence

from common.models import MessageDetail, MessageSummary

MIN_TRUNCATE_WIDTH = 10
ELLIPSIS = "..."
RULE_WIDTH = 80
ROW_DATE_FORMAT = "%d/%m %H:%M"
DETAIL_DATE_FORMAT = "%d/%m/%Y %H:%M:%S"

CHECK_MARK = "✓"
ATTACHMENT_MARK = "@"

HtmlConverter = Callable[[Sequence[str]], str]


class SortMode(Enum):
    """Sort orders of the message table, cycled with ``s``."""

    DATE = "Date"
    SENDER = "Sender"
    SUBJECT = "Subject"

    def next(self) -> "SortMode":
        """The mode after this one in the cycle."""
        modes = list(SortMode)
        return modes[(modes.index(self) + 1) % len(modes)]


@dataclass(frozen=True)
class Column:
    title: str
    width: int


# =============================================================================
# Filtering and sorting
# =============================================================================


def filter_messages(
    messages: Iterable[MessageSummary], query: str
) -> list[MessageSummary]:
    """
    Keep messages whose sender, subject or preview contains ``query``.

    Matching is case-insensitive; an empty query keeps every message in
    its original order.
    """
    if not query:
        return list(messages)

    needle = query.lower()
    return [
        message
        for message in messages
        if needle in message.sender.lower()
        or needle in message.subject.lower()
        or needle in message.intro.lower()
    ]


def sort_messages(
    messages: Iterable[MessageSummary], mode: SortMode
) -> list[MessageSummary]:
    """Stable sort: newest first, or sender / subject ascending."""
    if mode == SortMode.SENDER:
        return sorted(messages, key=lambda m: m.sender)
    elif mode == SortMode.SUBJECT:
        return sorted(messages, key=lambda m: m.subject)
    return sorted(messages, key=lambda m: m.created_at, reverse=True)


def build_view(
    messages: Iterable[MessageSummary], query: str, mode: SortMode
) -> list[MessageSummary]:
    """Filter then sort."""
    return sort_messages(filter_messages(messages, query), mode)


# =============================================================================
# Table layout
# =============================================================================


def truncate(text: str, width: int) -> str:
    """
    Shorten ``text`` to at most ``width`` characters.

    Whole words are kept and an ellipsis appended. Columns narrower than
    ``MIN_TRUNCATE_WIDTH`` get a hard cut instead.
    """
    if width <= 0:
        return ""
    if len(text) <= width:
        return text
    if width < MIN_TRUNCATE_WIDTH:
        return text[:width]

    budget = width - len(ELLIPSIS)
    kept: list[str] = []
    length = 0
    for word in text.split():
        if length + len(word) + 1 > budget:
            break
        if kept:
            length += 1
        kept.append(word)
        length += len(word)

    if not kept:
        return text[:budget] + ELLIPSIS
    return " ".join(kept) + ELLIPSIS


def columns_for_width(width: int) -> tuple[Column, ...]:
    """
    Column layout for a terminal ``width`` characters wide.

    Narrow terminals (< 80) drop the attachment and preview columns.
    """
    if width < 80:
        return (
            Column(CHECK_MARK, 2),
            Column("From", 15),
            Column("Subject", max(20, width - 30)),
            Column("Date", 11),
        )
    if width < 120:
        return (
            Column(CHECK_MARK, 3),
            Column(ATTACHMENT_MARK, 3),
            Column("From", 20),
            Column("Subject", max(25, width - 55)),
            Column("Preview", 15),
            Column("Date", 12),
        )
    return (
        Column(CHECK_MARK, 3),
        Column(ATTACHMENT_MARK, 3),
        Column("From", 25),
        Column("Subject", max(30, width - 85)),
        Column("Preview", 25),
        Column("Date", 14),
    )


def _cell(message: MessageSummary, title: str, selected: bool) -> str:
    if title == CHECK_MARK:
        return CHECK_MARK if selected else " "
    if title == ATTACHMENT_MARK:
        return ATTACHMENT_MARK if message.has_attachments else " "
    if title == "From":
        return message.sender
    if title == "Subject":
        return message.subject
    if title == "Preview":
        return message.intro
    if title == "Date":
        return message.created_at.strftime(ROW_DATE_FORMAT)
    return ""


def format_row(
    message: MessageSummary, columns: Sequence[Column], selected: bool = False
) -> list[str]:
    """Cells of one table row, each truncated and padded to its column."""
    cells = []
    for column in columns:
        text = " ".join(_cell(message, column.title, selected).split())
        cells.append(truncate(text, column.width).ljust(column.width))
    return cells


def format_header(columns: Sequence[Column]) -> str:
    return " ".join(
        truncate(column.title, column.width).ljust(column.width)
        for column in columns
    )


def join_cells(cells: Sequence[str]) -> str:
    return " ".join(cells)


def scroll_offset(cursor: int, offset: int, height: int) -> int:
    """Adjust the first visible row so ``cursor`` stays on screen."""
    height = max(1, height)
    if cursor < offset:
        return cursor
    if cursor >= offset + height:
        return cursor - height + 1
    return max(0, offset)


# =============================================================================
# Text screens
# =============================================================================


def title_line(address: str, count: int) -> str:
    noun = "message" if count == 1 else "messages"
    return f"Burnmail - {address} ({count} {noun})"


def footer_hints(sort_mode: SortMode, auto_refresh: bool, bulk_mode: bool) -> list[str]:
    """Two footer lines for the list screen."""
    hints = (
        "↑/↓/j/k:navigate enter:open s:sort c:copy v:bulk r:refresh /:search "
        f"a:auto:{'ON' if auto_refresh else 'OFF'}"
    )
    if bulk_mode:
        hints += " space:select d:delete"
    hints += " q:quit"
    return [f"Sort: {sort_mode.value} • Press ? for help", hints]


DETAIL_HINTS = "↑/↓ • o:browser • c:copy • d:delete • esc • ?:help"


def detail_body_text(detail: MessageDetail, html_converter: HtmlConverter) -> str:
    """The readable body: plain text, else converted HTML, else raw HTML."""
    if detail.text:
        return detail.text
    if detail.html:
        try:
            return html_converter(detail.html)
        except ValueError:
            return detail.html_source
    return ""


def format_detail(
    detail: MessageDetail, html_converter: HtmlConverter
) -> list[str]:
    """
    Render a message as lines of text.

    Args:
        detail: The message to show.
        html_converter: Converts HTML fragments to text, raising
            ``ValueError`` when it cannot.

    Returns:
        Header, body and attachment summary lines.
    """
    rule = "─" * RULE_WIDTH
    lines = [
        f"From: {detail.sender}",
        f"Subject: {detail.subject}",
        f"Date: {detail.created_at.strftime(DETAIL_DATE_FORMAT)}",
        rule,
        "",
    ]

    if detail.text:
        lines.extend(detail.text.splitlines())
    elif detail.html:
        try:
            converted = html_converter(detail.html)
        except ValueError:
            lines.append("[HTML content - press 'o' to open in browser]")
            lines.append("")
            lines.extend(detail.html_source.splitlines())
        else:
            lines.extend(converted.splitlines())
            lines.extend(["", rule, "Press 'o' to open HTML in browser"])

    if detail.attachments:
        lines.extend(["", rule, f"Attachments ({len(detail.attachments)})", ""])
        for number, attachment in enumerate(detail.attachments, start=1):
            lines.append(
                f"{number}. {attachment.filename} "
                f"({attachment.content_type}, {attachment.size_kb:.1f} KB)"
            )
        lines.extend(["", "Press '1-9' to download attachment, 'A' to download all"])

    return lines


def wrap_lines(lines: Iterable[str], width: int) -> list[str]:
    """Hard-wrap lines to ``width`` columns, keeping blank lines."""
    width = max(1, width)
    wrapped: list[str] = []
    for line in lines:
        line = line.expandtabs(4).rstrip()
        if len(line) <= width:
            wrapped.append(line)
        else:
            wrapped.extend(
                textwrap.wrap(
                    line, width, break_long_words=True, replace_whitespace=False
                )
                or [""]
            )
    return wrapped


HELP_SECTIONS = (
    ("General", (
        ("?", "Show this help screen"),
        ("q", "Quit application (with confirmation)"),
        ("esc", "Go back / Cancel"),
        ("r", "Refresh messages"),
    )),
    ("List View", (
        ("↑/↓ or j/k", "Navigate messages"),
        ("g/G", "First / last message"),
        ("enter", "View selected message"),
        ("/", "Search messages"),
        ("s", "Cycle sort (Date → Sender → Subject)"),
        ("c", "Copy sender email to clipboard"),
        ("a", "Toggle auto-refresh"),
        ("v", "Toggle bulk selection mode"),
        ("space", "Select/deselect message (bulk mode)"),
        ("d", "Delete selected message(s)"),
    )),
    ("Detail View", (
        ("↑/↓ or j/k", "Scroll message content"),
        ("o", "Open HTML content in browser"),
        ("c", "Copy message content to clipboard"),
        ("d", "Delete message"),
        ("1-9", "Download attachment by number"),
        ("A", "Download all attachments"),
        ("esc", "Back to list"),
    )),
)


def help_lines() -> list[str]:
    lines = ["Burnmail - Help", ""]
    for title, items in HELP_SECTIONS:
        lines.append(f"▸ {title}")
        for key, description in items:
            lines.append(f"  {key:<10} {description}")
        lines.append("")
    lines.append("Press '?' or 'esc' to close this help")
    return lines


def confirm_lines(description: str) -> list[str]:
    return [
        "⚠ Confirmation Required",
        "",
        f"Are you sure you want to {description}?",
        "",
        "Y - Yes, proceed",
        "N - No, cancel",
    ]

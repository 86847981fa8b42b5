"""
HTML to plain text conversion for the message viewer.

Keeps enough structure to read an HTML-only message in a terminal:
paragraph breaks, headings, emphasis markers, links with their targets,
bulleted list items, quoted blocks and simple tables.
"""

import logging
import re
from typing import Sequence

from bs4 import BeautifulSoup
from bs4.element import (
    Comment,
    Declaration,
    Doctype,
    NavigableString,
    ProcessingInstruction,
    Tag,
)

logger = logging.getLogger(__name__)

SKIPPED_TAGS = frozenset({"script", "style", "meta", "title", "head"})
BLOCK_TAGS = frozenset({
    "p", "div", "section", "article", "header", "footer", "main", "center",
    "pre", "address", "form",
})
HEADING_TAGS = frozenset({"h1", "h2", "h3", "h4", "h5", "h6"})
EMPHASIS = {"strong": "*", "b": "*", "em": "_", "i": "_"}
RULE = "─" * 21

_BLANK_RUNS = re.compile(r"\n{3,}")


def _collapse(text: str) -> str:
    return " ".join(text.split())


class _TextConverter:
    """Walks a parsed document and accumulates formatted text."""

    def __init__(self) -> None:
        self._parts: list[str] = []
        self._pending_space = False
        self._glue = False

    # =========================================================================
    # Output helpers
    # =========================================================================

    def _last_char(self) -> str:
        for part in reversed(self._parts):
            if part:
                return part[-1]
        return ""

    def _write(self, text: str) -> None:
        self._parts.append(text)

    def _separate(self, leading_space: bool) -> None:
        last = self._last_char()
        if not last or last in "\n " or self._glue:
            return
        if leading_space or self._pending_space:
            self._write(" ")

    def _newline(self) -> None:
        if self._last_char() not in ("", "\n"):
            self._write("\n")
        self._pending_space = False
        self._glue = False

    def _blank_line(self) -> None:
        self._newline()
        if self._parts and not "".join(self._parts[-2:]).endswith("\n\n"):
            self._write("\n")

    def _text(self, raw: str) -> None:
        text = _collapse(raw)
        if not text:
            self._pending_space = self._pending_space or bool(raw)
            return
        self._separate(raw[:1].isspace())
        self._write(text)
        self._pending_space = raw[-1:].isspace()
        self._glue = False

    def _open_inline(self, marker: str) -> None:
        self._separate(False)
        self._write(marker)
        self._pending_space = False
        self._glue = True

    def _close_inline(self, marker: str) -> None:
        self._write(marker)
        self._glue = False

    # =========================================================================
    # Traversal
    # =========================================================================

    def convert(self, soup: BeautifulSoup) -> str:
        self._children(soup)
        text = "".join(self._parts)
        text = "\n".join(line.rstrip() for line in text.split("\n"))
        return _BLANK_RUNS.sub("\n\n", text).strip()

    def _children(self, node: Tag) -> None:
        for child in node.children:
            self._node(child)

    def _node(self, node: object) -> None:
        if isinstance(node, (Comment, Declaration, Doctype, ProcessingInstruction)):
            return
        if isinstance(node, NavigableString):
            self._text(str(node))
            return
        if isinstance(node, Tag):
            self._element(node)

    def _element(self, tag: Tag) -> None:
        name = tag.name.lower() if tag.name else ""

        if name in SKIPPED_TAGS:
            return

        if name in BLOCK_TAGS:
            self._blank_line()
            self._children(tag)
            self._blank_line()
        elif name == "br":
            self._write("\n")
            self._pending_space = False
            self._glue = False
        elif name in HEADING_TAGS:
            self._blank_line()
            self._write("=== ")
            self._glue = True
            self._children(tag)
            self._write(" ===")
            self._blank_line()
        elif name in EMPHASIS:
            marker = EMPHASIS[name]
            self._open_inline(marker)
            self._children(tag)
            self._close_inline(marker)
        elif name == "a":
            self._link(tag)
        elif name in ("ul", "ol"):
            self._newline()
            self._children(tag)
            self._newline()
        elif name == "li":
            self._newline()
            self._write("• ")
            self._glue = True
            self._children(tag)
            self._newline()
        elif name == "blockquote":
            self._newline()
            self._write(">>> ")
            self._glue = True
            self._children(tag)
            self._newline()
        elif name == "hr":
            self._newline()
            self._write(RULE + "\n")
        elif name == "table":
            self._table(tag)
        else:
            self._children(tag)

    def _link(self, tag: Tag) -> None:
        text = _collapse(tag.get_text(" "))
        href = tag.get("href")
        if isinstance(href, list):
            href = " ".join(href)
        self._separate(False)
        if href:
            self._write(f"[{text or href}]({href})")
        else:
            self._write(text)
        self._pending_space = False
        self._glue = False

    def _table(self, table: Tag) -> None:
        rows: list[list[str]] = []
        for tr in table.find_all("tr"):
            if tr.find_parent("table") is not table:
                continue
            cells = [
                _collapse(cell.get_text(" "))
                for cell in tr.find_all(["td", "th"], recursive=False)
            ]
            if cells:
                rows.append(cells)

        if not rows:
            return

        columns = max(len(row) for row in rows)
        widths = [0] * columns
        for row in rows:
            for i, cell in enumerate(row):
                widths[i] = max(widths[i], len(cell))

        self._blank_line()
        for index, row in enumerate(rows):
            padded = [
                (row[i] if i < len(row) else "").ljust(widths[i])
                for i in range(columns)
            ]
            self._write("| " + " | ".join(padded) + " |\n")
            if index == 0 and len(rows) > 1:
                self._write("|" + "|".join("-" * (w + 2) for w in widths) + "|\n")
        self._blank_line()


def html_to_text(html: str) -> str:
    """
    Convert an HTML document to readable plain text.

    Args:
        html: HTML source.

    Returns:
        Formatted text with runs of blank lines collapsed.

    Raises:
        ValueError: If the document cannot be converted.
    """
    try:
        soup = BeautifulSoup(html, "html.parser")
        return _TextConverter().convert(soup)
    except Exception as e:
        logger.debug("HTML conversion failed: %s", e)
        raise ValueError(f"Failed to convert HTML: {e}") from e


def fragments_to_text(fragments: Sequence[str]) -> str:
    """Join HTML fragments and convert them to plain text."""
    return html_to_text("".join(fragments))

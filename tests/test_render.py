"""
Tests for the pure rendering helpers.

Tests cover:
- Filtering and sorting
- Truncation and column layout
- Row and detail formatting
"""

from conftest import make_attachment, make_detail, make_message

from client.ui.render import (
    SortMode,
    build_view,
    columns_for_width,
    confirm_lines,
    filter_messages,
    footer_hints,
    format_detail,
    format_row,
    help_lines,
    scroll_offset,
    sort_messages,
    title_line,
    truncate,
    wrap_lines,
)


def failing_converter(fragments):
    raise ValueError("broken markup")


# =============================================================================
# Filtering and Sorting
# =============================================================================

class TestFilterAndSort:
    """Tests for the view pipeline."""

    def test_empty_query_is_identity(self, inbox):
        assert filter_messages(inbox, "") == inbox

    def test_filter_is_case_insensitive(self, inbox):
        assert [m.id for m in filter_messages(inbox, "INVOICE")] == ["m2"]

    def test_filter_matches_sender_and_preview(self, inbox):
        assert [m.id for m in filter_messages(inbox, "news.test")] == ["m3"]
        assert [m.id for m in filter_messages(inbox, "amount")] == ["m2"]

    def test_date_sort_is_newest_first(self, inbox):
        shuffled = [inbox[2], inbox[0], inbox[1]]
        assert [m.id for m in sort_messages(shuffled, SortMode.DATE)] == ["m1", "m2", "m3"]

    def test_subject_sort_is_raw_lexicographic(self):
        messages = [
            make_message("a", subject="beta"),
            make_message("b", subject="Zulu"),
            make_message("c", subject="alpha"),
        ]
        assert [m.id for m in sort_messages(messages, SortMode.SUBJECT)] == ["b", "c", "a"]

    def test_sort_is_idempotent(self, inbox):
        for mode in SortMode:
            once = sort_messages(inbox, mode)
            assert sort_messages(once, mode) == once

    def test_build_view_filters_then_sorts(self, inbox):
        view = build_view(inbox, "shop", SortMode.SENDER)
        assert [m.id for m in view] == ["m2", "m1"]

    def test_sort_mode_cycle(self):
        assert SortMode.DATE.next() == SortMode.SENDER
        assert SortMode.SENDER.next() == SortMode.SUBJECT
        assert SortMode.SUBJECT.next() == SortMode.DATE


# =============================================================================
# Table Layout
# =============================================================================

class TestTableLayout:
    """Tests for truncation, columns and rows."""

    def test_truncate_keeps_whole_words(self):
        assert truncate("Your monthly invoice is ready", 20) == "Your monthly..."

    def test_truncate_hard_cuts_narrow_columns(self):
        assert truncate("abcdefghijkl", 5) == "abcde"

    def test_truncate_long_single_word(self):
        assert truncate("supercalifragilistic", 12) == "supercali..."

    def test_truncate_short_text_untouched(self):
        assert truncate("short", 10) == "short"
        assert truncate("anything", 0) == ""

    def test_column_tiers(self):
        assert [c.title for c in columns_for_width(79)] == ["✓", "From", "Subject", "Date"]
        assert [c.title for c in columns_for_width(80)] == [
            "✓", "@", "From", "Subject", "Preview", "Date",
        ]
        wide = columns_for_width(150)
        assert wide[3].width == 65
        assert wide[2].width == 25

    def test_subject_column_has_minimum_width(self):
        assert columns_for_width(40)[2].width == 20

    def test_format_row_pads_every_cell(self):
        message = make_message("m1", sender="alice@example.com", subject="Hi",
                               has_attachments=True)
        columns = columns_for_width(100)
        cells = format_row(message, columns, selected=True)

        assert [len(cell) for cell in cells] == [c.width for c in columns]
        assert cells[0].strip() == "✓"
        assert cells[1].strip() == "@"
        assert cells[5].strip() == "01/03 12:00"

    def test_format_row_flattens_whitespace(self):
        message = make_message("m1", subject="Line one\nLine two")
        cells = format_row(message, columns_for_width(100))
        assert cells[3].startswith("Line one Line two")

    def test_scroll_offset_keeps_cursor_visible(self):
        assert scroll_offset(cursor=2, offset=5, height=10) == 2
        assert scroll_offset(cursor=14, offset=0, height=10) == 5
        assert scroll_offset(cursor=3, offset=0, height=10) == 0


# =============================================================================
# Text Screens
# =============================================================================

class TestTextScreens:
    """Tests for titles, footers and the detail body."""

    def test_title_line(self):
        assert title_line("me@x.test", 1) == "Burnmail - me@x.test (1 message)"
        assert title_line("me@x.test", 3) == "Burnmail - me@x.test (3 messages)"

    def test_footer_shows_modes(self):
        lines = footer_hints(SortMode.SUBJECT, auto_refresh=False, bulk_mode=True)
        assert lines[0].startswith("Sort: Subject")
        assert "a:auto:OFF" in lines[1]
        assert "space:select" in lines[1]

    def test_detail_prefers_plain_text(self):
        detail = make_detail("m1", text="plain body", html=("<p>html body</p>",))
        lines = format_detail(detail, failing_converter)

        assert lines[0] == "From: alice@example.com"
        assert lines[2] == "Date: 01/03/2024 12:00:00"
        assert "plain body" in lines
        assert not any("browser" in line for line in lines)

    def test_detail_converts_html(self):
        detail = make_detail("m1", html=("<p>html body</p>",))
        lines = format_detail(detail, lambda fragments: "converted")

        assert "converted" in lines
        assert lines[-1] == "Press 'o' to open HTML in browser"

    def test_detail_falls_back_to_raw_html(self):
        detail = make_detail("m1", html=("<p>raw</p>",))
        lines = format_detail(detail, failing_converter)

        assert "[HTML content - press 'o' to open in browser]" in lines
        assert "<p>raw</p>" in lines

    def test_detail_lists_attachments(self):
        detail = make_detail(
            "m1", text="body", attachments=(make_attachment("a1", "report.pdf", 2048),)
        )
        lines = format_detail(detail, failing_converter)

        assert "Attachments (1)" in lines
        assert "1. report.pdf (application/pdf, 2.0 KB)" in lines

    def test_wrap_lines(self):
        assert wrap_lines(["aaaa bbbb cccc", ""], 9) == ["aaaa bbbb", "cccc", ""]

    def test_help_and_confirm(self):
        assert help_lines()[0] == "Burnmail - Help"
        assert "Are you sure you want to quit the application?" in confirm_lines(
            "quit the application"
        )

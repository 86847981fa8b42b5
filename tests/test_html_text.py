"""
Tests for HTML to text conversion.
"""

from client.services.html_text import fragments_to_text, html_to_text


class TestHtmlToText:
    """Tests for the structure kept by the converter."""

    def test_paragraph_with_bold(self):
        assert html_to_text("<p>Hello <b>world</b>!</p>") == "Hello *world*!"

    def test_heading_and_paragraph(self):
        assert html_to_text("<h1>Title</h1><p>Body</p>") == "=== Title ===\n\nBody"

    def test_list_items(self):
        assert html_to_text("<ul><li>one</li><li>two</li></ul>") == "• one\n• two"

    def test_line_break(self):
        assert html_to_text("line1<br>line2") == "line1\nline2"

    def test_link_keeps_target(self):
        assert html_to_text('<a href="https://x.test">Site</a>') == "[Site](https://x.test)"

    def test_scripts_and_styles_are_skipped(self):
        html = "<head><title>T</title><style>p{}</style></head><p>Hi</p><script>x()</script>"
        assert html_to_text(html) == "Hi"

    def test_table(self):
        html = "<table><tr><th>A</th><th>B</th></tr><tr><td>1</td><td>22</td></tr></table>"
        assert html_to_text(html) == "| A | B  |\n|---|----|\n| 1 | 22 |"

    def test_blank_runs_collapse(self):
        text = html_to_text("<div><p>one</p></div><div></div><div><p>two</p></div>")
        assert text == "one\n\ntwo"

    def test_fragments_are_joined(self):
        assert fragments_to_text(["<p>Hello ", "<i>you</i></p>"]) == "Hello _you_"

from __future__ import annotations

import pytest

from wayfinder.sanitizer import clean_html, truncate_text


def test_clean_html_strips_scripts_and_converts_breaks() -> None:
    assert clean_html("<script>x</script><p>Hello<br>World</p>") == "Hello\nWorld"


def test_clean_html_drops_style_noscript_and_form_controls() -> None:
    markup = (
        "<html><head><style>body { color: red; }</style></head>"
        "<body><noscript>Enable JS</noscript>"
        "<form><input type='text' value='secret'><select name='choice'></form>"
        "<h1>Title</h1><div>Body text</div></body></html>"
    )
    assert clean_html(markup) == "Title Body text"


def test_clean_html_is_case_insensitive_for_blocks() -> None:
    assert clean_html("<SCRIPT type='text/javascript'>alert(1)</SCRIPT><P>Kept</P>") == "Kept"


def test_clean_html_decodes_entities_and_collapses_whitespace() -> None:
    markup = "<p>Fish &amp; chips</p>\n\n\n<p>  &lt;tasty&gt;   </p>"
    assert clean_html(markup) == "Fish & chips <tasty>"


@pytest.mark.parametrize("markup", [None, "", "   \n\t "])
def test_clean_html_blank_input(markup) -> None:
    assert clean_html(markup) == ""


def test_clean_html_output_has_no_tags_or_outer_whitespace() -> None:
    cleaned = clean_html("<div>\n  <span>one</span>\n  <b>two</b>\n</div>")
    assert cleaned == "one two"
    assert cleaned == cleaned.strip()
    assert "<" not in cleaned


def test_clean_html_is_idempotent_on_plain_text() -> None:
    once = clean_html("<p>Hello<br>World</p><p>Again</p>")
    assert clean_html(once) == once


def test_truncate_text_appends_ellipsis_past_limit() -> None:
    assert truncate_text("abcdef", 3) == "abc..."
    assert truncate_text("abc", 3) == "abc"
    assert len(truncate_text("x" * 5000)) == 4003

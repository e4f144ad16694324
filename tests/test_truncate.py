from slacksite.truncate import html_closing_tags, pop_matching_tag, truncate_text


def test_truncate_text_no_truncation():
    assert truncate_text("  hello world  ", 100) == "hello world"


def test_truncate_text_empty():
    assert truncate_text("   ", 5) == ""


def test_truncate_text_max_zero():
    assert truncate_text("abc", 0) == "..."
    assert truncate_text("", 0) == ""


def test_truncate_text_truncates_runes():
    got = truncate_text("abcd", 3)
    assert got.endswith("...")
    assert got.startswith("abc")


def test_truncate_text_utf8_runes():
    assert truncate_text("日本語xyz", 3) == "日本語..."


def test_truncate_text_closes_open_tags():
    got = truncate_text("<b>hello there</b>", 8)
    assert got.endswith("...")
    assert "</b>" in got


def test_truncate_text_void_element():
    got = truncate_text("<br>ab", 3)
    assert "</br>" not in got
    assert got.endswith("...")


def test_truncate_text_self_closing():
    got = truncate_text("<img src='x'/>abc", 5)
    assert got.endswith("...")
    assert "</img>" not in got


def test_truncate_text_extends_past_incomplete_tag():
    got = truncate_text('aa<a href="http://x.com">b', 4)
    assert got.endswith("...")
    assert got.startswith('aa<a href="http://x.com">')


def test_truncate_text_incomplete_tag_dropped():
    got = truncate_text("a" * 20 + "<bad", 10)
    assert "<bad" not in got


def test_html_closing_tags_nested():
    assert html_closing_tags("<div><span>in") == "</span></div>"


def test_html_closing_tags_closing_tag_pops():
    assert html_closing_tags("<div></div><span>x") == "</span>"


def test_html_closing_tags_void_br():
    assert html_closing_tags("<br><div>x") == "</div>"


def test_pop_matching_tag():
    assert pop_matching_tag(["div", "span", "p"], "span") == ["div"]
    assert pop_matching_tag(["a", "b"], "missing") == ["a", "b"]
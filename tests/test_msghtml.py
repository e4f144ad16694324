from slacksite.models import Message
from slacksite.msghtml import render


def _rich(*elements):
    return [{"type": "rich_text", "elements": list(elements)}]


def _section(*inline):
    return {"type": "rich_text_section", "elements": list(inline)}


def test_render_none():
    assert render(None) == ""


def test_render_plain_text():
    msg = Message(text='a <b> & "quotes"')
    assert render(msg) == "a &lt;b&gt; &amp; &#34;quotes&#34;"


def test_render_blocks_without_rich_text_fall_back_to_text():
    msg = Message(
        text="fallback",
        blocks=[{"type": "section", "text": {"type": "plain_text", "text": "ignored"}}],
    )
    assert render(msg) == "fallback"


def test_render_rich_text_section():
    msg = Message(
        text="ignored",
        blocks=_rich(
            _section(
                {"type": "text", "text": "Hello "},
                {
                    "type": "text",
                    "text": "world",
                    "style": {"bold": True, "italic": True, "code": True, "strike": True},
                },
            )
        ),
    )
    got = render(msg)
    assert "Hello" in got
    assert "<b>" in got
    assert "ignored" not in got


def test_render_preformatted():
    msg = Message(
        blocks=_rich(
            {
                "type": "rich_text_preformatted",
                "elements": [{"type": "text", "text": "line1\nline2"}],
            }
        )
    )
    got = render(msg)
    assert got.strip().startswith("<pre>")
    assert "</pre>" in got


def test_render_preformatted_empty_omitted():
    msg = Message(
        text="plain",
        blocks=_rich({"type": "rich_text_preformatted", "elements": []}),
    )
    assert render(msg) == "plain"


def test_render_rich_text_list():
    msg = Message(
        blocks=_rich({"type": "rich_text_list", "elements": [{"type": "text", "text": "item"}]})
    )
    assert render(msg) == "item"


def test_render_quote():
    msg = Message(
        blocks=_rich({"type": "rich_text_quote", "elements": [{"type": "text", "text": "cited"}]})
    )
    assert "<blockquote>" in render(msg)


def test_render_link():
    msg = Message(
        blocks=_rich(
            _section(
                {"type": "link", "url": "https://e.com/x?a=1&b=2", "text": 'say "hi"'},
                {"type": "link", "url": "https://bare.com/"},
            )
        )
    )
    got = render(msg)
    assert 'href="https://e.com/x?a=1&amp;b=2"' in got
    assert "say &#34;hi&#34;" in got
    assert ">https://bare.com/</a>" in got


def test_render_link_empty_url():
    msg = Message(blocks=_rich(_section({"type": "link", "url": "", "text": "x"})))
    assert render(msg) == ""


def test_render_emoji_user_channel_broadcast():
    msg = Message(
        blocks=_rich(
            _section(
                {"type": "emoji", "name": "wave"},
                {"type": "user", "user_id": "U123"},
                {"type": "channel", "channel_id": "C456"},
                {"type": "broadcast", "range": "here"},
                {"type": "broadcast"},
            )
        )
    )
    got = render(msg)
    for sub in ["wave", 'data-user-id="U123"', 'data-channel-id="C456"', 'data-range="here"', 'data-range="channel"']:
        assert sub in got


def test_render_unknown_inline_ignored():
    msg = Message(
        blocks=_rich(_section({"type": "unknown_thing"}, {"type": "text", "text": "ok"}))
    )
    assert render(msg) == "ok"


def test_render_non_map_block_skipped():
    msg = Message(text="plain", blocks=["not-a-map", 42])
    assert render(msg) == "plain"


def test_render_trim_space():
    msg = Message(blocks=_rich(_section({"type": "text", "text": "  x  "})))
    assert render(msg) == "x"
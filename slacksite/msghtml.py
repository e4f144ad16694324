"""Render Slack message bodies as HTML."""

from __future__ import annotations

from typing import Any, Callable

from slacksite.models import Message

_ESCAPES = str.maketrans(
    {"&": "&amp;", "'": "&#39;", "<": "&lt;", ">": "&gt;", '"': "&#34;"}
)


def _escape(text: str) -> str:
    return text.translate(_ESCAPES)


def _str_field(element: dict, key: str) -> str:
    value = element.get(key)
    return value if isinstance(value, str) else ""


def render(msg: Message | None) -> str:
    """Return the message body as HTML.

    Rich-text blocks are rendered when present and non-empty; otherwise the
    plain text is escaped.
    """
    if msg is None:
        return ""
    if msg.blocks:
        rendered = _render_blocks(msg.blocks)
        if rendered:
            return rendered.strip()
    return _escape(msg.text)


def _render_blocks(blocks: list[Any]) -> str:
    parts = []
    for block in blocks:
        if not isinstance(block, dict) or _str_field(block, "type") != "rich_text":
            continue
        elements = block.get("elements")
        if isinstance(elements, list):
            parts.extend(_render_block_element(e) for e in elements)
    return "".join(parts)


def _wrap(tag: str, inner: str) -> str:
    return f"<{tag}>{inner}</{tag}>" if inner else ""


def _render_block_element(element: Any) -> str:
    if not isinstance(element, dict):
        return ""
    kind = _str_field(element, "type")
    inner = _render_inline_elements(element.get("elements"))
    if kind in ("rich_text_section", "rich_text_list"):
        return inner
    if kind == "rich_text_preformatted":
        return _wrap("pre", inner)
    if kind == "rich_text_quote":
        return _wrap("blockquote", inner)
    return ""


def _render_inline_elements(elements: Any) -> str:
    if not isinstance(elements, list):
        return ""
    return "".join(_render_inline_element(e) for e in elements)


def _render_inline_element(element: Any) -> str:
    if not isinstance(element, dict):
        return ""
    renderer = _INLINE_RENDERERS.get(_str_field(element, "type"))
    return renderer(element) if renderer else ""


def _render_text(element: dict) -> str:
    text = _str_field(element, "text")
    if not text:
        return ""
    text = _escape(text)
    style = element.get("style")
    if isinstance(style, dict):
        for flag, tag in (("bold", "b"), ("code", "code"), ("italic", "em"), ("strike", "s")):
            if style.get(flag) is True:
                text = f"<{tag}>{text}</{tag}>"
    return text


def _render_link(element: dict) -> str:
    url = _str_field(element, "url")
    if not url:
        return ""
    url = _escape(url)
    text = _str_field(element, "text")
    label = _escape(text) if text else url
    return f'<a href="{url}">{label}</a>'


def _render_emoji(element: dict) -> str:
    return _escape(_str_field(element, "name"))


def _render_user(element: dict) -> str:
    user_id = _str_field(element, "user_id")
    if not user_id:
        return ""
    escaped = _escape(user_id)
    return f'<span class="slack-user" data-user-id="{escaped}">@{escaped}</span>'


def _render_channel(element: dict) -> str:
    channel_id = _str_field(element, "channel_id")
    if not channel_id:
        return ""
    escaped = _escape(channel_id)
    return f'<span class="slack-channel" data-channel-id="{escaped}">#{escaped}</span>'


def _render_broadcast(element: dict) -> str:
    escaped = _escape(_str_field(element, "range") or "channel")
    return f'<span class="slack-broadcast" data-range="{escaped}">@{escaped}</span>'


_INLINE_RENDERERS: dict[str, Callable[[dict], str]] = {
    "text": _render_text,
    "link": _render_link,
    "emoji": _render_emoji,
    "user": _render_user,
    "channel": _render_channel,
    "broadcast": _render_broadcast,
}
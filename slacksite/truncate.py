"""Truncate HTML snippets while keeping their tags balanced."""

from __future__ import annotations

VOID_HTML_TAGS = frozenset(
    {
        "area", "base", "br", "col", "embed", "hr", "img",
        "input", "link", "meta", "param", "source", "track", "wbr",
    }
)

_QUOTES = ('"', "'")
_SPACES = " \t\n\r\f"


def truncate_text(s: str, max_runes: int) -> str:
    """Strip ``s`` and cut it after ``max_runes`` characters.

    When cut, open HTML tags in the kept prefix are closed and ``...`` is appended.
    """
    s = s.strip()
    if max_runes <= 0:
        cut, truncated = 0, s != ""
    else:
        cut, truncated = min(max_runes, len(s)), len(s) > max_runes
    if not truncated:
        return s
    prefix = s[: _extend_cut_past_incomplete_tag(s, cut)]
    return prefix + html_closing_tags(prefix) + "..."


def _extend_cut_past_incomplete_tag(s: str, cut: int) -> int:
    in_tag = False
    quote = ""
    for ch in s[:cut]:
        if not in_tag:
            if ch == "<":
                in_tag = True
                quote = ""
        elif quote:
            if ch == quote:
                quote = ""
        elif ch in _QUOTES:
            quote = ch
        elif ch == ">":
            in_tag = False
    if not in_tag:
        return cut
    for j in range(cut, len(s)):
        ch = s[j]
        if quote:
            if ch == quote:
                quote = ""
        elif ch in _QUOTES:
            quote = ch
        elif ch == ">":
            return j + 1
    # No closing '>': drop the incomplete tag opener.
    opener = s.rfind("<", 0, cut)
    return opener if opener >= 0 else cut


def _skip_to_tag_end(s: str, start: int) -> int:
    quote = ""
    for i in range(start, len(s)):
        ch = s[i]
        if quote:
            if ch == quote:
                quote = ""
        elif ch in _QUOTES:
            quote = ch
        elif ch == ">":
            return i + 1
    return len(s)


def _is_tag_name_char(ch: str) -> bool:
    return "a" <= ch <= "z" or "A" <= ch <= "Z" or "0" <= ch <= "9"


def _parse_tag_name(s: str, i: int) -> tuple[str, int]:
    start = i
    while i < len(s) and _is_tag_name_char(s[i]):
        i += 1
    return s[start:i].lower(), i


def _is_self_closing_before_gt(s: str, gt: int) -> bool:
    j = gt - 1
    while j >= 0 and s[j] in _SPACES:
        j -= 1
    return j >= 0 and s[j] == "/"


def html_closing_tags(prefix: str) -> str:
    """Return the closing tags needed to balance the open tags in ``prefix``."""
    stack: list[str] = []
    i = 0
    n = len(prefix)
    while i < n:
        if prefix[i] != "<":
            i += 1
            continue
        start = i
        i += 1
        if i >= n:
            break
        if prefix[i] == "/":
            name, i = _parse_tag_name(prefix, i + 1)
            i = _skip_to_tag_end(prefix, i)
            stack = pop_matching_tag(stack, name)
            continue
        if prefix[i] in "!?":
            i = _skip_to_tag_end(prefix, i + 1)
            continue
        name, i = _parse_tag_name(prefix, i)
        if not name:
            i += 1
            continue
        end = _skip_to_tag_end(prefix, i)
        if end <= start:
            break
        if name not in VOID_HTML_TAGS and not _is_self_closing_before_gt(prefix, end - 1):
            stack.append(name)
        i = end
    return "".join(f"</{name}>" for name in reversed(stack))


def pop_matching_tag(stack: list[str], name: str) -> list[str]:
    """Return ``stack`` without its last ``name`` entry and everything above it."""
    for i in range(len(stack) - 1, -1, -1):
        if stack[i] == name:
            return stack[:i]
    return list(stack)
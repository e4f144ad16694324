"""Mirror paths derived from a Slack file's ``url_private``."""

from __future__ import annotations

import hashlib
import unicodedata
from typing import NamedTuple
from urllib.parse import unquote, urlsplit


class MirrorPath(NamedTuple):
    """Three one-character shard directories and a unique file name."""

    a: str
    b: str
    c: str
    filename: str


def _path_base(path: str) -> str:
    """Return the last element of a slash-separated path, as a URL path base."""
    if path == "":
        return "."
    path = path.rstrip("/")
    if path == "":
        return "/"
    base = path.rsplit("/", 1)[-1]
    return base or "/"


def path_from_url(url_private: str, fallback_name: str) -> MirrorPath:
    """Compute the mirror path components for ``url_private``.

    The shards are the first three hex digits of the URL's SHA-256 hash and the
    file name is ``<fullhash>_<base>``. ``fallback_name`` is used when the URL
    has no usable path segment.
    """
    if url_private == "":
        raise ValueError("url_private is empty")
    hex_hash = hashlib.sha256(url_private.encode("utf-8")).hexdigest()
    try:
        parsed = urlsplit(url_private)
    except ValueError as exc:
        raise ValueError(f"parse url: {exc}") from exc
    base = _path_base(unquote(parsed.path))
    if base in ("", "."):
        base = fallback_name or "file"
    filename = f"{hex_hash}_{sanitize_filename(base)}"
    return MirrorPath(hex_hash[0], hex_hash[1], hex_hash[2], filename)


def relative_path(url_private: str, fallback_name: str) -> str:
    """Return ``a/b/c/<hash>_filename`` for ``url_private``."""
    return "/".join(path_from_url(url_private, fallback_name))


def sanitize_filename(name: str) -> str:
    """Drop path separators and control characters so ``name`` is one path component."""
    cleaned = "".join(
        ch
        for ch in name
        if ch not in ("/", "\\", "\0") and unicodedata.category(ch) != "Cc"
    )
    return cleaned or "file"
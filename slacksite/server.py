"""Browse and search an ingested Slack export over HTTP (WSGI)."""

from __future__ import annotations

import re
import sqlite3
from dataclasses import dataclass, fields
from datetime import datetime
from http import HTTPStatus
from pathlib import Path
from typing import Any, Callable, Iterable
from urllib.parse import parse_qs

from jinja2 import DictLoader, Environment, FileSystemLoader, select_autoescape

from slacksite.models import MessageRow
from slacksite.search import SearchIndex
from slacksite.truncate import truncate_text
from slacksite.urlpath import relative_path

CONVERSATION_PAGE_SIZE = 50
SEARCH_PAGE_SIZE = 20
SNIPPET_LENGTH = 200

_SEARCH_FIELDS = ["conversation_id", "ts", "text", "name"]
_NAMED_TABLES = {"channel": "channels", "group": "groups", "mpim": "mpims"}
_CONVERSATION_ROUTES = {"channels": "channel", "groups": "group", "dms": "dm", "mpims": "mpim"}
_INTEGER = re.compile(r"[+-]?\d+")

_DEFAULT_TEMPLATES = {
    "base.html": """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{{ title }}</title></head>
<body>
<nav>
<a href="/">Home</a> <a href="/channels">Channels</a> <a href="/groups">Private channels</a>
<a href="/dms">DMs</a> <a href="/mpims">MPIMs</a>
<form action="/search" method="get"><input type="search" name="q" value="{{ query or '' }}"></form>
</nav>
<main>{{ content|safe }}</main>
</body>
</html>
""",
    "home_content.html": """<h1>Slack export</h1>
<ul>
<li><a href="/channels">Channels</a></li>
<li><a href="/groups">Private channels</a></li>
<li><a href="/dms">DMs</a></li>
<li><a href="/mpims">MPIMs</a></li>
<li><a href="/search">Search</a></li>
</ul>
""",
    "channel_list_content.html": """<h1>Channels</h1>
<ul>{% for c in channels %}
<li><a href="/channels/{{ c.id|urlencode }}">#{{ c.name }}</a> ({{ c.member_count }} members){% if c.is_archived %} archived{% endif %}</li>{% endfor %}
</ul>
""",
    "group_list_content.html": """<h1>Private channels</h1>
<ul>{% for g in groups %}
<li><a href="/groups/{{ g.id|urlencode }}">{{ g.name }}</a> ({{ g.member_count }} members)</li>{% endfor %}
</ul>
""",
    "dm_list_content.html": """<h1>DMs</h1>
<ul>{% for d in dms %}
<li><a href="/dms/{{ d.id|urlencode }}">{{ d.id }}</a> ({{ d.member_count }} members)</li>{% endfor %}
</ul>
""",
    "mpim_list_content.html": """<h1>MPIMs</h1>
<ul>{% for m in mpims %}
<li><a href="/mpims/{{ m.id|urlencode }}">{{ m.name }}</a> ({{ m.member_count }} members)</li>{% endfor %}
</ul>
""",
    "conversation_content.html": """<h1>{{ conversation_name }}</h1>
{% if has_older %}<a class="oldest" href="/{{ conversation_type }}s/{{ conversation_id|urlencode }}">Oldest</a>{% endif %}
{% for m in messages %}
<div class="message" id="m{{ m.ts }}">
<div class="meta">{{ m.user_profile_name or m.user_id }} {{ m.ts|format_ts }}</div>
<div class="text">{{ m.text|safe }}</div>
{% for f in message_files.get(m.ts, []) %}{% if f.mimetype|mime_is_inline %}<img src="{{ f.url_private }}" alt="{{ f.name }}">{% else %}<a class="file" href="{{ f.url_private }}">{{ f.name }}</a>{% endif %}{% endfor %}
</div>{% endfor %}
{% if has_newer %}<a class="newer" href="?after={{ newer_after|urlencode }}">Newer</a>{% endif %}
""",
    "search_content.html": """<h1>Search</h1>
{% if query %}<p>{{ total }} results for "{{ query }}"</p>{% endif %}
{% for r in results %}
<div class="hit">
<a href="/{{ r.conversation_type }}s/{{ r.conversation_id|urlencode }}#m{{ r.ts }}">{{ r.user_name or r.conversation_id }}</a>
<span>{{ r.ts|format_ts }}</span>
<div>{{ r.snippet|safe }}</div>
</div>{% endfor %}
{% if has_more %}<a class="next" href="/search?q={{ query|urlencode }}&amp;page={{ next_page }}">Next</a>{% endif %}
""",
}


@dataclass
class SearchHit:
    """One search result as shown on the search page."""

    id: str = ""
    conversation_id: str = ""
    conversation_type: str = ""
    ts: str = ""
    snippet: str = ""
    user_name: str = ""


@dataclass
class _FileView:
    url_private: str
    name: str
    mimetype: str


class _NotFound(Exception):
    pass


def parse_int(s: str) -> int | None:
    """Return ``s`` as a positive integer, or ``None`` if it is not one."""
    if not _INTEGER.fullmatch(s):
        return None
    n = int(s)
    return n if n > 0 else None


def mime_is_inline(mimetype: str) -> bool:
    """Return True for mimetypes shown inline (images) rather than as links."""
    return mimetype.lower().startswith("image/")


def format_ts(ts: Any) -> str:
    """Format a Slack timestamp as "January 2, 2006 at 3:04 PM" in local time."""
    if not isinstance(ts, str) or ts == "":
        return ""
    seconds = ts.split(".", 1)[0]
    if not _INTEGER.fullmatch(seconds):
        return ts
    try:
        t = datetime.fromtimestamp(int(seconds))
    except (OverflowError, OSError, ValueError):
        return ts
    hour = t.hour % 12 or 12
    meridiem = "AM" if t.hour < 12 else "PM"
    return f"{t:%B} {t.day}, {t.year} at {hour}:{t:%M} {meridiem}"


def infer_conv_type(conv_id: str) -> str:
    """Guess the conversation type from its id prefix (C, G, D, otherwise mpim)."""
    if not conv_id:
        return "channel"
    return {"C": "channel", "G": "group", "D": "dm"}.get(conv_id[0], "mpim")


def split_doc_id(doc_id: str) -> tuple[str, str]:
    """Split an index document id ``<conversation>_<ts>`` at its last underscore."""
    conv_id, sep, ts = doc_id.rpartition("_")
    if not sep:
        return doc_id, ""
    return conv_id, ts


class Server:
    """WSGI application serving conversation pages and search."""

    def __init__(
        self,
        conn: sqlite3.Connection,
        index: SearchIndex | None,
        template_dir: str = "",
        mirror_base_url: str = "",
    ) -> None:
        self.conn = conn
        self.index = index
        self.mirror_base_url = mirror_base_url.removesuffix("/")
        if template_dir:
            directory = Path(template_dir)
            if not any(directory.glob("*.html")):
                raise FileNotFoundError(f"no templates (*.html) in {template_dir}")
            loader: Any = FileSystemLoader(str(directory))
        else:
            loader = DictLoader(_DEFAULT_TEMPLATES)
        self._env = Environment(loader=loader, autoescape=select_autoescape(default=True))
        self._env.filters["format_ts"] = format_ts
        self._env.filters["mime_is_inline"] = mime_is_inline

    # Rendering

    def _render(self, name: str, data: dict[str, Any]) -> str:
        return self._env.get_template(name + ".html").render(**data)

    def _page(self, content_template: str, data: dict[str, Any]) -> str:
        data["content"] = self._render(content_template, data)
        return self._render("base", data)

    def _rows(self, sql: str, params: Iterable[Any] = ()) -> list[dict[str, Any]]:
        cursor = self.conn.execute(sql, tuple(params))
        names = [d[0] for d in cursor.description]
        return [dict(zip(names, row)) for row in cursor.fetchall()]

    def _member_count(self, table: str, column: str, owner_id: str) -> int:
        try:
            row = self.conn.execute(
                f'SELECT COUNT(*) FROM "{table}" WHERE "{column}" = ?', (owner_id,)
            ).fetchone()
        except sqlite3.Error:
            return 0
        return row[0]

    def _list_page(
        self, table: str, members: str, column: str, title: str, key: str, ordered: bool
    ) -> str:
        order = " ORDER BY name ASC" if ordered else ""
        rows = self._rows(f'SELECT * FROM "{table}"{order}')
        for row in rows:
            row["member_count"] = self._member_count(members, column, row["id"])
        return self._page(f"{key[:-1]}_list_content", {"title": title, key: rows})

    # Pages

    def home(self) -> str:
        """Render the home page."""
        return self._page("home_content", {"title": "Home"})

    def channel_list(self) -> str:
        """Render all channels by name with their member counts."""
        return self._list_page("channels", "channel_members", "channel_id", "Channels", "channels", True)

    def group_list(self) -> str:
        """Render all private channels by name with their member counts."""
        return self._list_page("groups", "group_members", "group_id", "Private channels", "groups", True)

    def dm_list(self) -> str:
        """Render all direct messages with their member counts."""
        return self._list_page("dms", "dm_members", "dm_id", "DMs", "dms", False)

    def mpim_list(self) -> str:
        """Render all multi-person DMs by name with their member counts."""
        return self._list_page("mpims", "mpim_members", "mpim_id", "MPIMs", "mpims", True)

    def conversation(self, conv_type: str, conv_id: str, after: str = "") -> str:
        """Render one page of a conversation, oldest first, starting after ``after``."""
        if conv_type not in _CONVERSATION_ROUTES.values():
            raise ValueError(f"unknown conversation type: {conv_type}")
        if not conv_id:
            raise _NotFound(conv_id)
        conv_name = conv_id
        table = _NAMED_TABLES.get(conv_type)
        if table:
            try:
                found = self.conn.execute(
                    f'SELECT name FROM "{table}" WHERE id = ?', (conv_id,)
                ).fetchone()
            except sqlite3.Error:
                found = None
            if found is not None:
                conv_name = found[0]

        sql = "SELECT * FROM messages WHERE conversation_id = ? AND conversation_type = ?"
        params: list[Any] = [conv_id, conv_type]
        if after:
            sql += " AND ts > ?"
            params.append(after)
        sql += " ORDER BY ts ASC LIMIT ?"
        params.append(CONVERSATION_PAGE_SIZE + 1)
        known = {f.name for f in fields(MessageRow)}
        messages = [
            MessageRow(**{k: v for k, v in row.items() if k in known})
            for row in self._rows(sql, params)
        ]
        has_more = len(messages) > CONVERSATION_PAGE_SIZE
        messages = messages[:CONVERSATION_PAGE_SIZE]
        newer_after = messages[-1].ts if messages else ""

        data = {
            "title": conv_name,
            "conversation_id": conv_id,
            "conversation_type": conv_type,
            "conversation_name": conv_name,
            "messages": messages,
            "message_files": self._message_files(conv_id, [m.ts for m in messages]),
            "has_newer": has_more,
            "newer_after": newer_after,
            "has_older": after != "",
        }
        return self._page("conversation_content", data)

    def _message_files(self, conv_id: str, ts_list: list[str]) -> dict[str, list[_FileView]]:
        files: dict[str, list[_FileView]] = {}
        if not ts_list:
            return files
        marks = ", ".join("?" for _ in ts_list)
        try:
            rows = self._rows(
                f"SELECT * FROM message_files WHERE message_conversation_id = ? "
                f"AND message_ts IN ({marks})",
                [conv_id, *ts_list],
            )
        except sqlite3.Error:
            return files
        for row in rows:
            view = _FileView(row["url_private"] or "", row["name"] or "", row["mimetype"] or "")
            if self.mirror_base_url and view.url_private:
                try:
                    view.url_private = (
                        self.mirror_base_url + "/" + relative_path(view.url_private, view.name)
                    )
                except ValueError:
                    pass
            files.setdefault(row["message_ts"], []).append(view)
        return files

    def search(self, query: str, page: int = 1) -> str:
        """Render one page (1-based) of search results for ``query``."""
        page_index = page - 1 if page > 0 else 0
        if self.index is None or query == "":
            return self._search_page(query if self.index is not None else query, [], 0, 1, 0, False)
        result = self.index.search(
            query, page_index * SEARCH_PAGE_SIZE, SEARCH_PAGE_SIZE + 1, _SEARCH_FIELDS
        )
        has_more = len(result.hits) > SEARCH_PAGE_SIZE
        hits = []
        for match in result.hits[:SEARCH_PAGE_SIZE]:
            hit = SearchHit(id=match.id)
            hit.conversation_id, hit.ts = split_doc_id(match.id)
            stored = match.fields or {}

            def text(key: str) -> str:
                value = stored.get(key)
                return value if isinstance(value, str) else ""

            hit.conversation_id = text("conversation_id") or hit.conversation_id
            hit.ts = text("ts") or hit.ts
            if text("text"):
                hit.snippet = truncate_text(text("text"), SNIPPET_LENGTH)
            hit.user_name = text("name")
            hit.conversation_type = infer_conv_type(hit.conversation_id)
            hits.append(hit)
        next_page = page_index + 2 if has_more else 0
        return self._search_page(query, hits, result.total, page_index + 1, next_page, has_more)

    def _search_page(
        self, query: str, results: list[SearchHit], total: int, page: int, next_page: int, has_more: bool
    ) -> str:
        data = {
            "title": "Search",
            "query": query,
            "results": results,
            "total": total,
            "page": page,
            "next_page": next_page,
            "has_more": has_more,
        }
        return self._page("search_content", data)

    # WSGI

    def _dispatch(self, path: str, params: dict[str, list[str]]) -> str:
        def param(name: str) -> str:
            return params.get(name, [""])[0]

        lists: dict[str, Callable[[], str]] = {
            "channels": self.channel_list,
            "groups": self.group_list,
            "dms": self.dm_list,
            "mpims": self.mpim_list,
        }
        if path == "/search":
            raw_page = param("page")
            page = (parse_int(raw_page) if raw_page else None) or 1
            return self.search(param("q"), page)
        parts = path.split("/")
        if len(parts) == 2 and parts[1] in lists:
            return lists[parts[1]]()
        if len(parts) == 3 and parts[1] in _CONVERSATION_ROUTES and parts[2]:
            return self.conversation(_CONVERSATION_ROUTES[parts[1]], parts[2], param("after"))
        return self.home()

    def __call__(self, environ: dict[str, Any], start_response: Callable) -> list[bytes]:
        method = environ.get("REQUEST_METHOD", "GET")
        content_type = "text/html; charset=utf-8"
        if method not in ("GET", "HEAD"):
            status, body = HTTPStatus.METHOD_NOT_ALLOWED, "Method Not Allowed\n"
            content_type = "text/plain; charset=utf-8"
        else:
            params = parse_qs(environ.get("QUERY_STRING", ""), keep_blank_values=True)
            try:
                status, body = HTTPStatus.OK, self._dispatch(environ.get("PATH_INFO", "/") or "/", params)
            except _NotFound:
                status, body = HTTPStatus.NOT_FOUND, "404 page not found\n"
                content_type = "text/plain; charset=utf-8"
            except Exception as exc:  # reported to the client like any handler failure
                status, body = HTTPStatus.INTERNAL_SERVER_ERROR, f"{exc}\n"
                content_type = "text/plain; charset=utf-8"
        payload = body.encode("utf-8")
        headers = [("Content-Type", content_type), ("Content-Length", str(len(payload)))]
        if status is HTTPStatus.METHOD_NOT_ALLOWED:
            headers.append(("Allow", "GET, HEAD"))
        start_response(f"{status.value} {status.phrase}", headers)
        return [b""] if method == "HEAD" else [payload]
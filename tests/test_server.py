import re
import time
from wsgiref.util import setup_testing_defaults

import pytest

from slacksite import db
from slacksite.models import MessageRow
from slacksite.search import new_index, search_document_for_message_row
from slacksite.server import (
    Server,
    format_ts,
    infer_conv_type,
    mime_is_inline,
    parse_int,
    split_doc_id,
)
from slacksite.urlpath import relative_path

FILE_URL = "https://files.slack.com/files-pri/T123-F456/photo.png"
MESSAGE_COUNT = 55


def _ts(i):
    return f"{1700000000 + i}.000100"


@pytest.fixture
def conn(tmp_path):
    connection = db.open_database(tmp_path / db.DB_FILE_NAME)
    db.insert_many(connection, "channels", [
        {"id": "C1", "name": "general"},
        {"id": "C2", "name": "announce"},
    ])
    db.insert_many(connection, "channel_members", [
        {"channel_id": "C1", "user_id": "U1"},
        {"channel_id": "C1", "user_id": "U2"},
    ])
    db.insert_many(connection, "groups", [{"id": "G1", "name": "secret-club"}])
    db.insert_many(connection, "dms", [{"id": "D1", "created": 1}])
    db.insert_many(connection, "mpims", [{"id": "M1", "name": "mpdm-trio"}])
    rows = [
        MessageRow(conversation_id="C1", conversation_type="channel", user_id="U1",
                   ts=_ts(i), text=f"common msg{i:03d}")
        for i in range(MESSAGE_COUNT)
    ]
    rows.append(MessageRow(conversation_id="C2", conversation_type="channel", user_id="U2",
                           ts=_ts(0), text="<b>quick</b> zebra", user_profile_name="alice"))
    db.insert_many(connection, "messages", rows)
    db.insert_many(connection, "message_files", [{
        "message_conversation_id": "C1", "message_ts": _ts(0), "slack_file_id": "F1",
        "url_private": FILE_URL, "name": "photo.png", "mimetype": "image/png",
    }])
    yield connection, rows
    connection.close()


@pytest.fixture
def index(tmp_path, conn):
    _, rows = conn
    idx = new_index(tmp_path)
    idx.batch_index_messages(search_document_for_message_row(r) for r in rows)
    yield idx
    idx.close()


def call(app, path, query="", method="GET"):
    environ = {}
    setup_testing_defaults(environ)
    environ.update(PATH_INFO=path, QUERY_STRING=query, REQUEST_METHOD=method)
    captured = {}

    def start_response(status, headers, exc_info=None):
        captured["status"] = status
        captured["headers"] = dict(headers)

    body = b"".join(app(environ, start_response)).decode()
    return captured["status"], captured["headers"], body


@pytest.fixture
def utc(monkeypatch):
    monkeypatch.setenv("TZ", "UTC")
    time.tzset()
    yield
    monkeypatch.undo()
    time.tzset()


def test_format_ts_utc(utc):
    assert format_ts("1234567890.123456") == "February 13, 2009 at 11:31 PM"


def test_format_ts_shape_and_fallbacks():
    assert re.fullmatch(r"[A-Z][a-z]+ \d{1,2}, \d{4} at \d{1,2}:\d{2} (AM|PM)", format_ts(_ts(0)))
    assert format_ts("") == ""
    assert format_ts(None) == ""
    assert format_ts(12) == ""
    assert format_ts("abc.def") == "abc.def"


@pytest.mark.parametrize("conv_id,expected", [
    ("", "channel"), ("C1", "channel"), ("G1", "group"), ("D1", "dm"), ("X1", "mpim"),
])
def test_infer_conv_type(conv_id, expected):
    assert infer_conv_type(conv_id) == expected


def test_split_doc_id():
    assert split_doc_id("C1_123.45") == ("C1", "123.45")
    assert split_doc_id("a_b_c") == ("a_b", "c")
    assert split_doc_id("noid") == ("noid", "")


def test_mime_is_inline():
    assert mime_is_inline("IMAGE/PNG") is True
    assert mime_is_inline("application/pdf") is False


def test_parse_int():
    assert parse_int("3") == 3
    assert parse_int("+4") == 4
    assert parse_int("0") is None
    assert parse_int("-2") is None
    assert parse_int("x") is None


def test_channel_list_sorted_with_counts(conn):
    html = Server(conn[0], None).channel_list()
    assert html.index("announce") < html.index("general")
    assert "(2 members)" in html


def test_other_lists(conn):
    server = Server(conn[0], None)
    assert "secret-club" in server.group_list()
    assert "/dms/D1" in server.dm_list()
    assert "mpdm-trio" in server.mpim_list()


def test_conversation_first_page(conn):
    html = Server(conn[0], None).conversation("channel", "C1")
    assert "<title>general</title>" in html
    assert "msg000" in html and "msg049" in html
    assert "msg050" not in html
    assert f"?after={_ts(49)}" in html
    assert FILE_URL in html


def test_conversation_next_page(conn):
    html = Server(conn[0], None).conversation("channel", "C1", after=_ts(49))
    assert "msg050" in html and "msg054" in html
    assert "msg049" not in html
    assert "?after=" not in html


def test_conversation_keeps_message_html_and_filters_type(conn):
    server = Server(conn[0], None)
    assert "<b>quick</b> zebra" in server.conversation("channel", "C2")
    assert "zebra" not in server.conversation("group", "C2")


def test_conversation_rejects_unknown_type(conn):
    with pytest.raises(ValueError):
        Server(conn[0], None).conversation("bogus", "C1")


def test_conversation_mirror_base(conn):
    server = Server(conn[0], None, mirror_base_url="https://cdn.example.com/files/")
    html = server.conversation("channel", "C1")
    assert "https://cdn.example.com/files/" + relative_path(FILE_URL, "photo.png") in html
    assert f'src="{FILE_URL}"' not in html


def test_search_without_index_shows_nothing(conn):
    html = Server(conn[0], None).search("a<b")
    assert "a&lt;b" in html
    assert 'class="hit"' not in html


def test_search_finds_message(conn, index):
    html = Server(conn[0], index).search("zebra")
    assert "/channels/C2#m" + _ts(0) in html
    assert "alice" in html
    assert "<b>quick</b> zebra" in html


def test_search_pagination(conn, index):
    server = Server(conn[0], index)
    first = server.search("common", 1)
    assert first.count('class="hit"') == 20
    assert "page=2" in first
    last = server.search("common", 3)
    assert last.count('class="hit"') == MESSAGE_COUNT - 40
    assert 'class="next"' not in last


def test_wsgi_routes(conn, index):
    app = Server(conn[0], index)
    status, headers, body = call(app, "/channels")
    assert status.startswith("200")
    assert headers["Content-Type"].startswith("text/html")
    assert "general" in body
    assert "secret-club" in call(app, "/groups/G1")[2]
    assert "<title>D1</title>" in call(app, "/dms/D1")[2]
    assert "zebra" in call(app, "/search", "q=zebra")[2]
    assert "<title>Home</title>" in call(app, "/nowhere/at/all")[2]


def test_wsgi_bad_query_is_server_error(conn, index):
    status, _, body = call(Server(conn[0], index), "/search", 'q="unterminated')
    assert status.startswith("500")
    assert "unterminated" in body


def test_wsgi_methods(conn):
    app = Server(conn[0], None)
    assert call(app, "/", method="POST")[0].startswith("405")
    status, headers, body = call(app, "/", method="HEAD")
    assert status.startswith("200")
    assert body == ""
    assert int(headers["Content-Length"]) > 0


def test_template_dir(tmp_path, conn):
    templates = tmp_path / "templates"
    templates.mkdir()
    (templates / "base.html").write_text("[{{ content|safe }}]")
    (templates / "home_content.html").write_text("home:{{ title }}")
    assert Server(conn[0], None, template_dir=str(templates)).home() == "[home:Home]"


def test_template_dir_without_templates(tmp_path, conn):
    with pytest.raises(FileNotFoundError):
        Server(conn[0], None, template_dir=str(tmp_path))
import json
from contextlib import closing

import pytest

from slacksite import db, search
from slacksite.cli import build_parser, main


def _export(root):
    root.mkdir()
    (root / "users.json").write_text(json.dumps([{"id": "U1", "name": "alice"}]), encoding="utf-8")
    (root / "channels.json").write_text(json.dumps([{"id": "C1", "name": "general"}]), encoding="utf-8")
    for name in ("groups.json", "dms.json", "mpims.json"):
        (root / name).write_text("[]", encoding="utf-8")
    (root / "general").mkdir()
    (root / "general" / "day.json").write_text(
        json.dumps([{"ts": "1.0", "text": "hello there"}]), encoding="utf-8"
    )
    return root


def test_parser_ingest_arguments():
    args = build_parser().parse_args(["ingest", "--input", "in", "--data", "out"])
    assert (args.command, args.input, args.data) == ("ingest", "in", "out")


def test_parser_serve_defaults():
    args = build_parser().parse_args(["serve", "--data", "d"])
    assert args.addr == ":8080"
    assert args.mirror == ""


def test_parser_requires_data():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["reindex"])


def test_main_without_command_prints_help(capsys):
    assert main([]) == 0
    out = capsys.readouterr().out
    assert "ingest" in out and "reindex" in out and "serve" in out


def test_main_ingest_then_reindex(tmp_path):
    export = _export(tmp_path / "export")
    data = tmp_path / "data"
    assert main(["ingest", "--input", str(export), "--data", str(data)]) == 0
    with closing(db.open_read_only(data / db.DB_FILE_NAME)) as conn:
        assert conn.execute("SELECT text FROM messages").fetchone()[0] == "hello there"
    assert main(["reindex", "--data", str(data)]) == 0
    with search.open_existing(search.index_path(data)) as index:
        assert [h.id for h in index.search("hello", 0, 10).hits] == ["C1_1.0"]


def test_main_reports_missing_database(tmp_path, capsys):
    assert main(["reindex", "--data", str(tmp_path)]) == 1
    assert "database not found" in capsys.readouterr().err


def test_main_reports_missing_export(tmp_path, capsys):
    assert main(["ingest", "--input", str(tmp_path / "absent"), "--data", str(tmp_path / "data")]) == 1
    assert capsys.readouterr().err.startswith("slack-site: ")
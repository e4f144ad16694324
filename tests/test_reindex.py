from contextlib import closing

import pytest

from slacksite import db, search
from slacksite.models import MessageRow, SearchDocument
from slacksite.reindex import run_reindex


def _make_db(data_dir, rows):
    data_dir.mkdir(parents=True, exist_ok=True)
    with closing(db.open_database(data_dir / db.DB_FILE_NAME)) as conn:
        db.insert_many(conn, "messages", rows)


def _rows():
    return [
        MessageRow(conversation_id="C1", conversation_type="channel", user_id="U1",
                   ts="1.0", text="common alpha", user_profile_name="alice"),
        MessageRow(conversation_id="C1", conversation_type="channel", user_id="U2",
                   ts="2.0", text="common beta"),
        MessageRow(conversation_id="D1", conversation_type="dm", user_id="U1",
                   ts="3.0", text="common gamma", team="T1"),
    ]


def test_reindex_indexes_every_message(tmp_path):
    rows = _rows()
    _make_db(tmp_path, rows)
    assert run_reindex(tmp_path) == len(rows)
    with search.open_existing(search.index_path(tmp_path)) as index:
        result = index.search("common", 0, 100)
        assert {h.id for h in result.hits} == {f"{r.conversation_id}_{r.ts}" for r in rows}


def test_reindex_keeps_stored_fields(tmp_path):
    _make_db(tmp_path, _rows())
    run_reindex(tmp_path)
    with search.open_existing(search.index_path(tmp_path)) as index:
        hit = index.search("alpha", 0, 10, ["conversation_id", "ts", "name", "text"]).hits[0]
        assert hit.fields == {"conversation_id": "C1", "ts": "1.0", "name": "alice", "text": "common alpha"}


def test_reindex_pages_across_batches(tmp_path, monkeypatch):
    monkeypatch.setattr(search, "MESSAGE_INDEX_BATCH_SIZE", 2)
    rows = [
        MessageRow(conversation_id=f"C{i % 2}", conversation_type="channel", ts=f"{i}.5", text=f"shared n{i}")
        for i in range(5)
    ]
    _make_db(tmp_path, rows)
    assert run_reindex(tmp_path) == len(rows)
    with search.open_existing(search.index_path(tmp_path)) as index:
        assert index.search("shared", 0, 100).total == len(rows)


def test_reindex_exact_multiple_of_batch(tmp_path, monkeypatch):
    monkeypatch.setattr(search, "MESSAGE_INDEX_BATCH_SIZE", 3)
    rows = _rows()
    _make_db(tmp_path, rows)
    assert run_reindex(tmp_path) == len(rows)


def test_reindex_replaces_existing_index(tmp_path):
    _make_db(tmp_path, _rows())
    with search.new_index(tmp_path) as index:
        index.batch_index_messages([SearchDocument(id="X_1", text="stale leftover")])
    run_reindex(tmp_path)
    with search.open_existing(search.index_path(tmp_path)) as index:
        assert index.search("stale", 0, 10).total == 0


def test_reindex_empty_database(tmp_path, capsys):
    _make_db(tmp_path, [])
    assert run_reindex(tmp_path) == 0
    assert "Reindex complete: 0 messages" in capsys.readouterr().out


def test_reindex_missing_database(tmp_path):
    with pytest.raises(db.DatabaseNotFoundError):
        run_reindex(tmp_path)
    assert not search.index_path(tmp_path).exists()
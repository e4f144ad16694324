"""Rebuild the search index from an existing database."""

from __future__ import annotations

import os
import sqlite3
from contextlib import closing
from pathlib import Path
from typing import Iterator

from slacksite import db, search
from slacksite.models import MessageRow

PROGRESS_AT = 50_000

_COLUMNS = (
    "conversation_id",
    "conversation_type",
    "user_id",
    "type",
    "ts",
    "text",
    "user_profile_name",
    "team",
)


def _message_batches(conn: sqlite3.Connection, size: int) -> Iterator[list[MessageRow]]:
    """Yield messages ordered by (conversation_id, ts), using keyset pagination."""
    columns = ", ".join(_COLUMNS)
    last: tuple[str, str] | None = None
    while True:
        sql = f"SELECT {columns} FROM messages"
        params: list[object] = []
        if last is not None:
            sql += " WHERE (conversation_id, ts) > (?, ?)"
            params.extend(last)
        sql += " ORDER BY conversation_id, ts LIMIT ?"
        params.append(size)
        rows = conn.execute(sql, params).fetchall()
        if not rows:
            return
        batch = [
            MessageRow(**{name: "" if value is None else value for name, value in zip(_COLUMNS, row)})
            for row in rows
        ]
        yield batch
        last = (batch[-1].conversation_id, batch[-1].ts)
        if len(batch) < size:
            return


def run_reindex(data_dir: str | os.PathLike) -> int:
    """Replace the index in ``data_dir`` with one built from its database.

    Returns the number of messages indexed.
    """
    with closing(db.open_read_only(Path(data_dir) / db.DB_FILE_NAME)) as conn:
        path = search.index_path(data_dir)
        total = 0
        with search.new_index(data_dir) as index:
            for batch in _message_batches(conn, search.MESSAGE_INDEX_BATCH_SIZE):
                index.batch_index_messages(search.search_document_for_message_row(row) for row in batch)
                total += len(batch)
                if total % PROGRESS_AT < len(batch):
                    print(f"  indexed {total} messages...")
    print(f"Reindex complete: {total} messages in {path}")
    return total
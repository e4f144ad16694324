"""SQLite storage for an ingested Slack export."""

from __future__ import annotations

import os
import sqlite3
from dataclasses import asdict, is_dataclass
from pathlib import Path
from typing import Any, Iterable, Mapping

BATCH_SIZE = 2000
"""Chunk size for bulk inserts of messages, members and the like."""

DB_FILE_NAME = "slack.db"
"""File name of the database inside a data directory."""


class DatabaseNotFoundError(FileNotFoundError):
    """Raised when an existing database is required but missing."""


_CONVERSATION_COLUMNS = (
    ("id", "VARCHAR", True),
    ("name", "VARCHAR", False),
    ("created", "BIGINT", False),
    ("creator", "VARCHAR", False),
    ("is_archived", "BOOLEAN", False),
)
_TOPIC_COLUMNS = (
    ("topic_value", "VARCHAR", False),
    ("topic_creator", "VARCHAR", False),
    ("topic_last_set", "BIGINT", False),
    ("purpose_value", "VARCHAR", False),
    ("purpose_creator", "VARCHAR", False),
    ("purpose_last_set", "BIGINT", False),
)


def _members(owner: str) -> tuple:
    return ((owner, "VARCHAR", True), ("user_id", "VARCHAR", True))


# Table name -> (column, SQL type, part of primary key); "id" with AUTO is autoincrement.
_AUTO = "AUTO"
TABLES: dict[str, tuple] = {
    "users": (
        ("id", "VARCHAR", True),
        ("team_id", "VARCHAR", False),
        ("name", "VARCHAR", False),
        ("deleted", "BOOLEAN", False),
        ("real_name", "VARCHAR", False),
        ("display_name", "VARCHAR", False),
        ("email", "VARCHAR", False),
        ("is_bot", "BOOLEAN", False),
        ("is_app_user", "BOOLEAN", False),
        ("updated", "BIGINT", False),
    ),
    "channels": _CONVERSATION_COLUMNS[:5] + (("is_general", "BOOLEAN", False),) + _TOPIC_COLUMNS,
    "channel_members": _members("channel_id"),
    "groups": _CONVERSATION_COLUMNS + _TOPIC_COLUMNS,
    "group_members": _members("group_id"),
    "dms": (("id", "VARCHAR", True), ("created", "BIGINT", False)),
    "dm_members": _members("dm_id"),
    "mpims": _CONVERSATION_COLUMNS + _TOPIC_COLUMNS,
    "mpim_members": _members("mpim_id"),
    "messages": (
        ("id", "INTEGER", _AUTO),
        ("conversation_id", "VARCHAR", False),
        ("conversation_type", "VARCHAR", False),
        ("user_id", "VARCHAR", False),
        ("type", "VARCHAR", False),
        ("ts", "VARCHAR", False),
        ("client_msg_id", "VARCHAR", False),
        ("text", "VARCHAR", False),
        ("user_profile_name", "VARCHAR", False),
        ("team", "VARCHAR", False),
        ("user_team", "VARCHAR", False),
        ("source_team", "VARCHAR", False),
    ),
    "message_files": (
        ("id", "INTEGER", _AUTO),
        ("message_conversation_id", "VARCHAR", False),
        ("message_ts", "VARCHAR", False),
        ("slack_file_id", "VARCHAR", False),
        ("url_private", "VARCHAR", False),
        ("name", "VARCHAR", False),
        ("mimetype", "VARCHAR", False),
        ("filetype", "VARCHAR", False),
        ("size", "BIGINT", False),
    ),
    "message_attachments": (
        ("id", "INTEGER", _AUTO),
        ("message_conversation_id", "VARCHAR", False),
        ("message_ts", "VARCHAR", False),
        ("position", "BIGINT", False),
        ("text", "VARCHAR", False),
        ("pretext", "VARCHAR", False),
    ),
    "mirrored_files": (
        ("mirror_root", "VARCHAR", True),
        ("url_private", "VARCHAR", True),
        ("stored_path", "VARCHAR", False),
    ),
}

_UNIQUE_INDEXES = (
    ("idx_messages_conversation_ts", "messages", ("conversation_id", "ts")),
    ("idx_message_files_message_file", "message_files",
     ("message_conversation_id", "message_ts", "slack_file_id")),
    ("idx_message_attachments_message_pos", "message_attachments",
     ("message_conversation_id", "message_ts", "position")),
)


def _quote(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def _create_table_sql(table: str, if_not_exists: bool = False) -> str:
    columns = TABLES[table]
    defs = []
    keys = []
    for name, sql_type, pk in columns:
        if pk == _AUTO:
            defs.append(f"{_quote(name)} INTEGER PRIMARY KEY AUTOINCREMENT")
        else:
            defs.append(f"{_quote(name)} {sql_type}")
            if pk:
                keys.append(_quote(name))
    if keys:
        defs.append(f"PRIMARY KEY ({', '.join(keys)})")
    guard = "IF NOT EXISTS " if if_not_exists else ""
    return f"CREATE TABLE {guard}{_quote(table)} ({', '.join(defs)})"


def _connect(uri: str) -> sqlite3.Connection:
    conn = sqlite3.connect(uri, uri=True, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn


def _require_existing(path: str | os.PathLike) -> None:
    if not Path(path).exists():
        raise DatabaseNotFoundError(f"database not found: {path} (run ingest first)")


def open_database(path: str | os.PathLike) -> sqlite3.Connection:
    """Create a fresh database at ``path``, replacing any existing file."""
    Path(path).unlink(missing_ok=True)
    conn = _connect(Path(path).absolute().as_uri() + "?mode=rwc")
    try:
        create_schema(conn)
    except sqlite3.Error:
        conn.close()
        raise
    return conn


def open_read_only(path: str | os.PathLike) -> sqlite3.Connection:
    """Open an existing database for reading only."""
    _require_existing(path)
    return _connect(Path(path).absolute().as_uri() + "?mode=ro")


def open_read_write(path: str | os.PathLike) -> sqlite3.Connection:
    """Open an existing database read-write, ensuring the mirror state table exists."""
    _require_existing(path)
    conn = _connect(Path(path).absolute().as_uri() + "?mode=rwc")
    try:
        ensure_mirrored_files_table(conn)
    except sqlite3.Error:
        conn.close()
        raise
    return conn


def ensure_mirrored_files_table(conn: sqlite3.Connection) -> None:
    """Create the ``mirrored_files`` table if it is missing."""
    with conn:
        conn.execute(_create_table_sql("mirrored_files", if_not_exists=True))


def create_schema(conn: sqlite3.Connection) -> None:
    """Create every table of the export schema and its unique indexes."""
    with conn:
        for table in TABLES:
            if table != "mirrored_files":
                conn.execute(_create_table_sql(table))
        for index, table, columns in _UNIQUE_INDEXES:
            cols = ", ".join(_quote(c) for c in columns)
            conn.execute(f"CREATE UNIQUE INDEX {_quote(index)} ON {_quote(table)} ({cols})")


def _as_mapping(row: Any) -> Mapping[str, Any]:
    if is_dataclass(row) and not isinstance(row, type):
        return asdict(row)
    if isinstance(row, Mapping):
        return row
    raise TypeError(f"cannot insert row of type {type(row).__name__}")


def insert_many(
    conn: sqlite3.Connection, table: str, rows: Iterable[Any], ignore: bool = False
) -> int:
    """Insert ``rows`` (mappings or dataclasses) into ``table``.

    Unknown keys are dropped and a ``None`` autoincrement id is left to the
    database. With ``ignore`` rows that break a unique constraint are skipped.
    Returns the number of rows inserted.
    """
    if table not in TABLES:
        raise ValueError(f"unknown table: {table}")
    columns = TABLES[table]
    verb = "INSERT OR IGNORE" if ignore else "INSERT"
    inserted = 0
    with conn:
        for row in rows:
            data = _as_mapping(row)
            names = [
                name
                for name, _, pk in columns
                if name in data and not (pk == _AUTO and data[name] is None)
            ]
            sql = (
                f"{verb} INTO {_quote(table)} ({', '.join(_quote(n) for n in names)}) "
                f"VALUES ({', '.join('?' for _ in names)})"
            )
            cursor = conn.execute(sql, [data[n] for n in names])
            inserted += max(cursor.rowcount, 0)
    return inserted
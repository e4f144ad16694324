"""Load a Slack export directory into the database and the search index."""

from __future__ import annotations

import json
import os
import sqlite3
from contextlib import closing
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterator, Sequence, TypeVar

from slacksite import db, search
from slacksite.models import DM, MPIM, Channel, Group, Message, MessageRow, User
from slacksite.msghtml import render
from slacksite.search import SearchIndex

MESSAGE_PROGRESS_AT = 50_000
"""Message progress is printed roughly every this many messages."""

T = TypeVar("T")


@dataclass(frozen=True)
class ConvInfo:
    """The conversation a message directory belongs to."""

    id: str
    ctype: str


def _read_records(path: Path, from_dict: Callable[[Any], T]) -> list[T]:
    """Decode a JSON array file into records built by ``from_dict``."""
    with open(path, encoding="utf-8") as fh:
        data = json.load(fh)
    if data is None:
        return []
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a JSON array")
    records = []
    for item in data:
        if item is None:
            item = {}
        if not isinstance(item, dict):
            raise ValueError(f"{path}: expected an array of objects")
        records.append(from_dict(item))
    return records


def _chunks(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


def _insert_chunked(conn: sqlite3.Connection, table: str, rows: Sequence[Any]) -> None:
    for chunk in _chunks(rows, db.BATCH_SIZE):
        db.insert_many(conn, table, chunk, ignore=True)


def ingest_users(conn: sqlite3.Connection, index: SearchIndex, input_dir: str | os.PathLike) -> int:
    """Store and index ``users.json``; return the number of users."""
    users = _read_records(Path(input_dir) / "users.json", User.from_dict)
    rows = [
        {
            "id": u.id,
            "team_id": u.team_id,
            "name": u.name,
            "deleted": u.deleted,
            "real_name": u.profile.real_name,
            "display_name": u.profile.display_name,
            "email": u.profile.email,
            "is_bot": u.is_bot,
            "is_app_user": u.is_app_user,
            "updated": u.updated,
        }
        for u in users
    ]
    db.insert_many(conn, "users", rows)
    for user in users:
        index.index_user(user)
    print(f"  users: {len(rows)}")
    return len(rows)


def _named_row(conv: Channel | Group | MPIM) -> dict[str, Any]:
    return {
        "id": conv.id,
        "name": conv.name,
        "created": conv.created,
        "creator": conv.creator,
        "is_archived": conv.is_archived,
        "topic_value": conv.topic.value,
        "topic_creator": conv.topic.creator,
        "topic_last_set": conv.topic.last_set,
        "purpose_value": conv.purpose.value,
        "purpose_creator": conv.purpose.creator,
        "purpose_last_set": conv.purpose.last_set,
    }


def _channel_row(channel: Channel) -> dict[str, Any]:
    return {**_named_row(channel), "is_general": channel.is_general}


def _dm_row(dm: DM) -> dict[str, Any]:
    return {"id": dm.id, "created": dm.created}


def _ingest_conversations(
    conn: sqlite3.Connection,
    input_dir: str | os.PathLike,
    conv_map: dict[str, ConvInfo],
    file_name: str,
    from_dict: Callable[[Any], Any],
    ctype: str,
    to_row: Callable[[Any], dict[str, Any]],
    by_name: bool,
) -> tuple[int, int]:
    conversations = _read_records(Path(input_dir) / file_name, from_dict)
    rows = []
    members = []
    for conv in conversations:
        info = ConvInfo(conv.id, ctype)
        conv_map[conv.id] = info
        if by_name:
            conv_map[conv.name] = info
        rows.append(to_row(conv))
        members.extend({f"{ctype}_id": conv.id, "user_id": uid} for uid in conv.members)
    db.insert_many(conn, f"{ctype}s", rows)
    _insert_chunked(conn, f"{ctype}_members", members)
    print(f"  {ctype}s: {len(rows)}, {ctype} members: {len(members)}")
    return len(rows), len(members)


def ingest_channels(
    conn: sqlite3.Connection, input_dir: str | os.PathLike, conv_map: dict[str, ConvInfo]
) -> tuple[int, int]:
    """Store ``channels.json``; return the channel and membership counts."""
    return _ingest_conversations(
        conn, input_dir, conv_map, "channels.json", Channel.from_dict, "channel", _channel_row, True
    )


def ingest_groups(
    conn: sqlite3.Connection, input_dir: str | os.PathLike, conv_map: dict[str, ConvInfo]
) -> tuple[int, int]:
    """Store ``groups.json``; return the group and membership counts."""
    return _ingest_conversations(
        conn, input_dir, conv_map, "groups.json", Group.from_dict, "group", _named_row, True
    )


def ingest_dms(
    conn: sqlite3.Connection, input_dir: str | os.PathLike, conv_map: dict[str, ConvInfo]
) -> tuple[int, int]:
    """Store ``dms.json``; return the DM and membership counts."""
    return _ingest_conversations(
        conn, input_dir, conv_map, "dms.json", DM.from_dict, "dm", _dm_row, False
    )


def ingest_mpims(
    conn: sqlite3.Connection, input_dir: str | os.PathLike, conv_map: dict[str, ConvInfo]
) -> tuple[int, int]:
    """Store ``mpims.json``; return the MPIM and membership counts."""
    return _ingest_conversations(
        conn, input_dir, conv_map, "mpims.json", MPIM.from_dict, "mpim", _named_row, True
    )


class _MessageWriter:
    """Buffers message rows, file rows, attachment rows and search documents."""

    def __init__(self, conn: sqlite3.Connection, index: SearchIndex) -> None:
        self.conn = conn
        self.index = index
        self.messages: list[MessageRow] = []
        self.files: list[dict[str, Any]] = []
        self.attachments: list[dict[str, Any]] = []
        self.docs: list[Any] = []
        self.total_messages = 0
        self.total_files = 0
        self.total_attachments = 0

    def add(self, info: ConvInfo, msg: Message) -> None:
        text = render(msg)
        self.messages.append(
            MessageRow(
                conversation_id=info.id,
                conversation_type=info.ctype,
                user_id=msg.user,
                type=msg.type,
                ts=msg.ts,
                client_msg_id=msg.client_msg_id,
                text=text,
                user_profile_name=msg.user_profile.name if msg.user_profile else "",
                team=msg.team,
                user_team=msg.user_team,
                source_team=msg.source_team,
            )
        )
        self.docs.append(search.search_document_for_message(info.id, msg.ts, msg, text))
        self.files.extend(
            {
                "message_conversation_id": info.id,
                "message_ts": msg.ts,
                "slack_file_id": f.id,
                "url_private": f.url_private,
                "name": f.name,
                "mimetype": f.mimetype,
                "filetype": f.filetype,
                "size": f.size,
            }
            for f in msg.files
        )
        self.attachments.extend(
            {
                "message_conversation_id": info.id,
                "message_ts": msg.ts,
                "position": position,
                "text": a.text,
                "pretext": a.pretext,
            }
            for position, a in enumerate(msg.attachments)
        )
        if len(self.messages) >= db.BATCH_SIZE:
            self.flush_rows()
            if self.total_messages > 0 and self.total_messages % MESSAGE_PROGRESS_AT < db.BATCH_SIZE:
                print(f"  messages: {self.total_messages}...")
            self.flush_index()

    def flush_rows(self) -> None:
        if not self.messages:
            return
        db.insert_many(self.conn, "messages", self.messages, ignore=True)
        self.total_messages += len(self.messages)
        if self.files:
            self.total_files += len(self.files)
            db.insert_many(self.conn, "message_files", self.files, ignore=True)
            self.files = []
        if self.attachments:
            self.total_attachments += len(self.attachments)
            db.insert_many(self.conn, "message_attachments", self.attachments, ignore=True)
            self.attachments = []
        self.messages = []

    def flush_index(self) -> None:
        for chunk in _chunks(self.docs, search.MESSAGE_INDEX_BATCH_SIZE):
            self.index.batch_index_messages(chunk)
        self.docs = []


def _message_files(input_dir: Path, conv_map: dict[str, ConvInfo]) -> Iterator[tuple[ConvInfo, Path]]:
    """Yield each known conversation directory's JSON day files, in name order."""
    with os.scandir(input_dir) as entries:
        dirs = sorted((e for e in entries if e.is_dir()), key=lambda e: e.name)
    for entry in dirs:
        if entry.name.startswith(".") or entry.name not in conv_map:
            continue
        with os.scandir(entry.path) as subs:
            day_files = sorted(
                (s for s in subs if not s.is_dir() and s.name.endswith(".json")),
                key=lambda s: s.name,
            )
        for sub in day_files:
            yield conv_map[entry.name], Path(sub.path)


def ingest_messages(
    conn: sqlite3.Connection,
    index: SearchIndex,
    input_dir: str | os.PathLike,
    conv_map: dict[str, ConvInfo],
) -> tuple[int, int, int]:
    """Store and index every message of every known conversation directory.

    Returns the numbers of messages, files and attachments read; repeated
    messages are read but stored once.
    """
    writer = _MessageWriter(conn, index)
    for info, path in _message_files(Path(input_dir), conv_map):
        for msg in _read_records(path, Message.from_dict):
            writer.add(info, msg)
    writer.flush_rows()
    writer.flush_index()
    print(
        f"  messages: {writer.total_messages}, message files: {writer.total_files}, "
        f"message attachments: {writer.total_attachments}"
    )
    return writer.total_messages, writer.total_files, writer.total_attachments


def run_ingest(input_dir: str | os.PathLike, data_dir: str | os.PathLike) -> None:
    """Build a fresh database and search index in ``data_dir`` from an export."""
    Path(data_dir).mkdir(parents=True, exist_ok=True)
    conv_map: dict[str, ConvInfo] = {}
    with closing(db.open_database(Path(data_dir) / db.DB_FILE_NAME)) as conn, search.new_index(
        data_dir
    ) as index:
        print("Starting ingest...")
        ingest_users(conn, index, input_dir)
        ingest_channels(conn, input_dir, conv_map)
        ingest_groups(conn, input_dir, conv_map)
        ingest_dms(conn, input_dir, conv_map)
        ingest_mpims(conn, input_dir, conv_map)
        ingest_messages(conn, index, input_dir, conv_map)
        print("Ingest complete:", db.DB_FILE_NAME, "and", search.INDEX_DIR, "created in", data_dir)
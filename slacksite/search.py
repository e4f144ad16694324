"""Full-text search index over messages and users."""

from __future__ import annotations

import json
import math
import os
import re
import shutil
import sqlite3
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping

from slacksite.models import Message, MessageRow, SearchDocument, User

INDEX_DIR = "slack.bleve"
"""Directory name of the index inside a data directory."""

MESSAGE_INDEX_BATCH_SIZE = 500
"""Number of message documents sent to the index per batch."""

_STORE_FILE = "store.sqlite"

_STOP_WORDS = frozenset(
    """a an and are as at be but by for if in into is it no not of on or such
    that the their then there these they this to was will with""".split()
)
_WORD = re.compile(r"\w+", re.UNICODE)


class IndexNotFoundError(FileNotFoundError):
    """Raised when an index directory does not exist."""


class QuerySyntaxError(ValueError):
    """Raised when a query string cannot be parsed."""


@dataclass
class DocumentMatch:
    """One hit: the document id, its score and the requested stored fields."""

    id: str
    score: float
    fields: dict[str, Any] | None = None


@dataclass
class SearchResult:
    """Hits for one page and the total number of matching documents."""

    hits: list[DocumentMatch] = field(default_factory=list)
    total: int = 0


def _analyze_positions(text: str) -> list[tuple[int, str]]:
    tokens = []
    for pos, match in enumerate(_WORD.finditer(text)):
        token = match.group().lower()
        if token not in _STOP_WORDS:
            tokens.append((pos, token))
    return tokens


def analyze(text: str) -> list[str]:
    """Split ``text`` into lower-case word tokens without English stop words."""
    return [token for _, token in _analyze_positions(text)]


@dataclass
class _Clause:
    occur: str  # "must", "should" or "must_not"
    field: str | None
    text: str
    phrase: bool


def _read_quoted(query: str, i: int) -> tuple[str, int]:
    end = query.find('"', i + 1)
    if end < 0:
        raise QuerySyntaxError(f"unterminated quote in query: {query!r}")
    return query[i + 1 : end], end + 1


def _parse_query(query: str) -> list[_Clause]:
    clauses = []
    i, n = 0, len(query)
    while i < n:
        if query[i].isspace():
            i += 1
            continue
        occur = "should"
        if query[i] in "+-":
            occur = "must" if query[i] == "+" else "must_not"
            i += 1
            if i >= n or query[i].isspace():
                raise QuerySyntaxError(f"dangling operator in query: {query!r}")
        if query[i] == '"':
            text, i = _read_quoted(query, i)
            clauses.append(_Clause(occur, None, text, True))
            continue
        start = i
        while i < n and not query[i].isspace() and query[i] not in ':"':
            i += 1
        fld = None
        if i < n and query[i] == ":":
            fld = query[start:i]
            if not fld:
                raise QuerySyntaxError(f"empty field name in query: {query!r}")
            i += 1
            if i < n and query[i] == '"':
                text, i = _read_quoted(query, i)
                clauses.append(_Clause(occur, fld, text, True))
                continue
            start = i
        while i < n and not query[i].isspace():
            if query[i] == '"':
                raise QuerySyntaxError(f"unexpected quote in query: {query!r}")
            i += 1
        text = query[start:i]
        if not text:
            raise QuerySyntaxError(f"missing term in query: {query!r}")
        clauses.append(_Clause(occur, fld, text, False))
    return clauses


class SearchIndex:
    """A persistent inverted index stored in a directory."""

    def __init__(self, path: str | os.PathLike, conn: sqlite3.Connection) -> None:
        self.path = Path(path)
        self._conn = conn

    @classmethod
    def _open(cls, path: Path, create: bool) -> SearchIndex:
        conn = sqlite3.connect(path / _STORE_FILE, check_same_thread=False)
        if create:
            with conn:
                conn.execute("CREATE TABLE docs (id TEXT PRIMARY KEY, fields TEXT)")
                conn.execute(
                    "CREATE TABLE postings (term TEXT, field TEXT, doc TEXT, positions TEXT)"
                )
                conn.execute("CREATE INDEX idx_postings_term ON postings (term, field)")
                conn.execute("CREATE INDEX idx_postings_doc ON postings (doc)")
        return cls(path, conn)

    def __enter__(self) -> SearchIndex:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def _index(self, doc_id: str, fields: Mapping[str, Any]) -> None:
        self._conn.execute("DELETE FROM postings WHERE doc = ?", (doc_id,))
        self._conn.execute(
            "INSERT OR REPLACE INTO docs (id, fields) VALUES (?, ?)",
            (doc_id, json.dumps(dict(fields))),
        )
        rows = []
        for name, value in fields.items():
            if not isinstance(value, str):
                continue
            positions: dict[str, list[int]] = {}
            for pos, token in _analyze_positions(value):
                positions.setdefault(token, []).append(pos)
            rows.extend((t, name, doc_id, json.dumps(p)) for t, p in positions.items())
        self._conn.executemany(
            "INSERT INTO postings (term, field, doc, positions) VALUES (?, ?, ?, ?)", rows
        )

    def batch_index_messages(self, docs: Iterable[SearchDocument]) -> None:
        """Index message documents in one transaction, replacing any with the same id."""
        docs = list(docs)
        if not docs:
            return
        with self._conn:
            for doc in docs:
                self._index(doc.id, doc.to_dict())

    def index_user(self, user: User) -> None:
        """Index a user under the id ``user_<id>``."""
        with self._conn:
            self._index(
                "user_" + user.id,
                {
                    "id": user.id,
                    "name": user.name,
                    "real_name": user.profile.real_name,
                    "display_name": user.profile.display_name,
                    "email": user.profile.email,
                },
            )

    def _doc_count(self) -> int:
        return self._conn.execute("SELECT COUNT(*) FROM docs").fetchone()[0]

    def _postings(self, term: str, fld: str | None) -> list[tuple[str, str, list[int]]]:
        if fld is None:
            cur = self._conn.execute(
                "SELECT doc, field, positions FROM postings WHERE term = ?", (term,)
            )
        else:
            cur = self._conn.execute(
                "SELECT doc, field, positions FROM postings WHERE term = ? AND field = ?",
                (term, fld),
            )
        return [(doc, f, json.loads(p)) for doc, f, p in cur]

    def _term_scores(self, term: str, fld: str | None, total: int) -> dict[str, float]:
        postings = self._postings(term, fld)
        docs = {doc for doc, _, _ in postings}
        idf = math.log(1 + total / (1 + len(docs)))
        scores: dict[str, float] = {}
        for doc, _, positions in postings:
            scores[doc] = scores.get(doc, 0.0) + math.sqrt(len(positions)) * idf
        return scores

    def _phrase_scores(self, tokens: list[tuple[int, str]], fld: str | None, total: int) -> dict[str, float]:
        first_pos, first = tokens[0]
        candidates = self._postings(first, fld)
        others = [
            (pos - first_pos, {(d, f): set(p) for d, f, p in self._postings(tok, fld)})
            for pos, tok in tokens[1:]
        ]
        scores: dict[str, float] = {}
        for doc, f, positions in candidates:
            hits = sum(
                1
                for start in positions
                if all(start + off in table.get((doc, f), ()) for off, table in others)
            )
            if hits:
                scores[doc] = scores.get(doc, 0.0) + math.sqrt(hits) * len(tokens)
        return scores

    def _clause_scores(self, clause: _Clause, total: int) -> dict[str, float]:
        tokens = _analyze_positions(clause.text)
        if not tokens:
            return {}
        if clause.phrase and len(tokens) > 1:
            return self._phrase_scores(tokens, clause.field, total)
        scores: dict[str, float] = {}
        for _, token in tokens:
            for doc, score in self._term_scores(token, clause.field, total).items():
                scores[doc] = scores.get(doc, 0.0) + score
        return scores

    def search(
        self,
        query: str,
        offset: int = 0,
        size: int = 10,
        fields: Iterable[str] | None = None,
    ) -> SearchResult:
        """Run a query string and return one page of hits, best first.

        Plain terms are optional, ``+term`` is required, ``-term`` excludes,
        ``"a phrase"`` matches consecutive words and ``field:term`` limits a term
        to one field. Requested ``fields`` are returned with each hit.
        """
        clauses = _parse_query(query)
        total_docs = self._doc_count()
        must = [self._clause_scores(c, total_docs) for c in clauses if c.occur == "must"]
        should = [self._clause_scores(c, total_docs) for c in clauses if c.occur == "should"]
        must_not = [self._clause_scores(c, total_docs) for c in clauses if c.occur == "must_not"]

        scores: dict[str, float]
        if must:
            matched = set(must[0]).intersection(*must[1:])
            scores = {d: sum(m[d] for m in must) for d in matched}
            for s in should:
                for d in matched & set(s):
                    scores[d] += s[d]
        elif should:
            scores = {}
            for s in should:
                for d, v in s.items():
                    scores[d] = scores.get(d, 0.0) + v
        elif must_not:
            scores = {row[0]: 1.0 for row in self._conn.execute("SELECT id FROM docs")}
        else:
            scores = {}
        for excluded in must_not:
            for d in excluded:
                scores.pop(d, None)

        ranked = sorted(scores.items(), key=lambda item: (-item[1], item[0]))
        page = ranked[offset : offset + size] if size > 0 else []
        wanted = list(fields) if fields else []
        hits = []
        for doc_id, score in page:
            stored = None
            if wanted:
                row = self._conn.execute("SELECT fields FROM docs WHERE id = ?", (doc_id,)).fetchone()
                data = json.loads(row[0]) if row else {}
                stored = {k: data[k] for k in wanted if k in data}
            hits.append(DocumentMatch(doc_id, score, stored))
        return SearchResult(hits=hits, total=len(scores))

    def close(self) -> None:
        """Close the index."""
        self._conn.close()


def index_path(output_dir: str | os.PathLike) -> Path:
    """Return the index path under ``output_dir``."""
    return Path(output_dir) / INDEX_DIR


def new_index(output_dir: str | os.PathLike) -> SearchIndex:
    """Create an empty index under ``output_dir``, removing any existing one."""
    path = index_path(output_dir)
    shutil.rmtree(path, ignore_errors=True)
    path.mkdir(parents=True)
    return SearchIndex._open(path, create=True)


def open_existing(path: str | os.PathLike) -> SearchIndex:
    """Open an index previously created at ``path``."""
    path = Path(path)
    if not path.exists():
        raise IndexNotFoundError(f"index not found: {path} (run ingest first)")
    if not (path / _STORE_FILE).is_file():
        raise IndexNotFoundError(f"index store missing in {path}")
    return SearchIndex._open(path, create=False)


def search_document_for_message(
    conversation_id: str, ts: str, msg: Message, text: str
) -> SearchDocument:
    """Build the search document for an exported message with rendered ``text``."""
    return SearchDocument(
        id=f"{conversation_id}_{ts}",
        conversation_id=conversation_id,
        user_id=msg.user,
        ts=msg.ts,
        text=text,
        user_profile_name=msg.user_profile.name if msg.user_profile else "",
        team=msg.team,
    )


def search_document_for_message_row(row: MessageRow) -> SearchDocument:
    """Build the search document for a stored message row."""
    return SearchDocument(
        id=f"{row.conversation_id}_{row.ts}",
        conversation_id=row.conversation_id,
        user_id=row.user_id,
        ts=row.ts,
        text=row.text,
        user_profile_name=row.user_profile_name,
        team=row.team,
    )
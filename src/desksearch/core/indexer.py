"""Maintenance of the derived ``search_index`` table and its DuckDB FTS index."""

from __future__ import annotations

import html
import logging
import re
from datetime import datetime
from typing import Callable, Iterable, Sequence

import duckdb

from desksearch.config.constants import (
    DEFAULT_INDEX_BATCH_SIZE,
    FTS_STEMMER,
    FTS_STOPWORDS,
    MAX_BODY_TEXT_LENGTH,
)
from desksearch.models import SearchRecord
from desksearch.store import RecordStore

logger = logging.getLogger(__name__)


ProgressCallback = Callable[[int, int], None]

INDEX_TABLE = "search_index"
FULLTEXT_FIELDS = (
    "subject",
    "customer_email",
    "customer_name",
    "body_text",
    "thread_from",
    "thread_to",
    "thread_cc",
)

_TAG_RE = re.compile(r"<[^>]+>")

_INDEX_SCHEMA = f"""
CREATE TABLE IF NOT EXISTS {INDEX_TABLE} (
    conversation_id BIGINT NOT NULL,
    number BIGINT,
    mailbox_id BIGINT NOT NULL,
    customer_id BIGINT,
    user_id BIGINT,
    status INTEGER,
    state INTEGER,
    type INTEGER,
    has_attachments BOOLEAN,
    threads_count INTEGER,
    subject VARCHAR,
    customer_email VARCHAR,
    customer_name VARCHAR,
    body_text VARCHAR,
    thread_from VARCHAR,
    thread_to VARCHAR,
    thread_cc VARCHAR,
    created_at TIMESTAMP,
    updated_at TIMESTAMP,
    indexed_at TIMESTAMP
)
"""

_INSERT_SQL = f"INSERT INTO {INDEX_TABLE} VALUES ({', '.join(['?'] * 20)})"


def plain_text(markup: str, limit: int = MAX_BODY_TEXT_LENGTH) -> str:
    """Strip tags and entities from thread HTML and collapse whitespace."""
    text = html.unescape(_TAG_RE.sub(" ", markup or ""))
    return " ".join(text.split())[:limit]


class SearchIndexer:
    """Keeps ``search_index`` in step with the host tables.

    The FTS index is a snapshot in DuckDB. Record writes only mark it
    stale; ``refresh_fulltext`` rebuilds it once for any number of writes.
    """

    def __init__(
        self,
        connection,
        store: RecordStore | None = None,
        *,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._con = connection
        self._store = store or RecordStore(connection)
        self._clock = clock
        self._fulltext_ready = False
        self._fulltext_stale = False
        self.ensure_schema()

    @property
    def fulltext_ready(self) -> bool:
        return self._fulltext_ready

    @property
    def fulltext_stale(self) -> bool:
        """True when rows changed since the FTS index was last built."""
        return self._fulltext_stale

    def ensure_schema(self) -> None:
        self._con.execute(_INDEX_SCHEMA)

    def _row(self, record: SearchRecord, indexed_at: datetime) -> list[object]:
        return [
            record.id,
            record.number,
            record.mailbox_id,
            record.customer_id,
            record.user_id,
            record.status,
            record.state,
            record.type,
            record.has_attachments,
            record.threads_count,
            record.subject,
            record.customer_email,
            record.customer_name,
            plain_text(record.body),
            record.thread_from,
            record.thread_to,
            record.thread_cc,
            record.created_at,
            record.updated_at,
            indexed_at,
        ]

    def _write(self, records: Sequence[SearchRecord]) -> None:
        if not records:
            return
        now = self._clock()
        cur = self._con.cursor()
        try:
            ids = [r.id for r in records]
            placeholders = ",".join(["?"] * len(ids))
            cur.execute(f"DELETE FROM {INDEX_TABLE} WHERE conversation_id IN ({placeholders})", ids)
            cur.executemany(_INSERT_SQL, [self._row(r, now) for r in records])
        finally:
            cur.close()

    def build_fulltext(self) -> bool:
        """(Re)create the FTS index over the derived table.

        Returns False when the fts extension cannot be installed or loaded.
        """
        try:
            self._con.execute("INSTALL fts; LOAD fts;")
            self._con.execute(f"""
                PRAGMA create_fts_index(
                    '{INDEX_TABLE}',
                    'conversation_id',
                    {', '.join(repr(f) for f in FULLTEXT_FIELDS)},
                    stemmer='{FTS_STEMMER}',
                    stopwords='{FTS_STOPWORDS}',
                    overwrite=1
                )
            """)
        except duckdb.Error as exc:
            logger.warning("Full-text index build failed: %s", exc)
            self._fulltext_ready = False
            return False
        self._fulltext_ready = True
        self._fulltext_stale = False
        return True

    def refresh_fulltext(self) -> bool:
        """Rebuild the FTS index only if rows changed since the last build."""
        if not self._fulltext_stale:
            return self._fulltext_ready
        return self.build_fulltext()

    def index_records(self, record_ids: Iterable[int]) -> int:
        """Upsert the given records; ids missing from the host are removed."""
        ids = list(dict.fromkeys(int(i) for i in record_ids))
        if not ids:
            return 0
        records = self._store.load(ids)
        found = {r.id for r in records}
        missing = [i for i in ids if i not in found]

        self._write(records)
        if missing:
            self.remove_records(missing)
        self._fulltext_stale = True
        logger.debug("Indexed %d record(s), dropped %d", len(records), len(missing))
        return len(records)

    def remove_records(self, record_ids: Iterable[int]) -> int:
        ids = [int(i) for i in record_ids]
        if not ids:
            return 0
        placeholders = ",".join(["?"] * len(ids))
        cur = self._con.cursor()
        try:
            cur.execute(f"DELETE FROM {INDEX_TABLE} WHERE conversation_id IN ({placeholders})", ids)
        finally:
            cur.close()
        self._fulltext_stale = True
        return len(ids)

    def rebuild(
        self,
        progress: ProgressCallback | None = None,
        batch_size: int = DEFAULT_INDEX_BATCH_SIZE,
    ) -> int:
        """Clear the derived table, refill it from the host tables, rebuild FTS."""
        total = self._store.count()
        self._con.execute(f"DELETE FROM {INDEX_TABLE}")

        done = 0
        for batch in self._store.iter_batches(batch_size):
            self._write(batch)
            done += len(batch)
            if progress is not None:
                progress(done, total)

        self.build_fulltext()
        logger.info("Rebuilt search index with %d record(s)", done)
        return done

    def count(self) -> int:
        cur = self._con.cursor()
        try:
            row = cur.execute(f"SELECT COUNT(*) FROM {INDEX_TABLE}").fetchone()
        finally:
            cur.close()
        return int(row[0]) if row else 0

"""Read-side adapter over the host's conversation tables in DuckDB.

The host owns ``conversations``, ``threads`` and ``customers``; this module
only reads them and assembles ``SearchRecord`` values with aggregated thread
text. ``ensure_host_schema`` exists for standalone use and tests.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator, Sequence

import duckdb

from desksearch.config.settings import StorageConfig
from desksearch.models import SearchRecord

logger = logging.getLogger(__name__)


HOST_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS customers (
        id BIGINT PRIMARY KEY,
        first_name VARCHAR,
        last_name VARCHAR,
        email VARCHAR
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS conversations (
        id BIGINT PRIMARY KEY,
        number BIGINT,
        subject VARCHAR,
        mailbox_id BIGINT NOT NULL,
        customer_id BIGINT,
        customer_email VARCHAR,
        user_id BIGINT,
        status INTEGER NOT NULL DEFAULT 1,
        state INTEGER NOT NULL DEFAULT 2,
        type INTEGER,
        has_attachments BOOLEAN NOT NULL DEFAULT FALSE,
        threads_count INTEGER NOT NULL DEFAULT 0,
        preview VARCHAR,
        created_at TIMESTAMP,
        updated_at TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS threads (
        id BIGINT PRIMARY KEY,
        conversation_id BIGINT NOT NULL,
        type INTEGER,
        body VARCHAR,
        from_addr VARCHAR,
        to_addr VARCHAR,
        cc_addr VARCHAR,
        created_at TIMESTAMP
    )
    """,
)

# Aliases: c = conversation, t = aggregated threads, cu = customer.
RECORD_COLUMNS = """
    c.id,
    c.number,
    coalesce(c.subject, '') AS subject,
    c.mailbox_id,
    c.customer_id,
    coalesce(c.customer_email, cu.email, '') AS customer_email,
    trim(coalesce(cu.first_name, '') || ' ' || coalesce(cu.last_name, '')) AS customer_name,
    c.user_id,
    c.status,
    c.state,
    c.type,
    coalesce(c.has_attachments, FALSE) AS has_attachments,
    coalesce(c.threads_count, 0) AS threads_count,
    c.created_at,
    c.updated_at,
    coalesce(c.preview, '') AS preview,
    coalesce(t.body, '') AS body,
    coalesce(t.thread_from, '') AS thread_from,
    coalesce(t.thread_to, '') AS thread_to,
    coalesce(t.thread_cc, '') AS thread_cc
"""

RECORD_SOURCE = """
    conversations c
    LEFT JOIN customers cu ON cu.id = c.customer_id
    LEFT JOIN (
        SELECT
            conversation_id,
            string_agg(body, ' ' ORDER BY id) AS body,
            string_agg(from_addr, ' ' ORDER BY id) AS thread_from,
            string_agg(to_addr, ' ' ORDER BY id) AS thread_to,
            string_agg(cc_addr, ' ' ORDER BY id) AS thread_cc
        FROM threads
        GROUP BY conversation_id
    ) t ON t.conversation_id = c.id
"""


def open_database(storage: StorageConfig | str | Path, *, memory_limit_mb: int | None = None):
    """Open (or create) the DuckDB database holding host and search tables."""
    if isinstance(storage, StorageConfig):
        path = storage.database_path
        memory_limit_mb = storage.memory_limit_mb if memory_limit_mb is None else memory_limit_mb
    else:
        path = str(storage)

    if path != ":memory:":
        Path(path).expanduser().parent.mkdir(parents=True, exist_ok=True)

    con = duckdb.connect(database=path)
    if memory_limit_mb is not None:
        con.execute(f"PRAGMA memory_limit='{int(memory_limit_mb)}MB'")
    return con


def ensure_host_schema(connection) -> None:
    for statement in HOST_SCHEMA:
        connection.execute(statement)


def row_to_record(row: Sequence) -> SearchRecord:
    return SearchRecord(
        id=int(row[0]),
        number=int(row[1]) if row[1] is not None else None,
        subject=row[2] or "",
        mailbox_id=int(row[3]),
        customer_id=int(row[4]) if row[4] is not None else None,
        customer_email=row[5] or "",
        customer_name=row[6] or "",
        user_id=int(row[7]) if row[7] is not None else None,
        status=int(row[8]),
        state=int(row[9]),
        type=int(row[10]) if row[10] is not None else None,
        has_attachments=bool(row[11]),
        threads_count=int(row[12] or 0),
        created_at=row[13],
        updated_at=row[14],
        preview=row[15] or "",
        body=row[16] or "",
        thread_from=row[17] or "",
        thread_to=row[18] or "",
        thread_cc=row[19] or "",
    )


class RecordStore:
    """Loads conversations with their aggregated thread text."""

    def __init__(self, connection) -> None:
        self._con = connection

    @property
    def connection(self):
        return self._con

    def _fetchall(self, sql: str, params: Sequence[object] = ()) -> list[tuple]:
        cur = self._con.cursor()
        try:
            return cur.execute(sql, list(params)).fetchall()
        finally:
            cur.close()

    def query(
        self,
        conditions: Sequence[str] = (),
        params: Sequence[object] = (),
        *,
        order_by: str = "c.id",
        order_params: Sequence[object] = (),
        limit: int | None = None,
        offset: int = 0,
    ) -> list[SearchRecord]:
        """Records matching ANDed ``conditions`` (aliases c, t, cu).

        ``order_params`` bind placeholders inside ``order_by``.
        """
        sql = f"SELECT {RECORD_COLUMNS} FROM {RECORD_SOURCE}"
        query_params = list(params)
        if conditions:
            sql += " WHERE " + " AND ".join(conditions)
        sql += f" ORDER BY {order_by}"
        query_params.extend(order_params)
        if limit is not None:
            sql += " LIMIT ? OFFSET ?"
            query_params.extend([int(limit), int(offset)])
        return [row_to_record(row) for row in self._fetchall(sql, query_params)]

    def count(self, conditions: Sequence[str] = (), params: Sequence[object] = ()) -> int:
        sql = f"SELECT COUNT(*) FROM {RECORD_SOURCE}"
        if conditions:
            sql += " WHERE " + " AND ".join(conditions)
        rows = self._fetchall(sql, params)
        return int(rows[0][0]) if rows else 0

    def load(self, record_ids: Sequence[int]) -> list[SearchRecord]:
        """Load records by id, preserving the order of ``record_ids``.

        Ids that no longer exist are skipped.
        """
        ids = [int(i) for i in record_ids]
        if not ids:
            return []
        placeholders = ",".join(["?"] * len(ids))
        by_id = {r.id: r for r in self.query([f"c.id IN ({placeholders})"], ids)}
        return [by_id[i] for i in ids if i in by_id]

    def get(self, record_id: int) -> SearchRecord | None:
        found = self.load([record_id])
        return found[0] if found else None

    def mailbox_of(self, record_id: int) -> int | None:
        rows = self._fetchall("SELECT mailbox_id FROM conversations WHERE id = ?", [int(record_id)])
        return int(rows[0][0]) if rows else None

    def iter_batches(self, batch_size: int) -> Iterator[list[SearchRecord]]:
        """Yield every record in id order, ``batch_size`` at a time."""
        last_id: int | None = None
        while True:
            if last_id is None:
                batch = self.query(limit=batch_size)
            else:
                batch = self.query(["c.id > ?"], [last_id], limit=batch_size)
            if not batch:
                return
            yield batch
            last_id = batch[-1].id

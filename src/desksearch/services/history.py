from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable

from desksearch.config.constants import (
    DEFAULT_MAX_HISTORY,
    MAX_HISTORY_QUERY_LENGTH,
    MIN_HISTORY_QUERY_LENGTH,
    TOP_QUERIES_LIMIT,
)
from desksearch.models import HistoryEntry, SearchStatistics

logger = logging.getLogger(__name__)


class HistoryStore:
    """Per-user search history in the ``search_history`` table.

    Writes append first and trim afterwards; two concurrent writes for the
    same user can leave one extra row until that user's next write.
    """

    def __init__(
        self,
        connection,
        *,
        max_history: int = DEFAULT_MAX_HISTORY,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._con = connection
        self.max_history = max(1, max_history)
        self._clock = clock
        self._ensure_db()

    def _connect(self):
        return self._con.cursor()

    def _ensure_db(self) -> None:
        with self._connect() as con:
            con.execute("CREATE SEQUENCE IF NOT EXISTS search_history_id_seq")
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS search_history (
                    id BIGINT PRIMARY KEY DEFAULT nextval('search_history_id_seq'),
                    user_id BIGINT NOT NULL,
                    query VARCHAR NOT NULL,
                    result_count INTEGER NOT NULL DEFAULT 0,
                    created_at TIMESTAMP NOT NULL
                )
                """
            )

    def record(self, user_id: int, query: str, result_count: int) -> bool:
        """Append a query to the user's history and trim the oldest excess.

        Returns False when the query is too short to keep.
        """
        normalized_query = " ".join(query.split())
        if len(normalized_query) < MIN_HISTORY_QUERY_LENGTH:
            return False
        normalized_query = normalized_query[:MAX_HISTORY_QUERY_LENGTH]

        with self._connect() as con:
            con.execute(
                """
                INSERT INTO search_history (user_id, query, result_count, created_at)
                VALUES (?, ?, ?, ?)
                """,
                [int(user_id), normalized_query, max(0, int(result_count)), self._clock()],
            )
            con.execute(
                """
                DELETE FROM search_history
                WHERE user_id = ?
                  AND id NOT IN (
                    SELECT id FROM search_history
                    WHERE user_id = ?
                    ORDER BY created_at DESC, id DESC
                    LIMIT ?
                  )
                """,
                [int(user_id), int(user_id), self.max_history],
            )
        return True

    def list_for_user(self, user_id: int, limit: int | None = None) -> list[HistoryEntry]:
        """The user's history, newest first."""
        sql = """
            SELECT user_id, query, result_count, created_at
            FROM search_history
            WHERE user_id = ?
            ORDER BY created_at DESC, id DESC
        """
        params: list[object] = [int(user_id)]
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))
        with self._connect() as con:
            rows = con.execute(sql, params).fetchall()
        return [
            HistoryEntry(user_id=int(r[0]), query=r[1], result_count=int(r[2]), created_at=r[3])
            for r in rows
        ]

    def successful_queries(self, user_id: int, prefix: str, limit: int) -> list[str]:
        """The user's past queries starting with ``prefix`` that found something."""
        with self._connect() as con:
            rows = con.execute(
                """
                SELECT query
                FROM search_history
                WHERE user_id = ?
                  AND result_count > 0
                  AND starts_with(lower(query), lower(?))
                GROUP BY query
                ORDER BY COUNT(*) DESC, MAX(created_at) DESC
                LIMIT ?
                """,
                [int(user_id), prefix, int(limit)],
            ).fetchall()
        return [row[0] for row in rows]

    def clear(self, user_id: int) -> int:
        with self._connect() as con:
            row = con.execute(
                "SELECT COUNT(*) FROM search_history WHERE user_id = ?", [int(user_id)]
            ).fetchone()
            con.execute("DELETE FROM search_history WHERE user_id = ?", [int(user_id)])
        return int(row[0]) if row else 0

    def statistics(self, *, top: int = TOP_QUERIES_LIMIT) -> SearchStatistics:
        """Totals over all users plus the most frequent queries."""
        today = self._clock().replace(hour=0, minute=0, second=0, microsecond=0)
        with self._connect() as con:
            totals = con.execute(
                """
                SELECT
                    COUNT(*) AS total_searches,
                    COUNT(DISTINCT query) AS unique_queries,
                    COUNT(*) FILTER (WHERE created_at >= ? AND created_at < ?) AS searches_today
                FROM search_history
                """,
                [today, today + timedelta(days=1)],
            ).fetchone()
            top_rows = con.execute(
                """
                SELECT query, COUNT(*) AS search_count
                FROM search_history
                GROUP BY query
                ORDER BY search_count DESC, query ASC
                LIMIT ?
                """,
                [int(top)],
            ).fetchall()

        return SearchStatistics(
            total_searches=int(totals[0] or 0) if totals else 0,
            unique_queries=int(totals[1] or 0) if totals else 0,
            searches_today=int(totals[2] or 0) if totals else 0,
            top_queries=[(row[0], int(row[1])) for row in top_rows],
        )

"""BM25 search over the derived index using DuckDB's fts extension."""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from typing import Callable, Iterable, Mapping

import duckdb

from desksearch.backends.base import (
    ProgressCallback,
    SearchBackend,
    candidate_window,
    sort_ranked,
    sql_date_order,
)
from desksearch.config.constants import (
    DEFAULT_INDEX_BATCH_SIZE,
    DEFAULT_MAX_CANDIDATES,
    FULLTEXT_SCORE_SCALE,
    MIN_FULLTEXT_TERM_LENGTH,
)
from desksearch.core.filters import INDEX_COLUMNS, filter_sql_conditions
from desksearch.core.indexer import INDEX_TABLE, SearchIndexer
from desksearch.core.relevance import RelevanceModel, like_escape, sql_score_expression
from desksearch.models import (
    BackendResult,
    EngineKind,
    ParsedQuery,
    ResultPage,
    SearchFilters,
    SortOrder,
)
from desksearch.store import RecordStore

logger = logging.getLogger(__name__)


_NON_WORD_RE = re.compile(r"[^\w]+")

FTS_SCHEMA = f"fts_main_{INDEX_TABLE}"

_SEARCH_TEXT = (
    "concat_ws(' ', si.subject, si.customer_email, si.customer_name, "
    "si.body_text, si.thread_from, si.thread_to, si.thread_cc)"
)
_SHORT_COLUMNS = ("si.customer_email", "si.customer_name", "si.thread_from")

# Weighted field -> derived-table column.
FIELD_COLUMNS: dict[str, str] = {
    "subject": "si.subject",
    "customer_email": "si.customer_email",
    "customer_name": "si.customer_name",
    "body": "si.body_text",
    "thread_from": "si.thread_from",
    "thread_to": "si.thread_to",
    "thread_cc": "si.thread_cc",
}


def fulltext_words(parsed: ParsedQuery) -> list[str]:
    """Words eligible for the native index: word characters only, three or more."""
    words: list[str] = []
    for needle in parsed.search_terms:
        for piece in needle.split():
            word = _NON_WORD_RE.sub("", piece).lower()
            if len(word) >= MIN_FULLTEXT_TERM_LENGTH and word not in words:
                words.append(word)
    return words


class FullTextCapability:
    """Lazily checks whether the DuckDB fts extension can be loaded.

    The result is cached on the instance; ``reset`` forces a new check.
    """

    def __init__(self, connection=None, check: Callable[[], bool] | None = None) -> None:
        if check is None and connection is None:
            raise ValueError("FullTextCapability needs a connection or a check")
        self._con = connection
        self._check = check or self._load_extension
        self._supported: bool | None = None

    def _load_extension(self) -> bool:
        try:
            self._con.execute("INSTALL fts; LOAD fts;")
        except duckdb.Error as exc:
            logger.info("DuckDB fts extension unavailable: %s", exc)
            return False
        return True

    def supported(self) -> bool:
        if self._supported is None:
            self._supported = bool(self._check())
        return self._supported

    def reset(self) -> None:
        self._supported = None


class IndexedFullTextBackend(SearchBackend):
    kind = EngineKind.INDEXED_FULLTEXT

    def __init__(
        self,
        connection,
        weights: Mapping[str, float],
        relevance: RelevanceModel | None = None,
        *,
        store: RecordStore | None = None,
        indexer: SearchIndexer | None = None,
        capability: FullTextCapability | None = None,
        max_candidates: int = DEFAULT_MAX_CANDIDATES,
        batch_size: int = DEFAULT_INDEX_BATCH_SIZE,
    ) -> None:
        super().__init__(weights, relevance)
        self._con = connection
        self._store = store or RecordStore(connection)
        self.indexer = indexer or SearchIndexer(connection, self._store)
        self.capability = capability or FullTextCapability(connection)
        self.max_candidates = max_candidates
        self.batch_size = batch_size

    def _fts_index_exists(self) -> bool:
        cur = self._con.cursor()
        try:
            row = cur.execute(
                "SELECT COUNT(*) FROM information_schema.schemata WHERE schema_name = ?",
                [FTS_SCHEMA],
            ).fetchone()
        finally:
            cur.close()
        return bool(row and row[0])

    def is_available(self) -> bool:
        """Usable when fts loads and the derived index holds records.

        Pending index writes are folded into the FTS snapshot here, once,
        before the next search uses it.
        """
        if not self.capability.supported():
            return False
        try:
            if self.indexer.count() == 0:
                return False
            if self.indexer.fulltext_stale:
                return self.indexer.refresh_fulltext()
            if self.indexer.fulltext_ready or self._fts_index_exists():
                return True
            return self.indexer.build_fulltext()
        except duckdb.Error as exc:
            logger.warning("Full-text availability check failed: %s", exc)
            return False

    def search(
        self,
        parsed: ParsedQuery,
        filters: SearchFilters,
        scope: frozenset[int],
        page: int,
        per_page: int,
    ) -> BackendResult:
        if not self.is_available():
            return self.unavailable("full-text index not available")
        if not scope:
            return ResultPage.empty(page, per_page, self.kind.value)

        words = fulltext_words(parsed)
        needles = self.relevance.needles(parsed)
        params: list[object] = []

        if words:
            select_score = f"{FTS_SCHEMA}.match_bm25(si.conversation_id, ?, conjunctive := 1) AS bm25"
            params.append(" ".join(words))
        else:
            select_score = "CAST(NULL AS DOUBLE) AS bm25"
        literal_score = sql_score_expression(needles, self.weights, FIELD_COLUMNS, params)

        try:
            conditions = filter_sql_conditions(filters, scope, params, INDEX_COLUMNS)
        except ValueError as exc:
            return self.failed(str(exc))

        match_clauses: list[str] = []
        if words:
            match_clauses.append("bm25 IS NOT NULL")
            prefix_checks = []
            for word in words:
                prefix_checks.append(f"regexp_matches({_SEARCH_TEXT}, ?)")
                params.append(rf"(?i)\b{word}")
            match_clauses.append("(" + " AND ".join(prefix_checks) + ")")

        for needle in needles:
            pattern = f"%{like_escape(needle)}%"
            for column in _SHORT_COLUMNS:
                match_clauses.append(f"{column} ILIKE ? ESCAPE '\\'")
                params.append(pattern)
        for term in parsed.terms:
            if term.isascii() and term.isdigit():
                match_clauses.append("(si.number = ? OR si.conversation_id = ?)")
                params.extend([int(term), int(term)])

        if parsed.has_text:
            if not match_clauses:
                return ResultPage.empty(page, per_page, self.kind.value)
            conditions.append("(" + " OR ".join(match_clauses) + ")")

        where_clause = " AND ".join(conditions)
        base_sql = f"""
            SELECT
                si.conversation_id,
                si.created_at,
                si.updated_at,
                {select_score},
                {literal_score} AS literal_score
            FROM {INDEX_TABLE} si
            WHERE {where_clause}
        """
        if filters.sort is SortOrder.RELEVANCE:
            order_by = (
                f"literal_score + coalesce(bm25, 0) * {FULLTEXT_SCORE_SCALE!r} DESC, "
                "updated_at DESC NULLS LAST, conversation_id"
            )
        else:
            order_by = sql_date_order(filters.sort, "created_at", "conversation_id")
        sql = f"""
            SELECT conversation_id, bm25 FROM ({base_sql})
            ORDER BY {order_by}
            LIMIT ?
        """
        window = candidate_window(self.max_candidates, page, per_page)

        cur = self._con.cursor()
        try:
            rows = cur.execute(sql, [*params, window]).fetchall()
            total = len(rows)
            if total >= window:
                total = int(cur.execute(f"SELECT COUNT(*) FROM ({base_sql})", params).fetchone()[0])
            records = self._store.load([int(r[0]) for r in rows])
        except duckdb.Error as exc:
            return self.failed(str(exc))
        finally:
            cur.close()

        base_scores = {
            int(r[0]): float(r[1]) * FULLTEXT_SCORE_SCALE
            for r in rows
            if r[1] is not None
        }
        ranked = self.relevance.rank(records, parsed, self.weights, base_scores=base_scores)
        result = self.paginate(sort_ranked(ranked, filters.sort), page, per_page)
        if total != result.total_count:
            result = replace(result, total_count=total)
        return result

    def reindex(self, progress: ProgressCallback | None = None) -> int:
        count = self.indexer.rebuild(progress, batch_size=self.batch_size)
        self.capability.reset()
        return count

    def indexed_count(self) -> int:
        try:
            return self.indexer.count()
        except duckdb.Error as exc:
            logger.warning("Could not count indexed records: %s", exc)
            return 0

    def index_records(self, record_ids: Iterable[int]) -> int:
        return self.indexer.index_records(record_ids)

    def remove_records(self, record_ids: Iterable[int]) -> int:
        return self.indexer.remove_records(record_ids)

    def refresh(self) -> None:
        try:
            self.indexer.refresh_fulltext()
        except duckdb.Error as exc:
            logger.warning("Full-text refresh failed: %s", exc)

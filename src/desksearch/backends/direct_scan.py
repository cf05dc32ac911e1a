"""Substring search straight over the host tables."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Mapping

import duckdb

from desksearch.backends.base import (
    SearchBackend,
    candidate_window,
    sort_ranked,
    sql_date_order,
)
from desksearch.config.constants import DEFAULT_MAX_CANDIDATES
from desksearch.core.filters import LIVE_COLUMNS, filter_sql_conditions
from desksearch.core.relevance import (
    RelevanceModel,
    like_escape,
    sql_score_expression,
    typo_variants,
)
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


TEXT_COLUMNS = (
    "c.subject",
    "coalesce(c.customer_email, cu.email)",
    "t.body",
    "t.thread_from",
    "t.thread_to",
    "t.thread_cc",
    "cu.first_name",
    "cu.last_name",
    "trim(coalesce(cu.first_name, '') || ' ' || coalesce(cu.last_name, ''))",
)

# Weighted field -> SQL text, matching RECORD_COLUMNS in desksearch.store.
FIELD_COLUMNS: dict[str, str] = {
    "subject": "c.subject",
    "customer_email": "coalesce(c.customer_email, cu.email)",
    "customer_name": "trim(coalesce(cu.first_name, '') || ' ' || coalesce(cu.last_name, ''))",
    "preview": "c.preview",
    "body": "t.body",
    "thread_from": "t.thread_from",
    "thread_to": "t.thread_to",
    "thread_cc": "t.thread_cc",
}


def text_match_condition(fragments: list[str], numbers: list[int], params: list[object]) -> str | None:
    """OR together ILIKE predicates for every fragment and exact number/id matches.

    ``fragments`` are already LIKE-escaped.
    """
    clauses: list[str] = []
    for fragment in fragments:
        pattern = f"%{fragment}%"
        for column in TEXT_COLUMNS:
            clauses.append(f"{column} ILIKE ? ESCAPE '\\'")
            params.append(pattern)
    for number in numbers:
        clauses.append("(c.number = ? OR c.id = ?)")
        params.extend([number, number])
    if not clauses:
        return None
    return "(" + " OR ".join(clauses) + ")"


class DirectScanBackend(SearchBackend):
    """Always-available fallback: ILIKE predicates plus in-process ranking."""

    kind = EngineKind.DIRECT_SCAN

    def __init__(
        self,
        store: RecordStore,
        weights: Mapping[str, float],
        relevance: RelevanceModel | None = None,
        *,
        max_candidates: int = DEFAULT_MAX_CANDIDATES,
    ) -> None:
        super().__init__(weights, relevance)
        self._store = store
        self.max_candidates = max_candidates

    def is_available(self) -> bool:
        return True

    def search(
        self,
        parsed: ParsedQuery,
        filters: SearchFilters,
        scope: frozenset[int],
        page: int,
        per_page: int,
    ) -> BackendResult:
        if not scope:
            return ResultPage.empty(page, per_page, self.kind.value)

        params: list[object] = []
        try:
            conditions = filter_sql_conditions(filters, scope, params, LIVE_COLUMNS)
        except ValueError as exc:
            return self.failed(str(exc))

        needles = self.relevance.needles(parsed)
        fragments = [like_escape(n) for n in needles]
        for term in self.relevance.fuzzy_terms(parsed):
            fragments.extend(typo_variants(term))
        numbers = [int(t) for t in parsed.terms if t.isascii() and t.isdigit()]

        text_condition = text_match_condition(list(dict.fromkeys(fragments)), numbers, params)
        if text_condition:
            conditions.append(text_condition)

        # Candidates come out of SQL already in (literal) score order, so the
        # cap only ever cuts the tail; ranking below refines fuzzy bonuses.
        order_params: list[object] = []
        order_by = "c.updated_at DESC NULLS LAST, c.id"
        if filters.sort is SortOrder.RELEVANCE:
            if needles:
                score = sql_score_expression(needles, self.weights, FIELD_COLUMNS, order_params)
                order_by = f"{score} DESC, {order_by}"
        else:
            order_by = sql_date_order(filters.sort, "c.created_at", "c.id")
        window = candidate_window(self.max_candidates, page, per_page)

        try:
            records = self._store.query(
                conditions,
                params,
                order_by=order_by,
                order_params=order_params,
                limit=window,
            )
            total = len(records)
            if total >= window:
                total = self._store.count(conditions, params)
        except duckdb.Error as exc:
            return self.failed(str(exc))

        ranked = sort_ranked(self.relevance.rank(records, parsed, self.weights), filters.sort)
        result = self.paginate(ranked, page, per_page)
        if total != result.total_count:
            result = replace(result, total_count=total)
        logger.debug("Direct scan matched %d record(s)", total)
        return result

"""Autocomplete suggestions from live records and the user's own history."""

from __future__ import annotations

import logging
from typing import Iterable

from desksearch.config.constants import DEFAULT_SUGGESTION_LIMIT, MIN_SUGGESTION_PREFIX
from desksearch.core.relevance import like_escape
from desksearch.services.history import HistoryStore

logger = logging.getLogger(__name__)


def _normalize(text: str) -> str:
    return " ".join(text.split()).casefold()


class SuggestionEngine:
    """Merges, in priority order: customers, ticket numbers, subjects, history."""

    def __init__(
        self,
        connection,
        history: HistoryStore,
        *,
        enabled: bool = True,
        default_limit: int = DEFAULT_SUGGESTION_LIMIT,
    ) -> None:
        self._con = connection
        self.history = history
        self.enabled = enabled
        self.default_limit = default_limit

    def _fetch_column(self, sql: str, params: list[object]) -> list[str]:
        cur = self._con.cursor()
        try:
            rows = cur.execute(sql, params).fetchall()
        finally:
            cur.close()
        return [str(row[0]) for row in rows if row[0] not in (None, "")]

    def _scope_clause(self, scope: list[int], params: list[object]) -> str:
        params.extend(scope)
        return f"c.mailbox_id IN ({','.join(['?'] * len(scope))})"

    def _customers(self, prefix: str, scope: list[int], limit: int) -> list[str]:
        params: list[object] = []
        scope_clause = self._scope_clause(scope, params)
        pattern = f"{like_escape(prefix)}%"
        params.extend([pattern] * 4 + [int(limit)])
        return self._fetch_column(
            f"""
            SELECT coalesce(nullif(cu.email, ''),
                            trim(coalesce(cu.first_name, '') || ' ' || coalesce(cu.last_name, ''))) AS label
            FROM customers cu
            WHERE EXISTS (
                SELECT 1 FROM conversations c
                WHERE c.customer_id = cu.id AND {scope_clause}
            )
              AND (cu.email ILIKE ? ESCAPE '\\'
                   OR cu.first_name ILIKE ? ESCAPE '\\'
                   OR cu.last_name ILIKE ? ESCAPE '\\'
                   OR trim(coalesce(cu.first_name, '') || ' ' || coalesce(cu.last_name, '')) ILIKE ? ESCAPE '\\')
            ORDER BY label
            LIMIT ?
            """,
            params,
        )

    def _numbers(self, prefix: str, scope: list[int], limit: int) -> list[str]:
        params: list[object] = []
        scope_clause = self._scope_clause(scope, params)
        params.extend([prefix, int(limit)])
        return self._fetch_column(
            f"""
            SELECT CAST(c.number AS VARCHAR) AS label
            FROM conversations c
            WHERE {scope_clause}
              AND c.number IS NOT NULL
              AND starts_with(CAST(c.number AS VARCHAR), ?)
            ORDER BY c.number
            LIMIT ?
            """,
            params,
        )

    def _subjects(self, prefix: str, scope: list[int], limit: int) -> list[str]:
        params: list[object] = []
        scope_clause = self._scope_clause(scope, params)
        params.extend([f"%{like_escape(prefix)}%", int(limit)])
        return self._fetch_column(
            f"""
            SELECT c.subject
            FROM conversations c
            WHERE {scope_clause}
              AND c.subject ILIKE ? ESCAPE '\\'
            GROUP BY c.subject
            ORDER BY MAX(c.updated_at) DESC NULLS LAST, c.subject
            LIMIT ?
            """,
            params,
        )

    def suggest(
        self,
        user_id: int | None,
        prefix: str,
        limit: int | None = None,
        scope: Iterable[int] = (),
    ) -> list[str]:
        prefix = " ".join(prefix.split())
        limit = self.default_limit if limit is None else limit
        if not self.enabled or limit <= 0 or len(prefix) < MIN_SUGGESTION_PREFIX:
            return []

        mailbox_ids = sorted({int(m) for m in scope})
        candidates: list[str] = []
        if mailbox_ids:
            candidates.extend(self._customers(prefix, mailbox_ids, limit))
            if prefix.isascii() and prefix.isdigit():
                candidates.extend(self._numbers(prefix, mailbox_ids, limit))
            candidates.extend(self._subjects(prefix, mailbox_ids, limit))
        if user_id is not None:
            candidates.extend(self.history.successful_queries(user_id, prefix, limit))

        suggestions: list[str] = []
        seen: set[str] = set()
        for candidate in candidates:
            key = _normalize(candidate)
            if key and key not in seen:
                seen.add(key)
                suggestions.append(candidate.strip())
            if len(suggestions) >= limit:
                break
        return suggestions

"""Seams between the search core and the host application."""

from __future__ import annotations

from typing import Callable, Iterable, Mapping, Protocol, runtime_checkable

from desksearch.models import (
    HistoryEntry,
    SearchFilters,
    SearchOutcome,
    SearchStatistics,
    SearchUser,
)


ProgressCallback = Callable[[int, int], None]


@runtime_checkable
class AccessScopeProvider(Protocol):
    """Tells the core which mailboxes a user may search."""

    def visible_mailboxes(self, user: SearchUser) -> Iterable[int]:
        ...


@runtime_checkable
class SearchProvider(Protocol):
    """What the host calls; every method returns a fallback instead of raising."""

    def perform_search(
        self,
        query: str,
        filters: SearchFilters | Mapping | None,
        user: SearchUser,
        page: int = 1,
        per_page: int | None = None,
    ) -> SearchOutcome:
        ...

    def get_suggestions(self, prefix: str, user: SearchUser, limit: int | None = None) -> list[str]:
        ...

    def track_history(self, query: str, user: SearchUser, result_count: int) -> None:
        ...

    def clear_history(self, user: SearchUser) -> None:
        ...

    def clear_cache(self, scope_hint: Iterable[int] | None = None) -> None:
        ...

    def rebuild_index(self, progress: ProgressCallback | None = None) -> int:
        ...

    def get_statistics(self) -> SearchStatistics:
        ...

    def get_history(self, user: SearchUser, limit: int | None = None) -> list[HistoryEntry]:
        ...


class StaticScopeProvider:
    """Fixed user -> mailboxes mapping; admins see every listed mailbox."""

    def __init__(self, mailboxes_by_user: Mapping[int, Iterable[int]]) -> None:
        self._by_user = {int(u): frozenset(int(m) for m in boxes) for u, boxes in mailboxes_by_user.items()}

    def visible_mailboxes(self, user: SearchUser) -> frozenset[int]:
        if user.is_admin:
            return frozenset().union(*self._by_user.values()) if self._by_user else frozenset()
        return self._by_user.get(user.id, frozenset())


class AllMailboxesScope:
    """Every mailbox that holds at least one conversation, for every user."""

    def __init__(self, connection) -> None:
        self._con = connection

    def visible_mailboxes(self, user: SearchUser) -> frozenset[int]:
        cur = self._con.cursor()
        try:
            rows = cur.execute("SELECT DISTINCT mailbox_id FROM conversations").fetchall()
        finally:
            cur.close()
        return frozenset(int(r[0]) for r in rows if r[0] is not None)

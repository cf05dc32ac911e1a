from __future__ import annotations

import logging
from datetime import datetime
from abc import ABC, abstractmethod
from typing import Callable, Iterable, Mapping

from desksearch.core.relevance import RelevanceModel, ordering_key_sort
from desksearch.models import (
    BackendError,
    BackendErrorKind,
    BackendResult,
    EngineKind,
    ParsedQuery,
    RankedRecord,
    ResultPage,
    SearchFilters,
    SortOrder,
)

logger = logging.getLogger(__name__)


ProgressCallback = Callable[[int, int], None]


def page_offset(page: int, per_page: int) -> int:
    return (max(1, page) - 1) * max(1, per_page)


def candidate_window(max_candidates: int, page: int, per_page: int) -> int:
    """Rows to fetch so the requested page lies inside the ranked window."""
    return max(max_candidates, page_offset(page, per_page) + max(1, per_page))


def sql_date_order(sort: SortOrder, created_at: str, record_id: str) -> str:
    """ORDER BY clause matching ``sort_ranked`` for the date orders."""
    if sort is SortOrder.DATE_DESC:
        return f"{created_at} DESC NULLS LAST, {record_id}"
    return f"{created_at} ASC NULLS FIRST, {record_id}"


def sort_ranked(items: list[RankedRecord], sort: SortOrder) -> list[RankedRecord]:
    """Order ranked items by relevance or by creation date."""
    if sort is SortOrder.RELEVANCE:
        return ordering_key_sort(items)
    items.sort(key=lambda item: item.record_id)
    items.sort(
        key=lambda item: item.record.created_at or datetime.min,
        reverse=sort is SortOrder.DATE_DESC,
    )
    return items


class SearchBackend(ABC):
    """A storage strategy that answers a parsed query.

    ``search`` never raises: storage errors come back as ``BackendError``
    so the caller can fall through to the next backend.
    """

    kind: EngineKind

    def __init__(
        self,
        weights: Mapping[str, float],
        relevance: RelevanceModel | None = None,
    ) -> None:
        self.weights = dict(weights)
        self.relevance = relevance or RelevanceModel()

    @abstractmethod
    def search(
        self,
        parsed: ParsedQuery,
        filters: SearchFilters,
        scope: frozenset[int],
        page: int,
        per_page: int,
    ) -> BackendResult:
        ...

    @abstractmethod
    def is_available(self) -> bool:
        ...

    def reindex(self, progress: ProgressCallback | None = None) -> int:
        return 0

    def indexed_count(self) -> int:
        return 0

    def index_records(self, record_ids: Iterable[int]) -> int:
        """Bring the backend's index up to date for these records."""
        return 0

    def remove_records(self, record_ids: Iterable[int]) -> int:
        return 0

    def refresh(self) -> None:
        """Fold pending index writes into whatever the backend searches."""

    def unavailable(self, message: str = "") -> BackendError:
        return BackendError(self.kind, BackendErrorKind.UNAVAILABLE, message)

    def failed(self, message: str) -> BackendError:
        logger.error("%s search failed: %s", self.kind.value, message)
        return BackendError(self.kind, BackendErrorKind.FAILED, message)

    def paginate(self, ranked: list[RankedRecord], page: int, per_page: int) -> ResultPage:
        start = page_offset(page, per_page)
        return ResultPage(
            items=tuple(ranked[start:start + per_page]),
            total_count=len(ranked),
            page=page,
            per_page=per_page,
            engine=self.kind.value,
        )

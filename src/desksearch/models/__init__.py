"""Data models for desksearch."""
from desksearch.models.enums import (
    EngineKind,
    TicketStatus,
    SortOrder,
    BackendErrorKind,
    STATUS_NAMES,
)
from desksearch.models.domain import (
    DateRange,
    ParsedQuery,
    SearchFilters,
    SearchRecord,
    RankedRecord,
    ResultPage,
    BackendError,
    BackendResult,
    NO_OVERRIDE,
    SearchOutcome,
    SearchUser,
    HistoryEntry,
    SearchStatistics,
)

__all__ = [
    # Enums
    "EngineKind",
    "TicketStatus",
    "SortOrder",
    "BackendErrorKind",
    "STATUS_NAMES",
    # Domain models
    "DateRange",
    "ParsedQuery",
    "SearchFilters",
    "SearchRecord",
    "RankedRecord",
    "ResultPage",
    "BackendError",
    "BackendResult",
    "NO_OVERRIDE",
    "SearchOutcome",
    "SearchUser",
    "HistoryEntry",
    "SearchStatistics",
]

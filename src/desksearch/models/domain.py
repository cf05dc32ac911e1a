"""Domain models for desksearch - business logic data structures."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Union

from desksearch.models.enums import BackendErrorKind, EngineKind, SortOrder


@dataclass(frozen=True)
class DateRange:
    """Inclusive range of timestamps."""
    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end


@dataclass
class ParsedQuery:
    """Query text split into phrases, bare terms and structured operators."""
    original: str
    terms: list[str] = field(default_factory=list)
    phrases: list[str] = field(default_factory=list)
    operators: dict[str, Any] = field(default_factory=dict)
    cleaned_text: str = ""

    @property
    def search_terms(self) -> list[str]:
        """Phrases first, then bare terms."""
        return self.phrases + self.terms

    @property
    def has_text(self) -> bool:
        return bool(self.phrases or self.terms)


@dataclass(frozen=True)
class SearchFilters:
    """Structured filters applied on top of the text query.

    ``assignee`` is either a user id or the literal ``"unassigned"``;
    ``"me"`` is resolved to the acting user's id before a backend sees it.
    """
    status: int | None = None
    state: int | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    assignee: int | str | None = None
    mailbox: int | None = None
    has_attachments: bool | None = None
    has_replies: bool | None = None
    type: int | None = None
    customer: int | None = None
    subject: str | None = None
    body: str | None = None
    from_email: str | None = None
    to_email: str | None = None
    sort: SortOrder = SortOrder.RELEVANCE

    def cache_token(self) -> dict[str, Any]:
        """JSON-serializable view used for cache keys."""
        return {
            "status": self.status,
            "state": self.state,
            "date_from": self.date_from.isoformat() if self.date_from else None,
            "date_to": self.date_to.isoformat() if self.date_to else None,
            "assignee": self.assignee,
            "mailbox": self.mailbox,
            "has_attachments": self.has_attachments,
            "has_replies": self.has_replies,
            "type": self.type,
            "customer": self.customer,
            "subject": self.subject,
            "body": self.body,
            "from_email": self.from_email,
            "to_email": self.to_email,
            "sort": self.sort.value,
        }


@dataclass(frozen=True)
class SearchRecord:
    """A searchable conversation with its aggregated thread text."""
    id: int
    number: int | None
    subject: str
    mailbox_id: int
    customer_id: int | None
    customer_email: str
    customer_name: str
    user_id: int | None
    status: int
    state: int
    type: int | None
    has_attachments: bool
    threads_count: int
    created_at: datetime | None
    updated_at: datetime | None
    preview: str = ""
    body: str = ""
    thread_from: str = ""
    thread_to: str = ""
    thread_cc: str = ""

    def field_text(self, name: str) -> str:
        """Text of a weighted search field; unknown fields are empty."""
        value = getattr(self, name, "")
        return value if isinstance(value, str) else ""


@dataclass(frozen=True)
class RankedRecord:
    record_id: int
    relevance_score: float
    record: SearchRecord
    highlights: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ResultPage:
    items: tuple[RankedRecord, ...]
    total_count: int
    page: int
    per_page: int
    engine: str = ""

    @classmethod
    def empty(cls, page: int, per_page: int, engine: str = "") -> "ResultPage":
        return cls(items=(), total_count=0, page=page, per_page=per_page, engine=engine)

    @property
    def record_ids(self) -> list[int]:
        return [item.record_id for item in self.items]

    @property
    def page_count(self) -> int:
        if self.per_page <= 0:
            return 0
        return (self.total_count + self.per_page - 1) // self.per_page


@dataclass(frozen=True)
class BackendError:
    """Failure value returned by a backend instead of raising."""
    engine: EngineKind
    kind: BackendErrorKind
    message: str = ""

    @property
    def unusable(self) -> bool:
        return self.kind is BackendErrorKind.UNAVAILABLE


class _NoOverride:
    """Tells the host to run its own default search."""

    _instance: "_NoOverride | None" = None

    def __new__(cls) -> "_NoOverride":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NO_OVERRIDE"

    def __bool__(self) -> bool:
        return False


NO_OVERRIDE = _NoOverride()

SearchOutcome = Union[ResultPage, _NoOverride]
BackendResult = Union[ResultPage, BackendError]


@dataclass(frozen=True)
class SearchUser:
    """Acting user as seen by the search core."""
    id: int
    is_admin: bool = False


@dataclass(frozen=True)
class HistoryEntry:
    user_id: int
    query: str
    result_count: int
    created_at: datetime


@dataclass
class SearchStatistics:
    total_searches: int = 0
    unique_queries: int = 0
    searches_today: int = 0
    top_queries: list[tuple[str, int]] = field(default_factory=list)
    indexed_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_searches": self.total_searches,
            "unique_queries": self.unique_queries,
            "searches_today": self.searches_today,
            "top_queries": [{"query": q, "count": c} for q, c in self.top_queries],
            "indexed_count": self.indexed_count,
        }

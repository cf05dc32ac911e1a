"""Enumerations for desksearch."""
from __future__ import annotations

from enum import Enum, IntEnum


class EngineKind(Enum):
    """Search backend implementations, in fallback priority order."""
    EXTERNAL_INDEX = "external-index"
    INDEXED_FULLTEXT = "indexed-fulltext"
    DIRECT_SCAN = "direct-scan"


class TicketStatus(IntEnum):
    """Canonical conversation status codes of the host application."""
    ACTIVE = 1
    PENDING = 2
    CLOSED = 3
    SPAM = 4


class SortOrder(Enum):
    RELEVANCE = "relevance"
    DATE_DESC = "date_desc"
    DATE_ASC = "date_asc"


class BackendErrorKind(Enum):
    UNAVAILABLE = "unavailable"
    FAILED = "failed"


# Status names accepted by the `status:` operator and caller filters.
STATUS_NAMES: dict[str, TicketStatus] = {
    "open": TicketStatus.ACTIVE,
    "active": TicketStatus.ACTIVE,
    "pending": TicketStatus.PENDING,
    "closed": TicketStatus.CLOSED,
    "spam": TicketStatus.SPAM,
}

"""Filter resolution and shared SQL filter generation.

Merges caller-supplied filters with operator-derived values and turns the
result into SQL WHERE conditions used by both DuckDB-backed engines.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date, datetime
from typing import Any, Iterable, Mapping

from desksearch.core.date_resolver import DateExpressionResolver, end_of_day, start_of_day
from desksearch.core.relevance import like_escape
from desksearch.models import ParsedQuery, SearchFilters, SortOrder, STATUS_NAMES

logger = logging.getLogger(__name__)


# Logical filter column -> SQL expression, per table layout.
LIVE_COLUMNS: dict[str, str] = {
    "mailbox_id": "c.mailbox_id",
    "status": "c.status",
    "state": "c.state",
    "type": "c.type",
    "customer_id": "c.customer_id",
    "user_id": "c.user_id",
    "has_attachments": "c.has_attachments",
    "threads_count": "c.threads_count",
    "created_at": "c.created_at",
    "subject": "c.subject",
    "body": "t.body",
    "sender": "coalesce(c.customer_email, '') || ' ' || coalesce(t.thread_from, '')",
    "recipient": "coalesce(t.thread_to, '') || ' ' || coalesce(t.thread_cc, '')",
}

INDEX_COLUMNS: dict[str, str] = {
    "mailbox_id": "si.mailbox_id",
    "status": "si.status",
    "state": "si.state",
    "type": "si.type",
    "customer_id": "si.customer_id",
    "user_id": "si.user_id",
    "has_attachments": "si.has_attachments",
    "threads_count": "si.threads_count",
    "created_at": "si.created_at",
    "subject": "si.subject",
    "body": "si.body_text",
    "sender": "coalesce(si.customer_email, '') || ' ' || coalesce(si.thread_from, '')",
    "recipient": "coalesce(si.thread_to, '') || ' ' || coalesce(si.thread_cc, '')",
}


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def _as_flag(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("yes", "true", "1"):
            return True
        if lowered in ("no", "false", "0"):
            return False
    return None


def _as_text(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _as_status(value: Any) -> int | None:
    if isinstance(value, str) and value.strip().lower() in STATUS_NAMES:
        return int(STATUS_NAMES[value.strip().lower()])
    return _as_int(value)


def _as_assignee(value: Any) -> int | str | None:
    if isinstance(value, str) and value.strip().lower() in ("me", "unassigned"):
        return value.strip().lower()
    return _as_int(value)


def _as_bound(
    value: Any,
    now: datetime,
    resolver: DateExpressionResolver,
    *,
    upper: bool,
) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return end_of_day(value) if upper else start_of_day(value)
    if isinstance(value, str) and value.strip():
        day = resolver.resolve(value, now)
        if day is not None:
            return end_of_day(day) if upper else start_of_day(day)
    return None


def filters_from_mapping(
    data: Mapping[str, Any] | None,
    now: datetime,
    resolver: DateExpressionResolver | None = None,
) -> SearchFilters:
    """Build SearchFilters from a host-style filter mapping.

    Empty or unparseable values are ignored, the same way an unparseable
    operator is.
    """
    if not data:
        return SearchFilters()
    resolver = resolver or DateExpressionResolver()

    date_from = _as_bound(data.get("after"), now, resolver, upper=False)
    if date_from is None and isinstance(data.get("date_range"), str):
        date_from = resolver.preset_start(data["date_range"], now)

    sort = SortOrder.RELEVANCE
    raw_sort = data.get("sort")
    if isinstance(raw_sort, SortOrder):
        sort = raw_sort
    elif isinstance(raw_sort, str) and raw_sort.strip():
        try:
            sort = SortOrder(raw_sort.strip().lower())
        except ValueError:
            logger.debug("Ignoring unknown sort %r", raw_sort)

    return SearchFilters(
        status=_as_status(data.get("status")),
        state=_as_int(data.get("state")),
        date_from=date_from,
        date_to=_as_bound(data.get("before"), now, resolver, upper=True),
        assignee=_as_assignee(data.get("assigned")),
        mailbox=_as_int(data.get("mailbox")),
        has_attachments=_as_flag(data.get("attachments")),
        has_replies=_as_flag(data.get("has_replies")),
        type=_as_int(data.get("type")),
        customer=_as_int(data.get("customer")),
        subject=_as_text(data.get("subject")),
        body=_as_text(data.get("body")),
        from_email=_as_text(data.get("from")),
        to_email=_as_text(data.get("to")),
        sort=sort,
    )


def resolve_filters(
    caller: SearchFilters | Mapping[str, Any] | None,
    parsed: ParsedQuery,
    user_id: int | None,
    now: datetime,
    resolver: DateExpressionResolver | None = None,
) -> SearchFilters:
    """Merge caller filters with the query's operators.

    Operator values win for the same logical filter, and ``last:``
    replaces both date bounds whatever their source. ``assigned:me`` is
    resolved against ``user_id`` and dropped when there is no user.
    """
    if isinstance(caller, SearchFilters):
        filters = caller
    else:
        filters = filters_from_mapping(caller, now, resolver)

    ops = parsed.operators
    updates: dict[str, Any] = {}
    if "status" in ops:
        updates["status"] = ops["status"]
    if "from" in ops:
        updates["from_email"] = ops["from"]
    if "to" in ops:
        updates["to_email"] = ops["to"]
    if "has_attachment" in ops:
        updates["has_attachments"] = True
    if "assigned" in ops:
        updates["assignee"] = ops["assigned"]
    if "after" in ops:
        updates["date_from"] = ops["after"]
    if "before" in ops:
        updates["date_to"] = ops["before"]
    if "last" in ops:
        updates["date_from"] = ops["last"].start
        updates["date_to"] = ops["last"].end

    if updates:
        filters = replace(filters, **updates)

    if filters.assignee == "me":
        filters = replace(filters, assignee=user_id)
    return filters


def narrow_scope(scope: Iterable[int], filters: SearchFilters) -> frozenset[int]:
    """Apply a caller ``mailbox`` filter to the user's visible mailboxes."""
    visible = frozenset(int(m) for m in scope)
    if filters.mailbox is None:
        return visible
    return frozenset({filters.mailbox}) if filters.mailbox in visible else frozenset()


def filter_sql_conditions(
    filters: SearchFilters,
    scope: Iterable[int],
    params: list[object],
    columns: Mapping[str, str] = LIVE_COLUMNS,
) -> list[str]:
    """Return SQL WHERE conditions (to AND together) for filters and scope.

    Args:
        filters: Resolved filters.
        scope: Mailbox ids the user may search; must not be empty.
        params: Positional parameter list, extended in placeholder order.
        columns: Logical column -> SQL expression map for the queried table.

    Raises:
        ValueError: If *scope* is empty.
    """
    mailbox_ids = sorted(int(m) for m in scope)
    if not mailbox_ids:
        raise ValueError("Search scope is empty")

    placeholders = ",".join(["?"] * len(mailbox_ids))
    conditions = [f"{columns['mailbox_id']} IN ({placeholders})"]
    params.extend(mailbox_ids)

    def equals(column: str, value: object) -> None:
        conditions.append(f"{columns[column]} = ?")
        params.append(value)

    def contains(column: str, value: str) -> None:
        conditions.append(f"{columns[column]} ILIKE ? ESCAPE '\\'")
        params.append(f"%{like_escape(value)}%")

    if filters.status is not None:
        equals("status", filters.status)
    if filters.state is not None:
        equals("state", filters.state)
    if filters.type is not None:
        equals("type", filters.type)
    if filters.customer is not None:
        equals("customer_id", filters.customer)

    if filters.assignee == "unassigned":
        conditions.append(f"{columns['user_id']} IS NULL")
    elif isinstance(filters.assignee, int):
        equals("user_id", filters.assignee)

    if filters.date_from is not None:
        conditions.append(f"{columns['created_at']} >= ?")
        params.append(filters.date_from)
    if filters.date_to is not None:
        conditions.append(f"{columns['created_at']} <= ?")
        params.append(filters.date_to)

    if filters.has_attachments is not None:
        equals("has_attachments", filters.has_attachments)
    if filters.has_replies is True:
        conditions.append(f"{columns['threads_count']} > 1")
    elif filters.has_replies is False:
        conditions.append(f"{columns['threads_count']} <= 1")

    if filters.subject:
        contains("subject", filters.subject)
    if filters.body:
        contains("body", filters.body)
    if filters.from_email:
        contains("sender", filters.from_email)
    if filters.to_email:
        contains("recipient", filters.to_email)

    return conditions

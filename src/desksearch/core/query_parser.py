from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Callable

from desksearch.core.date_resolver import DateExpressionResolver, end_of_day, start_of_day
from desksearch.models import ParsedQuery, STATUS_NAMES


OPERATOR_KEYWORDS = ("after", "before", "last", "from", "to", "status", "has", "assigned")

_OPERATOR_RE = re.compile(
    rf"^({'|'.join(OPERATOR_KEYWORDS)}):(\S+)$",
    re.IGNORECASE,
)
_PHRASE_RE = re.compile(r'"([^"]*)"')


class QueryParser:
    """Splits raw query text into operators, quoted phrases and bare terms.

    Parsing is total: malformed operator values are dropped and the worst
    case is a query with no terms and no operators.
    """

    def __init__(
        self,
        resolver: DateExpressionResolver | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.resolver = resolver or DateExpressionResolver()
        self._clock = clock

    def parse(self, query: str) -> ParsedQuery:
        result = ParsedQuery(original=query)
        now = self._clock()

        kept: list[str] = []
        for token in query.split():
            match = _OPERATOR_RE.match(token)
            if match is None:
                kept.append(token)
                continue
            keyword = match.group(1).lower()
            value = self._operator_value(keyword, match.group(2), now)
            if value is not None:
                name = "has_attachment" if keyword == "has" else keyword
                result.operators[name] = value

        result.cleaned_text = " ".join(kept)

        result.phrases = [
            " ".join(phrase.split())
            for phrase in _PHRASE_RE.findall(result.cleaned_text)
            if phrase.strip()
        ]
        remainder = _PHRASE_RE.sub(" ", result.cleaned_text)
        result.terms = [
            term for term in (raw.strip('"') for raw in remainder.split()) if term
        ]
        return result

    def _operator_value(self, keyword: str, raw: str, now: datetime) -> Any:
        value = raw.strip()
        if keyword == "after":
            day = self.resolver.resolve(value, now)
            return start_of_day(day) if day is not None else None
        if keyword == "before":
            day = self.resolver.resolve(value, now)
            return end_of_day(day) if day is not None else None
        if keyword == "last":
            return self.resolver.resolve_range(value, now)
        if keyword in ("from", "to"):
            return value
        if keyword == "status":
            status = STATUS_NAMES.get(value.lower())
            return int(status) if status is not None else None
        if keyword == "has":
            return True if value.lower() in ("attachment", "attachments") else None
        if keyword == "assigned":
            lowered = value.lower()
            if lowered in ("me", "unassigned"):
                return lowered
            if value.isascii() and value.isdigit():
                return int(value)
            return None
        return None

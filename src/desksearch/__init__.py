from __future__ import annotations

__version__ = "0.3.0"
__author__ = "desksearch Contributors"

from desksearch.models import (
    NO_OVERRIDE,
    ParsedQuery,
    RankedRecord,
    ResultPage,
    SearchFilters,
    SearchRecord,
    SearchUser,
)
from desksearch.core import QueryParser

__all__ = [
    "NO_OVERRIDE",
    "ParsedQuery",
    "RankedRecord",
    "ResultPage",
    "SearchFilters",
    "SearchRecord",
    "SearchUser",
    "QueryParser",
    "SearchOrchestrator",
]


def __getattr__(name: str):
    if name == "SearchOrchestrator":
        from desksearch.orchestrator import SearchOrchestrator

        return SearchOrchestrator
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

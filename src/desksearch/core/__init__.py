"""Core search logic - parsing, ranking, caching and index maintenance."""
from __future__ import annotations

__all__ = [
    "QueryParser",
    "DateExpressionResolver",
    "RelevanceModel",
    "ResultCache",
    "SearchIndexer",
]


def __getattr__(name: str):
    if name == "QueryParser":
        from desksearch.core.query_parser import QueryParser

        return QueryParser
    if name == "DateExpressionResolver":
        from desksearch.core.date_resolver import DateExpressionResolver

        return DateExpressionResolver
    if name == "RelevanceModel":
        from desksearch.core.relevance import RelevanceModel

        return RelevanceModel
    if name == "ResultCache":
        from desksearch.core.cache import ResultCache

        return ResultCache
    if name == "SearchIndexer":
        from desksearch.core.indexer import SearchIndexer

        return SearchIndexer
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

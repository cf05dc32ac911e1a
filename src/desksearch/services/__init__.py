"""History tracking and autocomplete suggestions."""
from desksearch.services.history import HistoryStore
from desksearch.services.suggestions import SuggestionEngine

__all__ = [
    "HistoryStore",
    "SuggestionEngine",
]

"""Search backends: external index, native full-text and direct scan."""
from desksearch.backends.base import SearchBackend
from desksearch.backends.direct_scan import DirectScanBackend
from desksearch.backends.fulltext import FullTextCapability, IndexedFullTextBackend
from desksearch.backends.external_index import ExternalIndexBackend, MeilisearchClient

__all__ = [
    "SearchBackend",
    "DirectScanBackend",
    "FullTextCapability",
    "IndexedFullTextBackend",
    "ExternalIndexBackend",
    "MeilisearchClient",
]

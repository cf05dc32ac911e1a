from __future__ import annotations

import hashlib
import json
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Iterable, Mapping

from desksearch.config.constants import DEFAULT_CACHE_MAX_ENTRIES
from desksearch.models import ResultPage, SearchFilters

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    key: str
    payload: ResultPage
    expires_at: float
    record_ids: frozenset[int]
    scope: frozenset[int]


class ResultCache:
    """TTL + LRU cache of result pages, invalidated by record or mailbox.

    The map is guarded by a lock; ``compute`` runs outside it, so two
    concurrent misses on the same key may both compute.
    """

    def __init__(
        self,
        max_entries: int = DEFAULT_CACHE_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_entries = max(1, max_entries)
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = Lock()

    @staticmethod
    def make_key(
        query_text: str,
        filters: SearchFilters | Mapping | None,
        scope: Iterable[int],
        page: int,
        per_page: int,
    ) -> str:
        if isinstance(filters, SearchFilters):
            filter_token = filters.cache_token()
        else:
            filter_token = dict(filters or {})
        key_data = {
            "query": " ".join(query_text.split()).casefold(),
            "filters": filter_token,
            "scope": sorted(int(m) for m in scope),
            "page": int(page),
            "per_page": int(per_page),
        }
        key_str = json.dumps(key_data, sort_keys=True, default=str)
        return hashlib.md5(key_str.encode()).hexdigest()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: str) -> ResultPage | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expires_at <= self._clock():
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return entry.payload

    def put(self, key: str, payload: ResultPage, ttl: float, scope: Iterable[int] = ()) -> None:
        if ttl <= 0:
            return
        entry = CacheEntry(
            key=key,
            payload=payload,
            expires_at=self._clock() + ttl,
            record_ids=frozenset(payload.record_ids),
            scope=frozenset(int(m) for m in scope),
        )
        with self._lock:
            self._entries[key] = entry
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def get_or_compute(
        self,
        key: str,
        ttl: float,
        compute: Callable[[], ResultPage],
        scope: Iterable[int] = (),
    ) -> ResultPage:
        """Return the cached page for ``key`` or compute and store it.

        With ``ttl <= 0`` the cache is bypassed. Exceptions from ``compute``
        propagate and nothing is stored.
        """
        if ttl <= 0:
            return compute()
        cached = self.get(key)
        if cached is not None:
            return cached
        payload = compute()
        self.put(key, payload, ttl, scope)
        return payload

    def invalidate_record(self, record_id: int, mailbox_id: int | None = None) -> int:
        """Drop every entry that could contain ``record_id``.

        Without a mailbox the affected scopes are unknown and the whole
        cache is flushed.
        """
        if mailbox_id is None:
            return self.clear()
        with self._lock:
            stale = [
                key
                for key, entry in self._entries.items()
                if mailbox_id in entry.scope or record_id in entry.record_ids
            ]
            for key in stale:
                del self._entries[key]
        logger.debug("Invalidated %d cache entr(ies) for record %s", len(stale), record_id)
        return len(stale)

    def clear(self, scope_hint: Iterable[int] | None = None) -> int:
        """Drop entries touching any mailbox in ``scope_hint``, or everything."""
        with self._lock:
            if scope_hint is None:
                dropped = len(self._entries)
                self._entries.clear()
                return dropped
            hint = frozenset(int(m) for m in scope_hint)
            stale = [key for key, entry in self._entries.items() if entry.scope & hint]
            for key in stale:
                del self._entries[key]
            return len(stale)

"""
Search orchestration.

Parses the query, merges filters, resolves the user's mailbox scope, then
walks the backend chain (external index, native full-text, direct scan)
until one produces a page. Results are cached per query, filters, scope
and page. Every public method returns a fallback value instead of raising,
so a search failure never breaks the host's own request handling.
"""

from __future__ import annotations

import logging
from datetime import datetime
from threading import Lock
from typing import Callable, Iterable, Mapping, Sequence

import httpx

from desksearch.backends import (
    DirectScanBackend,
    ExternalIndexBackend,
    FullTextCapability,
    IndexedFullTextBackend,
    SearchBackend,
)
from desksearch.config import Config
from desksearch.config.constants import (
    ENGINE_DIRECT_SCAN,
    ENGINE_EXTERNAL_INDEX,
    INDEX_MODE_QUEUE,
    INDEX_MODE_REALTIME,
)
from desksearch.core.cache import ResultCache
from desksearch.core.date_resolver import DateExpressionResolver
from desksearch.core.filters import narrow_scope, resolve_filters
from desksearch.core.query_parser import QueryParser
from desksearch.core.relevance import RelevanceModel
from desksearch.models import (
    NO_OVERRIDE,
    EngineKind,
    HistoryEntry,
    ResultPage,
    SearchFilters,
    SearchOutcome,
    SearchStatistics,
    SearchUser,
)
from desksearch.provider import AccessScopeProvider, AllMailboxesScope, ProgressCallback
from desksearch.services.history import HistoryStore
from desksearch.services.suggestions import SuggestionEngine
from desksearch.store import RecordStore, open_database

logger = logging.getLogger(__name__)


class _ChainExhausted(Exception):
    """Raised inside a cache compute so a failed search is never cached."""


def build_backends(
    config: Config,
    connection,
    store: RecordStore,
    relevance: RelevanceModel,
    *,
    capability: FullTextCapability | None = None,
    transport: httpx.BaseTransport | None = None,
) -> list[SearchBackend]:
    """Backends in fallback order, starting from the configured engine."""
    search = config.search
    weights = search.field_weights
    backends: list[SearchBackend] = []

    if search.engine == ENGINE_EXTERNAL_INDEX:
        if config.external_index.configured:
            backends.append(
                ExternalIndexBackend.from_config(
                    config.external_index,
                    store,
                    weights,
                    relevance,
                    batch_size=config.indexing.batch_size,
                    transport=transport,
                )
            )
        else:
            logger.warning("External index engine selected but no host is configured")

    if search.engine != ENGINE_DIRECT_SCAN and search.enable_full_text:
        backends.append(
            IndexedFullTextBackend(
                connection,
                weights,
                relevance,
                store=store,
                capability=capability,
                max_candidates=search.max_candidates,
                batch_size=config.indexing.batch_size,
            )
        )

    backends.append(
        DirectScanBackend(store, weights, relevance, max_candidates=search.max_candidates)
    )
    return backends


class SearchOrchestrator:
    def __init__(
        self,
        config: Config,
        connection,
        scope_provider: AccessScopeProvider,
        *,
        backends: Sequence[SearchBackend] | None = None,
        cache: ResultCache | None = None,
        clock: Callable[[], datetime] = datetime.now,
        capability: FullTextCapability | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.config = config
        self._con = connection
        self.scope_provider = scope_provider
        self._clock = clock

        self.store = RecordStore(connection)
        self.resolver = DateExpressionResolver()
        self.parser = QueryParser(self.resolver, clock=clock)
        self.relevance = RelevanceModel(enable_fuzzy=config.search.enable_fuzzy)
        self.cache = cache or ResultCache(max_entries=config.cache.max_entries)
        self.history = HistoryStore(connection, max_history=config.history.max_history, clock=clock)
        self.suggestions = SuggestionEngine(
            connection,
            self.history,
            enabled=config.suggestions.enabled,
            default_limit=config.suggestions.limit,
        )
        if backends is None:
            backends = build_backends(
                config,
                connection,
                self.store,
                self.relevance,
                capability=capability,
                transport=transport,
            )
        self.backends = list(backends)

        self._queue_lock = Lock()
        self._pending_upserts: set[int] = set()
        self._pending_deletes: set[int] = set()

    @classmethod
    def from_config(
        cls,
        config: Config | None = None,
        scope_provider: AccessScopeProvider | None = None,
        **kwargs,
    ) -> "SearchOrchestrator":
        """Open the configured database and wire everything up."""
        config = config or Config.load()
        connection = open_database(config.storage)
        return cls(config, connection, scope_provider or AllMailboxesScope(connection), **kwargs)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def perform_search(
        self,
        query: str,
        filters: SearchFilters | Mapping | None,
        user: SearchUser,
        page: int = 1,
        per_page: int | None = None,
    ) -> SearchOutcome:
        """Search on behalf of ``user``.

        Returns ``NO_OVERRIDE`` for queries shorter than the configured
        minimum, for unusable paging values and when every backend fails;
        an empty page when the user has no visible mailboxes.
        """
        try:
            if len((query or "").strip()) < self.config.search.min_query_length:
                return NO_OVERRIDE
            page = max(1, int(page))
            per_page = max(1, int(per_page or self.config.search.results_per_page))
        except (AttributeError, TypeError, ValueError):
            logger.warning("Ignoring search with query=%r page=%r per_page=%r", query, page, per_page)
            return NO_OVERRIDE

        try:
            now = self._clock()
            parsed = self.parser.parse(query)
            resolved = resolve_filters(filters, parsed, user.id, now, self.resolver)
            scope = narrow_scope(self.scope_provider.visible_mailboxes(user), resolved)
            if not scope:
                return ResultPage.empty(page, per_page)

            key = self.cache.make_key(query, resolved, scope, page, per_page)
            return self.cache.get_or_compute(
                key,
                self.config.cache.ttl_seconds,
                lambda: self._run_chain(parsed, resolved, scope, page, per_page),
                scope,
            )
        except _ChainExhausted:
            return NO_OVERRIDE
        except Exception:
            logger.exception("Search failed for query %r", query)
            return NO_OVERRIDE

    def _run_chain(self, parsed, filters, scope, page, per_page) -> ResultPage:
        for backend in self.backends:
            result = backend.search(parsed, filters, scope, page, per_page)
            if isinstance(result, ResultPage):
                logger.debug(
                    "%s answered %r with %d of %d",
                    backend.kind.value, parsed.original, len(result.items), result.total_count,
                )
                return result
            if result.unusable:
                logger.info("%s unavailable, falling back: %s", backend.kind.value, result.message)
            else:
                logger.warning("%s failed, falling back: %s", backend.kind.value, result.message)
        raise _ChainExhausted()

    def get_suggestions(self, prefix: str, user: SearchUser, limit: int | None = None) -> list[str]:
        try:
            scope = self.scope_provider.visible_mailboxes(user)
            return self.suggestions.suggest(user.id, prefix, limit, scope)
        except Exception:
            logger.exception("Suggestions failed for prefix %r", prefix)
            return []

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def track_history(self, query: str, user: SearchUser, result_count: int) -> None:
        if not self.config.history.track:
            return
        try:
            self.history.record(user.id, query, result_count)
        except Exception:
            logger.exception("Failed to record search history for user %s", user.id)

    def clear_history(self, user: SearchUser) -> None:
        try:
            removed = self.history.clear(user.id)
            logger.info("Cleared %d history entr(ies) for user %s", removed, user.id)
        except Exception:
            logger.exception("Failed to clear search history for user %s", user.id)

    def get_history(self, user: SearchUser, limit: int | None = None) -> list[HistoryEntry]:
        try:
            return self.history.list_for_user(user.id, limit)
        except Exception:
            logger.exception("Failed to read search history for user %s", user.id)
            return []

    # ------------------------------------------------------------------
    # Cache, index and statistics
    # ------------------------------------------------------------------

    def clear_cache(self, scope_hint: Iterable[int] | None = None) -> None:
        try:
            dropped = self.cache.clear(scope_hint)
        except Exception:
            logger.exception("Failed to clear cached results for %r", scope_hint)
            return
        logger.debug("Dropped %d cached result page(s)", dropped)

    def _indexed_backends(self) -> list[SearchBackend]:
        return [b for b in self.backends if b.kind is not EngineKind.DIRECT_SCAN]

    def rebuild_index(self, progress: ProgressCallback | None = None) -> int:
        """Rebuild every index-backed backend; returns the largest document count."""
        rebuilt = 0
        for backend in self._indexed_backends():
            try:
                rebuilt = max(rebuilt, backend.reindex(progress))
            except Exception:
                logger.exception("Reindex failed for %s", backend.kind.value)
        self.cache.clear()
        return rebuilt

    def get_statistics(self) -> SearchStatistics:
        try:
            stats = self.history.statistics()
        except Exception:
            logger.exception("Failed to read search statistics")
            stats = SearchStatistics()

        try:
            indexed = self._indexed_backends()
            stats.indexed_count = indexed[0].indexed_count() if indexed else self.store.count()
        except Exception:
            logger.exception("Failed to count indexed records")
        return stats

    # ------------------------------------------------------------------
    # Host events
    # ------------------------------------------------------------------

    def on_record_saved(self, record_id: int, mailbox_id: int | None = None) -> None:
        """A conversation was created or changed."""
        try:
            if mailbox_id is None:
                mailbox_id = self.store.mailbox_of(record_id)
            self.cache.invalidate_record(record_id, mailbox_id)
            self._schedule(record_id, deleted=False)
        except Exception:
            logger.exception("Failed to handle save of record %s", record_id)

    def on_thread_created(self, record_id: int, mailbox_id: int | None = None) -> None:
        self.on_record_saved(record_id, mailbox_id)

    def on_record_deleted(self, record_id: int, mailbox_id: int | None = None) -> None:
        try:
            self.cache.invalidate_record(record_id, mailbox_id)
            self._schedule(record_id, deleted=True)
        except Exception:
            logger.exception("Failed to handle delete of record %s", record_id)

    def on_search_performed(self, query: str, user: SearchUser, result_count: int) -> None:
        self.track_history(query, user, result_count)

    def _schedule(self, record_id: int, *, deleted: bool) -> None:
        mode = self.config.indexing.mode
        if mode == INDEX_MODE_REALTIME:
            self._apply([record_id] if not deleted else [], [record_id] if deleted else [])
        elif mode == INDEX_MODE_QUEUE:
            with self._queue_lock:
                if deleted:
                    self._pending_upserts.discard(record_id)
                    self._pending_deletes.add(record_id)
                else:
                    self._pending_deletes.discard(record_id)
                    self._pending_upserts.add(record_id)

    def _apply(self, upserts: list[int], deletes: list[int]) -> None:
        for backend in self._indexed_backends():
            try:
                if upserts:
                    backend.index_records(upserts)
                if deletes:
                    backend.remove_records(deletes)
            except Exception:
                logger.exception("Index update failed for %s", backend.kind.value)

    def process_index_queue(self) -> int:
        """Apply queued record changes; returns how many records were processed."""
        with self._queue_lock:
            upserts = sorted(self._pending_upserts)
            deletes = sorted(self._pending_deletes)
            self._pending_upserts.clear()
            self._pending_deletes.clear()
        if upserts or deletes:
            self._apply(upserts, deletes)
            for backend in self._indexed_backends():
                try:
                    backend.refresh()
                except Exception:
                    logger.exception("Index refresh failed for %s", backend.kind.value)
        return len(upserts) + len(deletes)

    @property
    def pending_index_count(self) -> int:
        with self._queue_lock:
            return len(self._pending_upserts) + len(self._pending_deletes)

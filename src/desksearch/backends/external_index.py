"""
Meilisearch integration.

The external index holds one document per conversation. Searches go over
HTTP; hits are resolved back to live records so callers always see the
current state of a ticket, in the order Meilisearch ranked them.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Iterable, Mapping

import duckdb
import httpx

from desksearch.backends.base import ProgressCallback, SearchBackend, page_offset
from desksearch.config.constants import (
    DEFAULT_EXTERNAL_INDEX_NAME,
    DEFAULT_EXTERNAL_TIMEOUT_SECONDS,
    DEFAULT_INDEX_BATCH_SIZE,
    HIGHLIGHT_POST_TAG,
    HIGHLIGHT_PRE_TAG,
)
from desksearch.config.settings import ExternalIndexConfig
from desksearch.core.indexer import plain_text
from desksearch.core.relevance import RelevanceModel
from desksearch.models import (
    BackendResult,
    EngineKind,
    ParsedQuery,
    RankedRecord,
    ResultPage,
    SearchFilters,
    SearchRecord,
    SortOrder,
)
from desksearch.store import RecordStore

logger = logging.getLogger(__name__)


SEARCHABLE_ATTRIBUTES = [
    "subject",
    "customer_email",
    "customer_name",
    "body_text",
    "thread_from",
    "thread_to",
    "thread_cc",
    "number",
]
FILTERABLE_ATTRIBUTES = [
    "mailbox_id",
    "status",
    "state",
    "type",
    "customer_id",
    "user_id",
    "has_attachments",
    "threads_count",
    "created_at",
]
SORTABLE_ATTRIBUTES = ["created_at", "updated_at"]
RANKING_RULES = ["words", "typo", "proximity", "attribute", "sort", "exactness"]
HIGHLIGHT_ATTRIBUTES = {
    "subject": "subject",
    "body_text": "body",
    "customer_email": "customer_email",
}


def _timestamp(value: datetime | None) -> int | None:
    return int(value.timestamp()) if value is not None else None


def to_document(record: SearchRecord) -> dict[str, Any]:
    """Flatten a record into the document shape stored in Meilisearch."""
    return {
        "id": record.id,
        "conversation_id": record.id,
        "number": record.number,
        "mailbox_id": record.mailbox_id,
        "customer_id": record.customer_id,
        "user_id": record.user_id,
        "subject": record.subject,
        "customer_email": record.customer_email,
        "customer_name": record.customer_name,
        "body_text": plain_text(record.body),
        "thread_from": record.thread_from,
        "thread_to": record.thread_to,
        "thread_cc": record.thread_cc,
        "status": record.status,
        "state": record.state,
        "type": record.type,
        "has_attachments": record.has_attachments,
        "threads_count": record.threads_count,
        "created_at": _timestamp(record.created_at),
        "updated_at": _timestamp(record.updated_at),
    }


def filter_expressions(filters: SearchFilters, scope: Iterable[int]) -> list[str]:
    """Translate filters and scope into Meilisearch filter expressions (ANDed)."""
    mailbox_ids = ", ".join(str(m) for m in sorted(scope))
    expressions = [f"mailbox_id IN [{mailbox_ids}]"]

    for attribute, value in (
        ("status", filters.status),
        ("state", filters.state),
        ("type", filters.type),
        ("customer_id", filters.customer),
    ):
        if value is not None:
            expressions.append(f"{attribute} = {int(value)}")

    if filters.assignee == "unassigned":
        expressions.append("user_id IS NULL")
    elif isinstance(filters.assignee, int):
        expressions.append(f"user_id = {filters.assignee}")

    if filters.date_from is not None:
        expressions.append(f"created_at >= {_timestamp(filters.date_from)}")
    if filters.date_to is not None:
        expressions.append(f"created_at <= {_timestamp(filters.date_to)}")

    if filters.has_attachments is not None:
        expressions.append(f"has_attachments = {'true' if filters.has_attachments else 'false'}")
    if filters.has_replies is True:
        expressions.append("threads_count > 1")
    elif filters.has_replies is False:
        expressions.append("threads_count <= 1")
    return expressions


def query_text(parsed: ParsedQuery, filters: SearchFilters) -> str:
    """Free text sent to Meilisearch; text-only filters ride along as words."""
    parts = [parsed.cleaned_text.strip()]
    for extra in (filters.from_email, filters.to_email, filters.subject, filters.body):
        if extra:
            parts.append(extra)
    return " ".join(p for p in parts if p)


class MeilisearchClient:
    """Thin synchronous wrapper over the Meilisearch REST API."""

    def __init__(
        self,
        host: str,
        api_key: str | None = None,
        *,
        timeout: float = DEFAULT_EXTERNAL_TIMEOUT_SECONDS,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self._http = httpx.Client(
            base_url=host.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def healthy(self) -> bool:
        try:
            response = self._http.get("/health")
            response.raise_for_status()
            return response.json().get("status") == "available"
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Meilisearch health check failed: %s", exc)
            return False

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        response = self._http.request(method, path, **kwargs)
        response.raise_for_status()
        return response.json() if response.content else {}

    def search(self, index: str, body: Mapping[str, Any]) -> dict[str, Any]:
        return self._request("POST", f"/indexes/{index}/search", json=dict(body))

    def update_settings(self, index: str, settings: Mapping[str, Any]) -> dict[str, Any]:
        return self._request("PATCH", f"/indexes/{index}/settings", json=dict(settings))

    def delete_all_documents(self, index: str) -> dict[str, Any]:
        return self._request("DELETE", f"/indexes/{index}/documents")

    def add_documents(self, index: str, documents: list[dict[str, Any]]) -> dict[str, Any]:
        return self._request(
            "POST",
            f"/indexes/{index}/documents",
            params={"primaryKey": "id"},
            content=json.dumps(documents, default=str),
            headers={"Content-Type": "application/json"},
        )

    def delete_documents(self, index: str, document_ids: list[int]) -> dict[str, Any]:
        return self._request("POST", f"/indexes/{index}/documents/delete-batch", json=document_ids)

    def stats(self, index: str) -> dict[str, Any]:
        return self._request("GET", f"/indexes/{index}/stats")

    def close(self) -> None:
        self._http.close()


class ExternalIndexBackend(SearchBackend):
    kind = EngineKind.EXTERNAL_INDEX

    def __init__(
        self,
        client: MeilisearchClient,
        store: RecordStore,
        weights: Mapping[str, float],
        relevance: RelevanceModel | None = None,
        *,
        index_name: str = DEFAULT_EXTERNAL_INDEX_NAME,
        typo_tolerance: Mapping[str, Any] | None = None,
        batch_size: int = DEFAULT_INDEX_BATCH_SIZE,
    ) -> None:
        super().__init__(weights, relevance)
        self.client = client
        self._store = store
        self.index_name = index_name
        self.typo_tolerance = dict(typo_tolerance or {})
        self.batch_size = batch_size

    @classmethod
    def from_config(
        cls,
        config: ExternalIndexConfig,
        store: RecordStore,
        weights: Mapping[str, float],
        relevance: RelevanceModel | None = None,
        *,
        batch_size: int = DEFAULT_INDEX_BATCH_SIZE,
        transport: httpx.BaseTransport | None = None,
    ) -> "ExternalIndexBackend":
        if not config.configured:
            raise ValueError("External index host is not configured")
        client = MeilisearchClient(
            config.host or "",
            config.api_key,
            timeout=config.timeout_seconds,
            transport=transport,
        )
        return cls(
            client,
            store,
            weights,
            relevance,
            index_name=config.index_name,
            typo_tolerance=config.typo_tolerance(),
            batch_size=batch_size,
        )

    def is_available(self) -> bool:
        return self.client.healthy()

    def search(
        self,
        parsed: ParsedQuery,
        filters: SearchFilters,
        scope: frozenset[int],
        page: int,
        per_page: int,
    ) -> BackendResult:
        if not self.is_available():
            return self.unavailable("Meilisearch is not reachable")
        if not scope:
            return ResultPage.empty(page, per_page, self.kind.value)

        body: dict[str, Any] = {
            "q": query_text(parsed, filters),
            "limit": per_page,
            "offset": page_offset(page, per_page),
            "filter": filter_expressions(filters, scope),
            "attributesToHighlight": list(HIGHLIGHT_ATTRIBUTES),
            "highlightPreTag": HIGHLIGHT_PRE_TAG,
            "highlightPostTag": HIGHLIGHT_POST_TAG,
            "showRankingScore": True,
        }
        if filters.sort is SortOrder.DATE_DESC:
            body["sort"] = ["created_at:desc"]
        elif filters.sort is SortOrder.DATE_ASC:
            body["sort"] = ["created_at:asc"]

        try:
            response = self.client.search(self.index_name, body)
        except (httpx.HTTPError, ValueError) as exc:
            return self.failed(str(exc))

        hits = response.get("hits") or []
        hit_ids = [int(hit["id"]) for hit in hits if "id" in hit]
        try:
            records = {r.id: r for r in self._store.load(hit_ids)}
        except duckdb.Error as exc:
            return self.failed(f"record lookup failed: {exc}")

        items: list[RankedRecord] = []
        for position, hit in enumerate(hits):
            record = records.get(int(hit.get("id", -1)))
            if record is None:
                continue
            formatted = hit.get("_formatted") or {}
            highlights = {
                name: str(formatted[attribute])
                for attribute, name in HIGHLIGHT_ATTRIBUTES.items()
                if formatted.get(attribute) and HIGHLIGHT_PRE_TAG in str(formatted[attribute])
            }
            score = hit.get("_rankingScore")
            items.append(
                RankedRecord(
                    record_id=record.id,
                    relevance_score=float(score) if score is not None else float(len(hits) - position),
                    record=record,
                    highlights=highlights,
                )
            )

        total = response.get("estimatedTotalHits", response.get("totalHits", len(items)))
        return ResultPage(
            items=tuple(items),
            total_count=int(total),
            page=page,
            per_page=per_page,
            engine=self.kind.value,
        )

    def configure_index(self) -> None:
        settings: dict[str, Any] = {
            "searchableAttributes": SEARCHABLE_ATTRIBUTES,
            "filterableAttributes": FILTERABLE_ATTRIBUTES,
            "sortableAttributes": SORTABLE_ATTRIBUTES,
            "rankingRules": RANKING_RULES,
        }
        if self.typo_tolerance:
            settings["typoTolerance"] = self.typo_tolerance
        self.client.update_settings(self.index_name, settings)

    def reindex(self, progress: ProgressCallback | None = None) -> int:
        """Push every record to Meilisearch after wiping the index."""
        if not self.is_available():
            logger.warning("Skipping external reindex: Meilisearch is not reachable")
            return 0
        try:
            self.configure_index()
            self.client.delete_all_documents(self.index_name)

            total = self._store.count()
            done = 0
            for batch in self._store.iter_batches(self.batch_size):
                self.client.add_documents(self.index_name, [to_document(r) for r in batch])
                done += len(batch)
                if progress is not None:
                    progress(done, total)
        except httpx.HTTPError as exc:
            logger.error("External reindex failed: %s", exc)
            return 0
        logger.info("Sent %d document(s) to Meilisearch index %s", done, self.index_name)
        return done

    def indexed_count(self) -> int:
        try:
            return int(self.client.stats(self.index_name).get("numberOfDocuments", 0))
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Could not read Meilisearch stats: %s", exc)
            return 0

    def index_records(self, record_ids: Iterable[int]) -> int:
        ids = list(dict.fromkeys(int(i) for i in record_ids))
        if not ids:
            return 0
        records = self._store.load(ids)
        found = {r.id for r in records}
        missing = [i for i in ids if i not in found]
        try:
            if records:
                self.client.add_documents(self.index_name, [to_document(r) for r in records])
            if missing:
                self.client.delete_documents(self.index_name, missing)
        except httpx.HTTPError as exc:
            logger.error("Failed to update Meilisearch documents: %s", exc)
            return 0
        return len(records)

    def remove_records(self, record_ids: Iterable[int]) -> int:
        ids = [int(i) for i in record_ids]
        if not ids:
            return 0
        try:
            self.client.delete_documents(self.index_name, ids)
        except httpx.HTTPError as exc:
            logger.error("Failed to delete Meilisearch documents: %s", exc)
            return 0
        return len(ids)

"""Tests for desksearch.core.cache."""
from __future__ import annotations

from datetime import datetime

import pytest

from desksearch.core.cache import ResultCache
from desksearch.models import RankedRecord, ResultPage, SearchFilters, SearchRecord


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def page_of(*record_ids: int) -> ResultPage:
    items = tuple(
        RankedRecord(
            record_id=rid,
            relevance_score=1.0,
            record=SearchRecord(
                id=rid, number=rid, subject="s", mailbox_id=1, customer_id=None,
                customer_email="", customer_name="", user_id=None, status=1, state=2,
                type=1, has_attachments=False, threads_count=1,
                created_at=datetime(2024, 1, 1), updated_at=datetime(2024, 1, 1),
            ),
        )
        for rid in record_ids
    )
    return ResultPage(items=items, total_count=len(items), page=1, per_page=10)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return ResultCache(max_entries=3, clock=clock)


class TestMakeKey:
    def test_normalizes_query_text(self):
        a = ResultCache.make_key("Refund  Order", SearchFilters(), [1, 2], 1, 50)
        b = ResultCache.make_key(" refund order ", SearchFilters(), [2, 1], 1, 50)
        assert a == b

    def test_distinguishes_page_scope_and_filters(self):
        base = ResultCache.make_key("refund", SearchFilters(), [1], 1, 50)
        assert base != ResultCache.make_key("refund", SearchFilters(), [1], 2, 50)
        assert base != ResultCache.make_key("refund", SearchFilters(), [1, 2], 1, 50)
        assert base != ResultCache.make_key("refund", SearchFilters(status=1), [1], 1, 50)


class TestGetOrCompute:
    """Memoization and TTL."""

    def test_second_call_does_not_recompute(self, cache):
        calls = []

        def compute():
            calls.append(1)
            return page_of(1)

        first = cache.get_or_compute("k", 60, compute, [1])
        second = cache.get_or_compute("k", 60, compute, [1])

        assert first is second
        assert len(calls) == 1

    def test_expired_entry_recomputes(self, cache, clock):
        calls = []

        def compute():
            calls.append(1)
            return page_of(1)

        cache.get_or_compute("k", 60, compute)
        clock.now += 61
        cache.get_or_compute("k", 60, compute)

        assert len(calls) == 2

    def test_zero_ttl_bypasses_cache(self, cache):
        calls = []

        def compute():
            calls.append(1)
            return page_of(1)

        cache.get_or_compute("k", 0, compute)
        cache.get_or_compute("k", 0, compute)

        assert len(calls) == 2
        assert len(cache) == 0

    def test_exception_is_not_cached(self, cache):
        def boom():
            raise RuntimeError("backend down")

        with pytest.raises(RuntimeError):
            cache.get_or_compute("k", 60, boom)
        assert cache.get("k") is None

    def test_lru_eviction(self, cache):
        for key in ("a", "b", "c"):
            cache.put(key, page_of(1), 60)
        cache.get("a")
        cache.put("d", page_of(1), 60)

        assert cache.get("b") is None
        assert cache.get("a") is not None
        assert len(cache) == 3


class TestInvalidation:
    def test_invalidate_by_mailbox_scope(self, cache):
        cache.put("m1", page_of(1), 60, scope=[1])
        cache.put("m2", page_of(2), 60, scope=[2])

        dropped = cache.invalidate_record(99, mailbox_id=1)

        assert dropped == 1
        assert cache.get("m1") is None
        assert cache.get("m2") is not None

    def test_invalidate_by_record_membership(self, cache):
        cache.put("m2", page_of(5), 60, scope=[2])

        cache.invalidate_record(5, mailbox_id=3)

        assert cache.get("m2") is None

    def test_unknown_mailbox_clears_everything(self, cache):
        cache.put("a", page_of(1), 60, scope=[1])
        cache.put("b", page_of(2), 60, scope=[2])

        assert cache.invalidate_record(1) == 2
        assert len(cache) == 0

    def test_clear_with_scope_hint(self, cache):
        cache.put("a", page_of(1), 60, scope=[1, 2])
        cache.put("b", page_of(2), 60, scope=[3])

        assert cache.clear([2]) == 1
        assert cache.get("b") is not None
        assert cache.clear() == 1

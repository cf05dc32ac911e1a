"""Tests for desksearch.core.indexer."""
from __future__ import annotations

from datetime import datetime

import pytest

from desksearch.core.indexer import SearchIndexer, plain_text


INDEXED_AT = datetime(2024, 3, 15, 12, 0, 0)


@pytest.fixture
def indexer(con, store, monkeypatch):
    idx = SearchIndexer(con, store, clock=lambda: INDEXED_AT)
    # FTS rebuilds are covered by the fts-backed tests below.
    monkeypatch.setattr(idx, "build_fulltext", lambda: False)
    return idx


def _indexed_ids(con) -> list[int]:
    rows = con.execute("SELECT conversation_id FROM search_index ORDER BY conversation_id").fetchall()
    return [r[0] for r in rows]


def test_plain_text_strips_markup():
    assert plain_text("<p>Hello&nbsp;<b>world</b></p>\n\n ok") == "Hello world ok"
    assert plain_text("") == ""
    assert plain_text("x" * 10, limit=4) == "xxxx"


def test_rebuild_indexes_every_record_with_progress(con, indexer):
    calls = []

    count = indexer.rebuild(lambda done, total: calls.append((done, total)), batch_size=3)

    assert count == 7
    assert indexer.count() == 7
    assert calls == [(3, 7), (6, 7), (7, 7)]
    assert _indexed_ids(con) == [1, 2, 3, 4, 5, 6, 7]


def test_rebuild_clears_stale_rows(con, indexer):
    indexer.rebuild()
    con.execute("DELETE FROM conversations WHERE id = 7")

    assert indexer.rebuild() == 6
    assert 7 not in _indexed_ids(con)


def test_index_records_flattens_thread_text(con, indexer):
    indexer.index_records([1])

    row = con.execute(
        "SELECT subject, customer_email, customer_name, body_text, thread_cc, indexed_at "
        "FROM search_index WHERE conversation_id = 1"
    ).fetchone()
    assert row[0] == "Refund request for order 1234"
    assert row[1] == "alice@example.com"
    assert row[2] == "Alice Smith"
    assert "<p>" not in row[3]
    assert "refund for my order" in row[3]
    assert "billing@desk.io" in row[4]
    assert row[5] == INDEXED_AT


def test_index_records_is_an_upsert(con, indexer):
    indexer.index_records([3])
    con.execute("UPDATE conversations SET subject = 'Refund (urgent)' WHERE id = 3")

    indexer.index_records([3, 3])

    rows = con.execute("SELECT subject FROM search_index WHERE conversation_id = 3").fetchall()
    assert rows == [("Refund (urgent)",)]


def test_index_records_drops_missing_ids(con, indexer):
    indexer.index_records([2])
    con.execute("DELETE FROM threads WHERE conversation_id = 2")
    con.execute("DELETE FROM conversations WHERE id = 2")

    assert indexer.index_records([2]) == 0
    assert indexer.count() == 0


def test_remove_records(con, indexer):
    indexer.index_records([1, 2, 3])

    assert indexer.remove_records([2]) == 1
    assert _indexed_ids(con) == [1, 3]
    assert indexer.remove_records([]) == 0


def test_record_writes_defer_fulltext_rebuild(con, store, monkeypatch):
    indexer = SearchIndexer(con, store, clock=lambda: INDEXED_AT)
    builds = []
    monkeypatch.setattr(indexer, "build_fulltext", lambda: builds.append(1) or True)

    indexer.index_records([1])
    indexer.index_records([2])
    indexer.remove_records([1])

    assert builds == []
    assert indexer.fulltext_stale

    assert indexer.refresh_fulltext() is True
    assert builds == [1]


def test_refresh_without_writes_does_not_rebuild(con, store, monkeypatch):
    indexer = SearchIndexer(con, store, clock=lambda: INDEXED_AT)
    builds = []
    monkeypatch.setattr(indexer, "build_fulltext", lambda: builds.append(1) or True)

    assert indexer.refresh_fulltext() is False
    assert builds == []


def test_refresh_after_build_clears_stale_flag(fts_con, store):
    indexer = SearchIndexer(fts_con, store, clock=lambda: INDEXED_AT)
    indexer.rebuild()
    assert not indexer.fulltext_stale

    indexer.index_records([7])
    assert indexer.fulltext_stale

    assert indexer.refresh_fulltext() is True
    assert not indexer.fulltext_stale
    assert indexer.fulltext_ready


def test_build_fulltext_creates_searchable_index(fts_con, store):
    indexer = SearchIndexer(fts_con, store, clock=lambda: INDEXED_AT)
    indexer.rebuild()

    assert indexer.fulltext_ready
    rows = fts_con.execute(
        """
        SELECT conversation_id
        FROM (
            SELECT conversation_id, fts_main_search_index.match_bm25(conversation_id, 'password') AS score
            FROM search_index
        )
        WHERE score IS NOT NULL
        """
    ).fetchall()
    assert [r[0] for r in rows] == [7]

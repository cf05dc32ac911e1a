"""Pytest configuration and fixtures for desksearch tests.

Every test gets an isolated DESKSEARCH_DATA_DIR and no DESKSEARCH_* or
MEILISEARCH_* variables from the developer's shell. Database fixtures use
an in-memory DuckDB seeded with a small helpdesk.
"""

from __future__ import annotations

import os
from datetime import datetime, timedelta

import duckdb
import pytest

from desksearch.config import Config
from desksearch.provider import StaticScopeProvider
from desksearch.store import RecordStore, ensure_host_schema


# Friday, mid-day.
FIXED_NOW = datetime(2024, 3, 15, 12, 0, 0)

AGENT_ID = 7
OTHER_AGENT_ID = 8


def insert_customer(con, id, first_name, last_name, email):
    con.execute(
        "INSERT INTO customers (id, first_name, last_name, email) VALUES (?, ?, ?, ?)",
        [id, first_name, last_name, email],
    )


def insert_conversation(
    con,
    id,
    subject,
    *,
    mailbox_id=1,
    number=None,
    customer_id=None,
    customer_email=None,
    user_id=None,
    status=1,
    state=2,
    type=1,
    has_attachments=False,
    created_at=None,
    updated_at=None,
    threads=(),
):
    """Insert a conversation and its threads; threads are (body, from, to, cc) tuples."""
    created_at = created_at or FIXED_NOW - timedelta(days=1)
    con.execute(
        """
        INSERT INTO conversations (
            id, number, subject, mailbox_id, customer_id, customer_email, user_id,
            status, state, type, has_attachments, threads_count, preview,
            created_at, updated_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        [
            id,
            number if number is not None else 1000 + id,
            subject,
            mailbox_id,
            customer_id,
            customer_email,
            user_id,
            status,
            state,
            type,
            has_attachments,
            len(threads),
            (threads[0][0] if threads else "")[:100],
            created_at,
            updated_at or created_at,
        ],
    )
    for offset, (body, from_addr, to_addr, cc_addr) in enumerate(threads):
        con.execute(
            """
            INSERT INTO threads (id, conversation_id, type, body, from_addr, to_addr, cc_addr, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [id * 100 + offset, id, 1, body, from_addr, to_addr, cc_addr, created_at],
        )


def seed_helpdesk(con) -> None:
    insert_customer(con, 1, "John", "Doe", "john@x.com")
    insert_customer(con, 2, "Alice", "Smith", "alice@example.com")
    insert_customer(con, 3, "Bob", "Stone", "bob@shop.io")

    day = timedelta(days=1)
    insert_conversation(
        con, 1, "Refund request for order 1234",
        mailbox_id=1, customer_id=2, customer_email="alice@example.com", user_id=AGENT_ID,
        has_attachments=True, created_at=FIXED_NOW - 2 * day,
        threads=[
            ("<p>Hello, I would like a <b>refund</b> for my order.</p>", "alice@example.com", "support@desk.io", ""),
            ("We are looking into it.", "agent@desk.io", "alice@example.com", "billing@desk.io"),
        ],
    )
    insert_conversation(
        con, 2, "Shipping delay",
        mailbox_id=1, customer_id=3, customer_email="bob@shop.io",
        created_at=FIXED_NOW - 3 * day,
        threads=[("Can I get a refund if it arrives late?", "bob@shop.io", "support@desk.io", "")],
    )
    insert_conversation(
        con, 3, "Refund",
        mailbox_id=2, customer_id=1, customer_email="john@x.com",
        created_at=FIXED_NOW - day,
        threads=[("Please process it.", "john@x.com", "support@desk.io", "")],
    )
    insert_conversation(
        con, 4, "Refund processed",
        mailbox_id=3, customer_id=1, customer_email="john@x.com",
        created_at=FIXED_NOW - day,
        threads=[("Done.", "john@x.com", "support@desk.io", "")],
    )
    insert_conversation(
        con, 5, "Old refund question",
        mailbox_id=1, customer_id=2, customer_email="alice@example.com",
        created_at=FIXED_NOW - 30 * day,
        threads=[("Is a refund possible?", "alice@example.com", "support@desk.io", "")],
    )
    insert_conversation(
        con, 6, "Refund declined",
        mailbox_id=2, customer_id=3, customer_email="bob@shop.io", status=3,
        created_at=FIXED_NOW - day,
        threads=[("Sorry, no.", "agent@desk.io", "bob@shop.io", "")],
    )
    insert_conversation(
        con, 7, "Password reset",
        mailbox_id=2, customer_id=1, customer_email="john@x.com", user_id=AGENT_ID, status=2,
        created_at=FIXED_NOW - 5 * day,
        threads=[("Jon cannot log in to the portal.", "john@x.com", "support@desk.io", "")],
    )


@pytest.fixture(autouse=True)
def _isolate_desksearch_env(monkeypatch, tmp_path):
    """Force tests to use a temp DESKSEARCH_DATA_DIR and ignore shell overrides."""
    for name in list(os.environ):
        if name.startswith(("DESKSEARCH_", "MEILISEARCH_")):
            monkeypatch.delenv(name, raising=False)
    data_dir = tmp_path / ".desksearch"
    (data_dir / "config").mkdir(parents=True, exist_ok=True)
    monkeypatch.setenv("DESKSEARCH_DATA_DIR", str(data_dir))


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def con():
    """In-memory DuckDB with the host schema and seeded helpdesk data."""
    connection = duckdb.connect(database=":memory:")
    ensure_host_schema(connection)
    seed_helpdesk(connection)
    yield connection
    connection.close()


@pytest.fixture
def empty_con():
    connection = duckdb.connect(database=":memory:")
    ensure_host_schema(connection)
    yield connection
    connection.close()


@pytest.fixture
def seeded_database(tmp_path, monkeypatch):
    """On-disk database with seeded host tables, wired in via DESKSEARCH_DATABASE_PATH."""
    path = tmp_path / "desk.duckdb"
    connection = duckdb.connect(database=str(path))
    ensure_host_schema(connection)
    seed_helpdesk(connection)
    connection.close()
    monkeypatch.setenv("DESKSEARCH_DATABASE_PATH", str(path))
    return path


@pytest.fixture
def store(con):
    return RecordStore(con)


@pytest.fixture
def fts_con(con):
    """Seeded connection with the DuckDB fts extension loaded, or skip."""
    try:
        con.execute("INSTALL fts; LOAD fts;")
    except duckdb.Error as exc:
        pytest.skip(f"DuckDB fts extension unavailable: {exc}")
    return con


@pytest.fixture
def make_config():
    """Build a Config from section overrides on top of built-in defaults."""

    def _make(**sections):
        data = {"logging": {"file_enabled": False, "use_rich_console": False}}
        data.update(sections)
        return Config.from_dict(data)

    return _make


@pytest.fixture
def config(make_config):
    return make_config(search={"engine": "direct-scan"})


@pytest.fixture
def scope_provider():
    return StaticScopeProvider({AGENT_ID: [1, 2], OTHER_AGENT_ID: []})

"""Tests for the desksearch command line."""
from __future__ import annotations

import logging

import duckdb
import pytest

from desksearch.cli.main import _build_parser, main


@pytest.fixture(autouse=True)
def _restore_package_logger():
    yield
    package_logger = logging.getLogger("desksearch")
    for handler in package_logger.handlers[:]:
        package_logger.removeHandler(handler)
        handler.close()
    package_logger.setLevel(logging.NOTSET)
    package_logger.propagate = True


@pytest.fixture
def direct_scan(monkeypatch):
    monkeypatch.setenv("DESKSEARCH_ENGINE", "direct-scan")


class TestParser:
    def test_search_arguments(self):
        args = _build_parser().parse_args(["search", "refund status:open", "--user", "7", "--per-page", "5"])

        assert args.subcommand == "search"
        assert args.query == "refund status:open"
        assert args.user == 7
        assert args.per_page == 5
        assert args.page == 1
        assert args.admin is False

    def test_rebuild_and_stats(self):
        assert _build_parser().parse_args(["rebuild-index"]).subcommand == "rebuild-index"
        assert _build_parser().parse_args(["stats"]).subcommand == "stats"


class TestMain:
    def test_version(self, capsys):
        from desksearch import __version__

        assert main(["--version"]) == 0
        assert __version__ in capsys.readouterr().out

    def test_no_subcommand_prints_help(self, capsys):
        assert main([]) == 2
        assert "usage" in capsys.readouterr().out.lower()

    def test_invalid_config_returns_error(self, monkeypatch, capsys):
        monkeypatch.setenv("DESKSEARCH_ENGINE", "elastic")

        assert main(["stats"]) == 1
        assert "Configuration error" in capsys.readouterr().out

    def test_search_prints_results_and_tracks_history(self, seeded_database, direct_scan, capsys):
        assert main(["search", "refund", "--user", "7"]) == 0
        assert "result(s)" in capsys.readouterr().out

        assert main(["stats"]) == 0
        out = capsys.readouterr().out
        assert "Total searches" in out
        assert "refund" in out

    def test_short_query_reports_no_override(self, seeded_database, direct_scan, capsys):
        assert main(["search", "r"]) == 1
        assert "No search override" in capsys.readouterr().out

    def test_rebuild_index_with_direct_scan(self, seeded_database, direct_scan, capsys):
        assert main(["rebuild-index"]) == 0
        assert "Indexed 0 conversation(s)" in capsys.readouterr().out

    def test_search_table_shows_customer_text_verbatim(self, seeded_database, direct_scan, monkeypatch, capsys):
        monkeypatch.setenv("COLUMNS", "200")
        connection = duckdb.connect(database=str(seeded_database))
        connection.execute("UPDATE conversations SET customer_email = '[b]jo[/b]@x.com' WHERE id = 3")
        connection.close()

        assert main(["search", "1003", "--user", "7"]) == 0
        assert "[b]jo[/b]@x.com" in capsys.readouterr().out

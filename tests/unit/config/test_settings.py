"""Tests for desksearch.config.settings."""
from __future__ import annotations

import pytest

from desksearch.config import Config
from desksearch.config.constants import (
    DEFAULT_ENGINE,
    DEFAULT_FIELD_WEIGHTS,
    DEFAULT_RESULTS_PER_PAGE,
    ENGINE_EXTERNAL_INDEX,
)


class TestConfigLoad:
    """Tests for Config.load edge cases."""

    def test_explicit_missing_path_raises(self, tmp_path):
        missing = tmp_path / "nonexistent" / "settings.toml"
        with pytest.raises(FileNotFoundError):
            Config.load(config_path=missing)

    def test_default_load_uses_packaged_settings(self):
        config = Config.load()
        assert config.search.engine == DEFAULT_ENGINE
        assert config.search.results_per_page == DEFAULT_RESULTS_PER_PAGE
        assert config.search.field_weights == DEFAULT_FIELD_WEIGHTS
        assert config.external_index.configured is False

    def test_user_config_takes_precedence(self, tmp_path, monkeypatch):
        data_dir = tmp_path / "data"
        (data_dir / "config").mkdir(parents=True)
        (data_dir / "config" / "settings.toml").write_text(
            '[search]\nengine = "direct-scan"\nresults_per_page = 10\n\n'
            "[search.weights]\nsubject = 20\n",
            encoding="utf-8",
        )
        monkeypatch.setenv("DESKSEARCH_DATA_DIR", str(data_dir))

        config = Config.load()

        assert config.search.engine == "direct-scan"
        assert config.search.results_per_page == 10
        assert config.search.field_weights["subject"] == 20
        assert config.search.field_weights["body"] == DEFAULT_FIELD_WEIGHTS["body"]
        assert config.storage.database_path.startswith(str(data_dir))

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "settings.toml"
        path.write_text("[cache]\nduration_minutes = 10\n", encoding="utf-8")
        monkeypatch.setenv("DESKSEARCH_CACHE_DURATION_MINUTES", "0")
        monkeypatch.setenv("DESKSEARCH_ENGINE", "external-index")
        monkeypatch.setenv("MEILISEARCH_HOST", "http://meili:7700")

        config = Config.load(config_path=path)

        assert config.cache.duration_minutes == 0
        assert config.cache.ttl_seconds == 0
        assert config.search.engine == ENGINE_EXTERNAL_INDEX
        assert config.external_index.configured is True


class TestValidation:
    def test_unknown_engine_raises(self):
        with pytest.raises(ValueError, match="Invalid engine"):
            Config.from_dict({"search": {"engine": "elastic"}})

    def test_unknown_index_mode_raises(self):
        with pytest.raises(ValueError, match="Invalid index mode"):
            Config.from_dict({"indexing": {"mode": "weekly"}})

    def test_engine_is_normalized(self):
        config = Config.from_dict({"search": {"engine": " Direct-Scan "}})
        assert config.search.engine == "direct-scan"

    def test_bad_env_int_falls_back(self, monkeypatch):
        monkeypatch.setenv("DESKSEARCH_MAX_HISTORY", "lots")
        config = Config.from_dict({"history": {"max_history": 20}})
        assert config.history.max_history == 20

    def test_batch_size_at_least_one(self):
        config = Config.from_dict({"indexing": {"batch_size": 0}})
        assert config.indexing.batch_size == 1


class TestExternalIndexConfig:
    def test_typo_tolerance_shape(self):
        config = Config.from_dict({"external_index": {"min_word_size_one_typo": 5}})
        typo = config.external_index.typo_tolerance()
        assert typo["enabled"] is True
        assert typo["minWordSizeForTypos"] == {"oneTypo": 5, "twoTypos": 8}

    def test_empty_host_is_unconfigured(self):
        config = Config.from_dict({"external_index": {"host": ""}})
        assert config.external_index.host is None
        assert config.external_index.configured is False

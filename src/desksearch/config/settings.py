"""
Configuration management with environment variable and .env support.

Configuration precedence (highest to lowest):
1. Environment variables (DESKSEARCH_*, MEILISEARCH_*)
2. User config file (~/.desksearch/config/settings.toml)
3. Default config file (packaged settings.default.toml)
4. Hardcoded constants (constants.py)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import overload

import tomli
from dotenv import load_dotenv

from ..core.logging_config import LogConfig
from .constants import (
    DEFAULT_DATA_DIR,
    DEFAULT_CONFIG_SUBDIR,
    DEFAULT_DATABASE_FILE,
    SETTINGS_FILE,
    DEFAULT_SETTINGS_FILE,
    ENV_FILE,
    # Defaults
    DEFAULT_ENGINE,
    DEFAULT_ENABLE_FULLTEXT,
    DEFAULT_ENABLE_FUZZY,
    DEFAULT_MIN_QUERY_LENGTH,
    DEFAULT_RESULTS_PER_PAGE,
    DEFAULT_MAX_CANDIDATES,
    DEFAULT_FIELD_WEIGHTS,
    DEFAULT_ENABLE_SUGGESTIONS,
    DEFAULT_SUGGESTION_LIMIT,
    DEFAULT_CACHE_DURATION_MINUTES,
    DEFAULT_CACHE_MAX_ENTRIES,
    DEFAULT_TRACK_HISTORY,
    DEFAULT_MAX_HISTORY,
    DEFAULT_INDEX_MODE,
    DEFAULT_INDEX_BATCH_SIZE,
    DEFAULT_EXTERNAL_INDEX_NAME,
    DEFAULT_EXTERNAL_TIMEOUT_SECONDS,
    DEFAULT_TYPO_TOLERANCE_ENABLED,
    DEFAULT_MIN_WORD_SIZE_ONE_TYPO,
    DEFAULT_MIN_WORD_SIZE_TWO_TYPOS,
    DEFAULT_MEMORY_LIMIT_MB,
    VALID_ENGINES,
    VALID_INDEX_MODES,
    # Environment variable names
    ENV_DATA_DIR,
    ENV_DATABASE_PATH,
    ENV_MEMORY_LIMIT,
    ENV_ENGINE,
    ENV_ENABLE_FULLTEXT,
    ENV_ENABLE_FUZZY,
    ENV_MIN_QUERY_LENGTH,
    ENV_RESULTS_PER_PAGE,
    ENV_MAX_CANDIDATES,
    ENV_ENABLE_SUGGESTIONS,
    ENV_SUGGESTION_LIMIT,
    ENV_CACHE_DURATION,
    ENV_CACHE_MAX_ENTRIES,
    ENV_TRACK_HISTORY,
    ENV_MAX_HISTORY,
    ENV_INDEX_MODE,
    ENV_INDEX_BATCH_SIZE,
    ENV_MEILISEARCH_HOST,
    ENV_MEILISEARCH_KEY,
    ENV_MEILISEARCH_INDEX,
    ENV_MEILISEARCH_TIMEOUT,
    ERROR_NO_CONFIG,
    ERROR_INVALID_CHOICE,
)


# Load .env file at module import time
# Search order: ./.env, ~/.desksearch/.env, ~/.desksearch/config/.env
def _load_env_files():
    """Load .env files from standard locations."""
    env_locations = [
        Path.cwd() / ENV_FILE,
        DEFAULT_DATA_DIR / ENV_FILE,
        DEFAULT_DATA_DIR / DEFAULT_CONFIG_SUBDIR / ENV_FILE,
    ]

    for env_path in env_locations:
        if env_path.exists():
            load_dotenv(env_path, override=False)  # Don't override already-set vars


_load_env_files()


@overload
def _get_env_str(key: str, default: str) -> str: ...


@overload
def _get_env_str(key: str, default: None = None) -> str | None: ...


def _get_env_str(key: str, default: str | None = None) -> str | None:
    """Get string value from environment variable. Empty strings are treated as missing."""
    value = os.getenv(key)
    if value is None or value == "":
        return default
    return value


def _get_env_int(key: str, default: int) -> int:
    """Get integer value from environment variable."""
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _get_env_bool(key: str, default: bool) -> bool:
    """Get boolean value from environment variable."""
    value = os.getenv(key)
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _get_env_float(key: str, default: float) -> float:
    """Get float value from environment variable."""
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _require_choice(name: str, value: str, choices: tuple[str, ...]) -> str:
    normalized = value.strip().lower()
    if normalized not in choices:
        raise ValueError(
            ERROR_INVALID_CHOICE.format(name=name, value=value, choices=", ".join(choices))
        )
    return normalized


@dataclass
class SearchConfig:
    engine: str
    enable_full_text: bool
    enable_fuzzy: bool
    min_query_length: int
    results_per_page: int
    max_candidates: int
    field_weights: dict[str, int] = field(default_factory=lambda: dict(DEFAULT_FIELD_WEIGHTS))

    @classmethod
    def from_dict(cls, data: dict) -> "SearchConfig":
        """Create SearchConfig from dict with environment variable overrides."""
        weights = dict(DEFAULT_FIELD_WEIGHTS)
        for name, weight in (data.get("weights") or {}).items():
            weights[str(name)] = int(weight)

        engine = _get_env_str(ENV_ENGINE, data.get("engine", DEFAULT_ENGINE)) or DEFAULT_ENGINE
        return cls(
            engine=_require_choice("engine", engine, VALID_ENGINES),
            enable_full_text=_get_env_bool(
                ENV_ENABLE_FULLTEXT,
                data.get("enable_full_text", DEFAULT_ENABLE_FULLTEXT)
            ),
            enable_fuzzy=_get_env_bool(
                ENV_ENABLE_FUZZY,
                data.get("enable_fuzzy", DEFAULT_ENABLE_FUZZY)
            ),
            min_query_length=_get_env_int(
                ENV_MIN_QUERY_LENGTH,
                data.get("min_query_length", DEFAULT_MIN_QUERY_LENGTH)
            ),
            results_per_page=_get_env_int(
                ENV_RESULTS_PER_PAGE,
                data.get("results_per_page", DEFAULT_RESULTS_PER_PAGE)
            ),
            max_candidates=_get_env_int(
                ENV_MAX_CANDIDATES,
                data.get("max_candidates", DEFAULT_MAX_CANDIDATES)
            ),
            field_weights=weights,
        )


@dataclass
class SuggestionsConfig:
    enabled: bool
    limit: int

    @classmethod
    def from_dict(cls, data: dict) -> "SuggestionsConfig":
        return cls(
            enabled=_get_env_bool(
                ENV_ENABLE_SUGGESTIONS,
                data.get("enabled", DEFAULT_ENABLE_SUGGESTIONS),
            ),
            limit=_get_env_int(
                ENV_SUGGESTION_LIMIT,
                data.get("limit", DEFAULT_SUGGESTION_LIMIT),
            ),
        )


@dataclass
class CacheConfig:
    duration_minutes: int
    max_entries: int

    @classmethod
    def from_dict(cls, data: dict) -> "CacheConfig":
        return cls(
            duration_minutes=_get_env_int(
                ENV_CACHE_DURATION,
                data.get("duration_minutes", DEFAULT_CACHE_DURATION_MINUTES),
            ),
            max_entries=_get_env_int(
                ENV_CACHE_MAX_ENTRIES,
                data.get("max_entries", DEFAULT_CACHE_MAX_ENTRIES),
            ),
        )

    @property
    def ttl_seconds(self) -> float:
        return max(0, self.duration_minutes) * 60.0


@dataclass
class HistoryConfig:
    track: bool
    max_history: int

    @classmethod
    def from_dict(cls, data: dict) -> "HistoryConfig":
        return cls(
            track=_get_env_bool(
                ENV_TRACK_HISTORY,
                data.get("track", DEFAULT_TRACK_HISTORY),
            ),
            max_history=_get_env_int(
                ENV_MAX_HISTORY,
                data.get("max_history", DEFAULT_MAX_HISTORY),
            ),
        )


@dataclass
class IndexingConfig:
    mode: str
    batch_size: int

    @classmethod
    def from_dict(cls, data: dict) -> "IndexingConfig":
        """Create IndexingConfig from dict with environment variable overrides."""
        mode = _get_env_str(ENV_INDEX_MODE, data.get("mode", DEFAULT_INDEX_MODE)) or DEFAULT_INDEX_MODE
        return cls(
            mode=_require_choice("index mode", mode, VALID_INDEX_MODES),
            batch_size=max(1, _get_env_int(
                ENV_INDEX_BATCH_SIZE,
                data.get("batch_size", DEFAULT_INDEX_BATCH_SIZE)
            )),
        )


@dataclass
class ExternalIndexConfig:
    host: str | None
    api_key: str | None
    index_name: str
    timeout_seconds: float
    typo_tolerance_enabled: bool
    min_word_size_one_typo: int
    min_word_size_two_typos: int

    @classmethod
    def from_dict(cls, data: dict) -> "ExternalIndexConfig":
        return cls(
            host=_get_env_str(ENV_MEILISEARCH_HOST, data.get("host") or None),
            api_key=_get_env_str(ENV_MEILISEARCH_KEY, data.get("api_key") or None),
            index_name=_get_env_str(
                ENV_MEILISEARCH_INDEX,
                data.get("index_name", DEFAULT_EXTERNAL_INDEX_NAME),
            ) or DEFAULT_EXTERNAL_INDEX_NAME,
            timeout_seconds=_get_env_float(
                ENV_MEILISEARCH_TIMEOUT,
                float(data.get("timeout_seconds", DEFAULT_EXTERNAL_TIMEOUT_SECONDS)),
            ),
            typo_tolerance_enabled=bool(
                data.get("typo_tolerance_enabled", DEFAULT_TYPO_TOLERANCE_ENABLED)
            ),
            min_word_size_one_typo=int(
                data.get("min_word_size_one_typo", DEFAULT_MIN_WORD_SIZE_ONE_TYPO)
            ),
            min_word_size_two_typos=int(
                data.get("min_word_size_two_typos", DEFAULT_MIN_WORD_SIZE_TWO_TYPOS)
            ),
        )

    @property
    def configured(self) -> bool:
        return bool(self.host)

    def typo_tolerance(self) -> dict:
        """Typo tolerance settings in the shape Meilisearch expects."""
        return {
            "enabled": self.typo_tolerance_enabled,
            "minWordSizeForTypos": {
                "oneTypo": self.min_word_size_one_typo,
                "twoTypos": self.min_word_size_two_typos,
            },
        }


@dataclass
class StorageConfig:
    database_path: str
    memory_limit_mb: int

    @classmethod
    def from_dict(cls, data: dict) -> "StorageConfig":
        base_data_dir = Path(os.getenv(ENV_DATA_DIR, str(DEFAULT_DATA_DIR))).expanduser()
        default_db = str(base_data_dir / DEFAULT_DATABASE_FILE)
        return cls(
            database_path=_get_env_str(
                ENV_DATABASE_PATH,
                data.get("database_path", default_db)
            ) or default_db,
            memory_limit_mb=_get_env_int(
                ENV_MEMORY_LIMIT,
                data.get("memory_limit_mb", DEFAULT_MEMORY_LIMIT_MB)
            ),
        )


@dataclass
class Config:
    search: SearchConfig
    suggestions: SuggestionsConfig
    cache: CacheConfig
    history: HistoryConfig
    indexing: IndexingConfig
    external_index: ExternalIndexConfig
    storage: StorageConfig
    logging: LogConfig

    @classmethod
    def from_dict(cls, data: dict) -> "Config":
        """Build config objects with environment variable overrides."""
        return cls(
            search=SearchConfig.from_dict(data.get("search", {})),
            suggestions=SuggestionsConfig.from_dict(data.get("suggestions", {})),
            cache=CacheConfig.from_dict(data.get("cache", {})),
            history=HistoryConfig.from_dict(data.get("history", {})),
            indexing=IndexingConfig.from_dict(data.get("indexing", {})),
            external_index=ExternalIndexConfig.from_dict(data.get("external_index", {})),
            storage=StorageConfig.from_dict(data.get("storage", {})),
            logging=LogConfig(**data.get("logging", {})),
        )

    @classmethod
    def load(cls, config_path: Path | None = None) -> "Config":
        """
        Load configuration with proper precedence.

        Precedence (highest to lowest):
        1. Environment variables (DESKSEARCH_*, MEILISEARCH_*)
        2. User config (~/.desksearch/config/settings.toml)
        3. Default config (packaged settings.default.toml)
        4. Hardcoded constants

        Args:
            config_path: Optional explicit config file path

        Returns:
            Loaded Config object

        Raises:
            FileNotFoundError: If an explicit config file is missing
            ValueError: If an enumerated option holds an unknown value
        """
        if config_path is not None:
            config_files = [config_path]
        else:
            base_data_dir = Path(os.getenv(ENV_DATA_DIR, str(DEFAULT_DATA_DIR))).expanduser()
            user_config = base_data_dir / DEFAULT_CONFIG_SUBDIR / SETTINGS_FILE
            default_config = Path(__file__).parent / DEFAULT_SETTINGS_FILE
            config_files = [user_config, default_config]

        data = None
        for config_file in config_files:
            if config_file.exists():
                with open(config_file, "rb") as f:
                    data = tomli.load(f)
                break

        if data is None:
            # Only raise error if an explicit config path was provided
            if config_path is not None:
                raise FileNotFoundError(
                    ERROR_NO_CONFIG.format(
                        path=config_path,
                        config_dir=DEFAULT_DATA_DIR / DEFAULT_CONFIG_SUBDIR,
                        default_file=Path(__file__).parent / DEFAULT_SETTINGS_FILE,
                        settings_file=SETTINGS_FILE,
                    )
                )
            data = {}

        return cls.from_dict(data)

"""
Constants and default values for desksearch.

Centralizes magic numbers and strings to improve maintainability.
"""

from pathlib import Path

# ============================================================================
# Application Metadata
# ============================================================================

APP_NAME = "desksearch"
APP_VERSION = "0.3.0"
CONFIG_DIR_NAME = ".desksearch"

# ============================================================================
# Path Defaults
# ============================================================================

DEFAULT_DATA_DIR = Path.home() / CONFIG_DIR_NAME
DEFAULT_CONFIG_SUBDIR = "config"
DEFAULT_LOGS_SUBDIR = "logs"
DEFAULT_DATABASE_FILE = "desksearch.duckdb"

# Config file names
SETTINGS_FILE = "settings.toml"
DEFAULT_SETTINGS_FILE = "settings.default.toml"
ENV_FILE = ".env"

# ============================================================================
# Search Defaults
# ============================================================================

ENGINE_DIRECT_SCAN = "direct-scan"
ENGINE_INDEXED_FULLTEXT = "indexed-fulltext"
ENGINE_EXTERNAL_INDEX = "external-index"
VALID_ENGINES = (ENGINE_DIRECT_SCAN, ENGINE_INDEXED_FULLTEXT, ENGINE_EXTERNAL_INDEX)

DEFAULT_ENGINE = ENGINE_INDEXED_FULLTEXT
DEFAULT_ENABLE_FULLTEXT = True
DEFAULT_ENABLE_FUZZY = True
DEFAULT_MIN_QUERY_LENGTH = 2
DEFAULT_RESULTS_PER_PAGE = 50
DEFAULT_MAX_CANDIDATES = 1000

# Fields to search with their weights (higher = more important)
DEFAULT_FIELD_WEIGHTS: dict[str, int] = {
    "subject": 10,
    "customer_email": 8,
    "customer_name": 6,
    "body": 4,
    "thread_from": 3,
    "thread_to": 2,
    "thread_cc": 1,
}

# Relevance scoring
EXACT_MATCH_SCORE = 100.0
PHONETIC_MATCH_BONUS = 5.0
TYPO_VARIANT_FACTOR = 0.5
MAX_TYPO_VARIANTS = 3
MIN_FUZZY_TERM_LENGTH = 3
FULLTEXT_SCORE_SCALE = 10.0
MIN_FULLTEXT_TERM_LENGTH = 3

# DuckDB FTS
FTS_STEMMER = "porter"
FTS_STOPWORDS = "english"

# ============================================================================
# Suggestions / History / Cache Defaults
# ============================================================================

DEFAULT_ENABLE_SUGGESTIONS = True
DEFAULT_SUGGESTION_LIMIT = 5
MIN_SUGGESTION_PREFIX = 2

DEFAULT_TRACK_HISTORY = True
DEFAULT_MAX_HISTORY = 50
MIN_HISTORY_QUERY_LENGTH = 2
MAX_HISTORY_QUERY_LENGTH = 255
TOP_QUERIES_LIMIT = 10

DEFAULT_CACHE_DURATION_MINUTES = 5
DEFAULT_CACHE_MAX_ENTRIES = 500

# ============================================================================
# Indexing Defaults
# ============================================================================

INDEX_MODE_REALTIME = "realtime"
INDEX_MODE_QUEUE = "queue"
INDEX_MODE_SCHEDULED = "scheduled"
VALID_INDEX_MODES = (INDEX_MODE_REALTIME, INDEX_MODE_QUEUE, INDEX_MODE_SCHEDULED)

DEFAULT_INDEX_MODE = INDEX_MODE_REALTIME
DEFAULT_INDEX_BATCH_SIZE = 100
MAX_BODY_TEXT_LENGTH = 65000

# ============================================================================
# External Index (Meilisearch) Defaults
# ============================================================================

DEFAULT_EXTERNAL_INDEX_NAME = "desksearch_conversations"
DEFAULT_EXTERNAL_TIMEOUT_SECONDS = 5.0
DEFAULT_TYPO_TOLERANCE_ENABLED = True
DEFAULT_MIN_WORD_SIZE_ONE_TYPO = 4
DEFAULT_MIN_WORD_SIZE_TWO_TYPOS = 8
HIGHLIGHT_PRE_TAG = "<mark>"
HIGHLIGHT_POST_TAG = "</mark>"

# ============================================================================
# Performance Defaults
# ============================================================================

DEFAULT_MEMORY_LIMIT_MB = 1024

# ============================================================================
# Environment Variable Names
# ============================================================================

ENV_DATA_DIR = "DESKSEARCH_DATA_DIR"
ENV_DATABASE_PATH = "DESKSEARCH_DATABASE_PATH"
ENV_MEMORY_LIMIT = "DESKSEARCH_MEMORY_LIMIT_MB"

ENV_ENGINE = "DESKSEARCH_ENGINE"
ENV_ENABLE_FULLTEXT = "DESKSEARCH_ENABLE_FULLTEXT"
ENV_ENABLE_FUZZY = "DESKSEARCH_ENABLE_FUZZY"
ENV_MIN_QUERY_LENGTH = "DESKSEARCH_MIN_QUERY_LENGTH"
ENV_RESULTS_PER_PAGE = "DESKSEARCH_RESULTS_PER_PAGE"
ENV_MAX_CANDIDATES = "DESKSEARCH_MAX_CANDIDATES"

ENV_ENABLE_SUGGESTIONS = "DESKSEARCH_ENABLE_SUGGESTIONS"
ENV_SUGGESTION_LIMIT = "DESKSEARCH_SUGGESTION_LIMIT"

ENV_CACHE_DURATION = "DESKSEARCH_CACHE_DURATION_MINUTES"
ENV_CACHE_MAX_ENTRIES = "DESKSEARCH_CACHE_MAX_ENTRIES"

ENV_TRACK_HISTORY = "DESKSEARCH_TRACK_HISTORY"
ENV_MAX_HISTORY = "DESKSEARCH_MAX_HISTORY"

ENV_INDEX_MODE = "DESKSEARCH_INDEX_MODE"
ENV_INDEX_BATCH_SIZE = "DESKSEARCH_INDEX_BATCH_SIZE"

ENV_MEILISEARCH_HOST = "MEILISEARCH_HOST"
ENV_MEILISEARCH_KEY = "MEILISEARCH_KEY"
ENV_MEILISEARCH_INDEX = "MEILISEARCH_INDEX"
ENV_MEILISEARCH_TIMEOUT = "MEILISEARCH_TIMEOUT_SECONDS"

# ============================================================================
# Error Messages
# ============================================================================

ERROR_NO_CONFIG = """
Configuration file not found: {path}

Copy the packaged defaults and edit them:
    mkdir -p {config_dir}
    cp {default_file} {config_dir}/{settings_file}
"""

ERROR_INVALID_CHOICE = "Invalid {name} {value!r}; expected one of: {choices}"

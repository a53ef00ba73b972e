# app/config.py
"""
Configuration for the PDF research assistant.

This file centralizes all tunable parameters for chunking, lexical retrieval,
summarization and the LLM collaborator. Every value can be overridden with an
environment variable of the same name.
"""

import os


def _env_int(name: str, default: int, minimum: int = 1) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value >= minimum else default


def _env_float(name: str, default: float, minimum: float = 0.0) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value >= minimum else default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


# ========== DOCUMENT PROCESSING ==========

# Character-based chunk windows, tagged with page ranges
CHUNK_TARGET_CHARS = _env_int("CHUNK_TARGET_CHARS", 3500)
CHUNK_OVERLAP_CHARS = _env_int("CHUNK_OVERLAP_CHARS", 300, minimum=0)

# File upload limits
MAX_FILE_SIZE_MB = _env_int("MAX_FILE_SIZE_MB", 30)
ALLOWED_FILE_EXTENSIONS = [".pdf"]

# 0 = extract every page
MAX_PAGES = _env_int("MAX_PAGES", 0, minimum=0)

# A page with fewer characters than this counts as empty for scan detection
NON_EMPTY_PAGE_MIN_CHARS = 50


# ========== RETRIEVAL CONFIGURATION ==========

TOP_K = _env_int("TOP_K", 5)

# Advisory floor: results below it are only used when nothing scores higher
MIN_SIMILARITY = _env_float("MIN_SIMILARITY", 0.10)

MAX_CHUNK_CHARS = _env_int("MAX_CHUNK_CHARS", 1200)
MAX_TOTAL_CONTEXT_CHARS = _env_int("MAX_TOTAL_CONTEXT_CHARS", 6500)

CHAT_HISTORY_MESSAGES = _env_int("CHAT_HISTORY_MESSAGES", 6)

# Excerpt length shown next to each citation
SOURCE_EXCERPT_CHARS = 240

# Conversation context appended to follow-up retrieval queries
PREV_USER_MAX_CHARS = 600
PREV_ASSISTANT_MAX_CHARS = 900


# ========== OVERSIZED PAYLOAD RETRY ==========

RETRY_TOP_K_CAP = 3
RETRY_SCALE = 0.6
RETRY_MIN_CHUNK_CHARS = 500
RETRY_MIN_TOTAL_CHARS = 2500
RETRY_MAX_HISTORY_MESSAGES = 4
RETRY_MAX_TOKENS = 650


# ========== COMPARISON ==========

COMPARE_TOP_K_BONUS = 3
COMPARE_TOP_K_MAX = 10

# Each side of a comparison gets total budget / split
COMPARE_CONTEXT_SPLIT = 2

COMPARE_MAX_TOKENS = 900


# ========== SUMMARIZATION (MAP-REDUCE) ==========

SUMMARY_MAX_CHUNKS = _env_int("SUMMARY_MAX_CHUNKS", 20)
SUMMARY_TOP_MATCHES = 12
SUMMARY_PER_CHUNK_CHARS = 1800
SUMMARY_SELECTION_MAX_TOTAL_CHARS = 50_000
SUMMARY_PER_CHUNK_MAX_TOKENS = 220
SUMMARY_REDUCE_MAX_TOKENS = 650

SUMMARY_MAP_BATCH_SIZE = _env_int("SUMMARY_MAP_BATCH_SIZE", 4)
SUMMARY_MAP_CONCURRENCY = _env_int("SUMMARY_MAP_CONCURRENCY", 2)

SUMMARY_MAP_CACHE = _env_bool("SUMMARY_MAP_CACHE", True)
SUMMARY_MAP_CACHE_MAX = _env_int("SUMMARY_MAP_CACHE_MAX", 1200)
SUMMARY_MAP_CACHE_TTL_SECONDS = _env_int("SUMMARY_MAP_CACHE_TTL_SECONDS", 3600)

MAP_SUMMARY_MAX_CHARS = 1400

DEFAULT_SUMMARY_QUERY = (
    "key findings results conclusion contributions limitations future work abstract"
)


# ========== LLM CONFIGURATION ==========

LLM_MODEL = os.getenv("LLM_MODEL", "gpt-4o-mini").strip()

# Any OpenAI-compatible endpoint (e.g. https://api.groq.com/openai/v1)
LLM_BASE_URL = os.getenv("LLM_BASE_URL", "").strip() or None

LLM_TEMPERATURE = 0.2
LLM_MAX_TOKENS = _env_int("LLM_MAX_TOKENS", 800)


# ========== STORAGE & OBSERVABILITY ==========

STORAGE_DIR = os.getenv("STORAGE_DIR", "storage")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Empty string disables the file handler
LOG_FILE = os.getenv("LOG_FILE", "logs/app.log")

# Empty string keeps metrics in memory only
METRICS_PATH = os.getenv("METRICS_PATH", os.path.join(STORAGE_DIR, "metrics.json"))


# ========== DESIGN TRADE-OFFS (DOCUMENTED) ==========

"""
TRADE-OFF DECISIONS:

1. Lexical TF-IDF instead of embeddings:
   - No paid embedding calls, no vector database
   - Index is rebuilt from persisted chunks on every cold load
   - Misses synonyms; follow-up questions are widened with conversation text

2. MIN_SIMILARITY = 0.10 is advisory:
   - TF-IDF scores run low on legitimate questions
   - Low-scoring excerpts still reach the model, which is told to refuse
     when the sources are unrelated

3. CHUNK_TARGET_CHARS = 3500 with 300 overlap:
   - Pages are never split, so a chunk may exceed the target
   - Overlap keeps sentences that straddle a boundary searchable

4. Map-reduce summarization over at most 20 chunks:
   - Top lexical matches plus an even sample for whole-document coverage
   - Map results cached per (model, excerpt length, chunk id) for an hour
"""

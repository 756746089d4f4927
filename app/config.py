"""Centralize defaults and environment lookups for the assistant."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, List, Mapping

from dotenv import load_dotenv

load_dotenv()

# ---------------------------------------------------------------------------
# Default configuration values
# ---------------------------------------------------------------------------
_DEFAULT_LLM_MODEL = "gpt-4o-mini"
_DEFAULT_LLM_TIMEOUT_SECONDS = 15.0
_DEFAULT_CLASSIFIER_MIN_CONFIDENCE = 0.6
_DEFAULT_HISTORY_WINDOW = 10
_DEFAULT_BACKEND_BASE_URL = "http://localhost:5000/api"
_DEFAULT_BACKEND_TIMEOUT_SECONDS = 20.0
_DEFAULT_CONVERSATION_TTL_SECONDS = 24 * 60 * 60
_DEFAULT_EVICTION_INTERVAL_SECONDS = 3600.0
_DEFAULT_LOGGING_ENABLED: bool = True
_DEFAULT_LOG_REDACTION_ENABLED: bool = True
_DEFAULT_LOG_DIR = "logs"
_TURN_LOG_FILENAME = "turns.jsonl"
_REVIEW_LOG_FILENAME = "review_queue.jsonl"
_DEFAULT_LOG_REDACTION_PATTERNS = "email,phone,credit_card,gov_id,url"
_DEFAULT_LOG_MAX_BYTES = 1_000_000
_DEFAULT_LOG_BACKUP_COUNT = 5
_DEFAULT_WEB_HOST = "127.0.0.1"
_DEFAULT_WEB_PORT = 9000
_DEFAULT_JWT_ALGORITHMS = "HS256"

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


def _source(env: Dict[str, str] | None) -> Mapping[str, str]:
    return env if env is not None else os.environ


def _flag(env: Dict[str, str] | None, key: str, default: bool) -> bool:
    raw = _source(env).get(key)
    if raw is None:
        return default
    normalized = raw.strip().lower()
    if normalized in _FALSY:
        return False
    if normalized in _TRUTHY:
        return True
    return default


def _positive_float(env: Dict[str, str] | None, key: str, default: float) -> float:
    raw = _source(env).get(key)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def _positive_int(env: Dict[str, str] | None, key: str, default: int) -> int:
    raw = _source(env).get(key)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value > 0 else default


# ---------------------------------------------------------------------------
# Model service
# ---------------------------------------------------------------------------
def get_llm_api_key(env: Dict[str, str] | None = None) -> str | None:
    """Return the API key for the model service.

    Args:
        env: Optional mapping used instead of ``os.environ`` to simplify testing.

    Returns:
        The API key string if present, otherwise ``None`` (pattern-only mode).
    """

    value = _source(env).get("OPENAI_API_KEY")
    return value.strip() if value and value.strip() else None


def get_llm_model(env: Dict[str, str] | None = None) -> str:
    """Return the model identifier used for classification and answers."""

    return _source(env).get("LLM_MODEL") or _DEFAULT_LLM_MODEL


def get_llm_timeout(env: Dict[str, str] | None = None) -> float:
    return _positive_float(env, "LLM_TIMEOUT_SECONDS", _DEFAULT_LLM_TIMEOUT_SECONDS)


def get_classifier_min_confidence(env: Dict[str, str] | None = None) -> float:
    """Return the minimum model confidence required to skip the pattern rules."""

    raw = _source(env).get("CLASSIFIER_MIN_CONFIDENCE")
    if raw is None:
        return _DEFAULT_CLASSIFIER_MIN_CONFIDENCE
    try:
        value = float(raw)
    except ValueError:
        return _DEFAULT_CLASSIFIER_MIN_CONFIDENCE
    return min(max(value, 0.0), 1.0)


def get_history_window(env: Dict[str, str] | None = None) -> int:
    return _positive_int(env, "HISTORY_WINDOW", _DEFAULT_HISTORY_WINDOW)


def get_intent_catalog_path(env: Dict[str, str] | None = None) -> Path | None:
    """Return the YAML file overriding the built-in intent table, if any."""

    override = _source(env).get("INTENT_CATALOG_PATH")
    return Path(override) if override else None


# ---------------------------------------------------------------------------
# Backend collaborator
# ---------------------------------------------------------------------------
def get_backend_base_url(env: Dict[str, str] | None = None) -> str:
    return (_source(env).get("BACKEND_BASE_URL") or _DEFAULT_BACKEND_BASE_URL).rstrip("/")


def get_backend_timeout(env: Dict[str, str] | None = None) -> float:
    return _positive_float(env, "BACKEND_TIMEOUT_SECONDS", _DEFAULT_BACKEND_TIMEOUT_SECONDS)


# ---------------------------------------------------------------------------
# Conversation storage
# ---------------------------------------------------------------------------
def get_conversation_ttl(env: Dict[str, str] | None = None) -> int:
    """Return the idle window, in seconds, after which a conversation is evicted."""

    return _positive_int(env, "CONVERSATION_TTL_SECONDS", _DEFAULT_CONVERSATION_TTL_SECONDS)


def get_eviction_interval(env: Dict[str, str] | None = None) -> float:
    return _positive_float(env, "EVICTION_INTERVAL_SECONDS", _DEFAULT_EVICTION_INTERVAL_SECONDS)


def get_conversation_store_url(env: Dict[str, str] | None = None) -> str | None:
    """Return the ``redis://`` URL of the shared conversation store, if configured."""

    value = _source(env).get("CONVERSATION_STORE_URL")
    return value.strip() if value and value.strip() else None


def get_history_dir(env: Dict[str, str] | None = None) -> Path | None:
    """Return the directory for durable JSONL transcripts; ``None`` disables them."""

    override = _source(env).get("HISTORY_DIR")
    return Path(override) if override else None


# ---------------------------------------------------------------------------
# Turn logging
# ---------------------------------------------------------------------------
def is_logging_enabled(env: Dict[str, str] | None = None) -> bool:
    """Determine whether the JSONL turn log is active."""

    return _flag(env, "LOGGING_ENABLED", _DEFAULT_LOGGING_ENABLED)


def get_log_dir(env: Dict[str, str] | None = None) -> Path:
    """Return the base directory for turn-by-turn logs."""

    override = _source(env).get("LOG_DIR")
    return Path(override) if override else Path(_DEFAULT_LOG_DIR)


def get_turn_log_path(env: Dict[str, str] | None = None) -> Path:
    return get_log_dir(env) / _TURN_LOG_FILENAME


def get_review_log_path(env: Dict[str, str] | None = None) -> Path:
    return get_log_dir(env) / _REVIEW_LOG_FILENAME


def is_log_redaction_enabled(env: Dict[str, str] | None = None) -> bool:
    """Determine whether sensitive values should be scrubbed before logging."""

    return _flag(env, "LOG_REDACTION_ENABLED", _DEFAULT_LOG_REDACTION_ENABLED)


def get_log_redaction_patterns(env: Dict[str, str] | None = None) -> List[str]:
    """Return the list of redaction pattern keys to apply."""

    raw = _source(env).get("LOG_REDACTION_PATTERNS")
    values = raw if raw is not None else _DEFAULT_LOG_REDACTION_PATTERNS
    return [segment.strip().lower() for segment in values.split(",") if segment.strip()]


def get_log_max_bytes(env: Dict[str, str] | None = None) -> int:
    """Return the maximum size in bytes before rotating log files."""

    raw = _source(env).get("LOG_MAX_BYTES")
    if raw is None:
        return _DEFAULT_LOG_MAX_BYTES
    try:
        value = int(raw)
    except ValueError:
        return _DEFAULT_LOG_MAX_BYTES
    return max(value, 0)


def get_log_backup_count(env: Dict[str, str] | None = None) -> int:
    """Return the number of rotated log files to retain."""

    raw = _source(env).get("LOG_BACKUP_COUNT")
    if raw is None:
        return _DEFAULT_LOG_BACKUP_COUNT
    try:
        value = int(raw)
    except ValueError:
        return _DEFAULT_LOG_BACKUP_COUNT
    return max(value, 0)


# ---------------------------------------------------------------------------
# HTTP surface
# ---------------------------------------------------------------------------
def get_web_host(env: Dict[str, str] | None = None) -> str:
    return _source(env).get("WEB_HOST", _DEFAULT_WEB_HOST)


def get_web_port(env: Dict[str, str] | None = None) -> int:
    raw = _source(env).get("WEB_PORT")
    if raw is None:
        return _DEFAULT_WEB_PORT
    try:
        value = int(raw)
    except ValueError:
        return _DEFAULT_WEB_PORT
    return value if 0 < value <= 65535 else _DEFAULT_WEB_PORT


def get_jwt_secret(env: Dict[str, str] | None = None) -> str | None:
    """Return the key bearer tokens are verified with; ``None`` trusts no token claims."""

    value = _source(env).get("JWT_SECRET")
    return value.strip() if value and value.strip() else None


def get_jwt_algorithms(env: Dict[str, str] | None = None) -> List[str]:
    raw = _source(env).get("JWT_ALGORITHMS") or _DEFAULT_JWT_ALGORITHMS
    algorithms = [segment.strip() for segment in raw.split(",") if segment.strip()]
    return algorithms or [_DEFAULT_JWT_ALGORITHMS]


# ---------------------------------------------------------------------------
# Interactive CLI
# ---------------------------------------------------------------------------
def get_cli_auth_token(env: Dict[str, str] | None = None) -> str | None:
    """Return the bearer token the CLI forwards to the backend."""

    value = _source(env).get("ASSISTANT_AUTH_TOKEN")
    return value.strip() if value and value.strip() else None


def get_cli_role(env: Dict[str, str] | None = None) -> str | None:
    """Return a role to assert for CLI sessions when the token carries none."""

    value = _source(env).get("ASSISTANT_ROLE")
    return value.strip().lower() if value and value.strip() else None

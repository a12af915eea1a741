# ==============================================================================
# config_utils.py  –  Environment-driven settings
#
# Centralizes:
#   • Lichess API host + bearer token
#   • Stream deadline and HTTP timeouts
#   • Round PGN cache database URL
# ==============================================================================

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

ROOT_ENV = Path(__file__).resolve().parents[2] / ".env"
load_dotenv(dotenv_path=ROOT_ENV, override=False)  # env values override file

_DEFAULT_BASE_URL = "https://lichess.org"
_DEFAULT_DEADLINE_MS = 5000
_DEFAULT_API_TIMEOUT = 30
_DEFAULT_CACHE_DIR = Path.home() / ".roundwatch"


# ------------------------------------------------------------------------------
# Internal helpers
# ------------------------------------------------------------------------------


def _bool_env(var_name: str, default: str = "false") -> bool:
    """Convert TRUE / true / 1 style env vars to bool."""
    return os.getenv(var_name, default).strip().lower() in {"1", "true", "yes"}


def _int_env(var_name: str, default: int) -> int:
    """Read an integer env var, falling back to `default` when unset or bad."""
    raw = os.getenv(var_name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


# ------------------------------------------------------------------------------
# Public API
# ------------------------------------------------------------------------------


def get_lichess_token() -> Optional[str]:
    """Return the bearer token for Lichess API calls (or None)."""
    return os.getenv("LICHESS_TOKEN") or None


def get_base_url() -> str:
    """Return the API host without a trailing slash."""
    return os.getenv("LICHESS_BASE_URL", _DEFAULT_BASE_URL).rstrip("/")


def get_stream_deadline_ms() -> int:
    """Default wall-clock budget for a round stream, in milliseconds."""
    return _int_env("STREAM_DEADLINE_MS", _DEFAULT_DEADLINE_MS)


def get_api_timeout() -> int:
    """Timeout in seconds for metadata calls and stream connects."""
    return _int_env("API_TIMEOUT", _DEFAULT_API_TIMEOUT)


def is_cache_enabled() -> bool:
    return _bool_env("CACHE_ENABLED", "true")


def get_cache_database_url() -> str:
    """
    Build the SQLAlchemy URL of the round PGN cache.

    Example
    -------
    sqlite:////home/user/.roundwatch/cache.db
    """
    url = os.getenv("CACHE_DATABASE_URL")
    if url:
        return url
    return f"sqlite:///{_DEFAULT_CACHE_DIR / 'cache.db'}"


def auth_headers(token: Optional[str] = None) -> dict:
    """Bearer header for `token` (or the configured one); empty when unset."""
    token = token if token is not None else get_lichess_token()
    return {"Authorization": f"Bearer {token}"} if token else {}

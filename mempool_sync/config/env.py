"""
Environment variable loading for Mempool Sync.

- Loads .env from project root when available.
- Typed readers with defaults; malformed values fall back to the default
  and are logged, never raised.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

from mempool_sync.sync_logging import get_logger

logger = get_logger(__name__)

# Project root: config is mempool_sync/config/, root is 2 levels up
_CONFIG_DIR = Path(__file__).resolve().parent
_PACKAGE_DIR = _CONFIG_DIR.parent
_ROOT = _PACKAGE_DIR.parent
_ENV_PATH = _ROOT / ".env"

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")


def load_env() -> None:
    """Load .env from project root. Safe to call multiple times; existing env wins."""
    load_dotenv(_ENV_PATH, override=False)


def env_str(name: str, default: str) -> str:
    return (os.getenv(name) or "").strip() or default


def env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("config_invalid_value", variable=name, value=raw, default=default)
        return default


def env_optional_float(name: str, default: float) -> float | None:
    """Like env_float, but 'none' / 'off' disables the setting."""
    raw = (os.getenv(name) or "").strip().lower()
    if raw in ("none", "off", "disabled"):
        return None
    return env_float(name, default)


def env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("config_invalid_value", variable=name, value=raw, default=default)
        return default


def env_bool(name: str, default: bool) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    if raw in _TRUE_VALUES:
        return True
    if raw in _FALSE_VALUES:
        return False
    logger.warning("config_invalid_value", variable=name, value=raw, default=default)
    return default

"""
Application settings and environment configuration.

Loads configuration from environment variables (and .env), applies defaults
and exposes a typed, immutable Settings object used by the engine factory,
the default collaborators and the API server.
"""

from __future__ import annotations

from dataclasses import dataclass

from mempool_sync.config.env import (
    env_bool,
    env_float,
    env_int,
    env_optional_float,
    env_str,
    load_env,
)

DEFAULT_SNAPSHOT_URL = "http://localhost:3001/api/mempool"
DEFAULT_STREAM_URL = "ws://localhost:3001/ws/bitcoin/stream"
DEFAULT_SNAPSHOT_TIMEOUT_SEC = 10.0
DEFAULT_RECONNECT_MIN_SEC = 1.0
DEFAULT_RECONNECT_MAX_SEC = 60.0
DEFAULT_WS_PING_INTERVAL = 30.0
DEFAULT_WS_PING_TIMEOUT = 10.0
DEFAULT_LOG_BUFFER_SIZE = 100
DEFAULT_EXPLORER_BLOCK_URL = "https://mempool.space/block/{block_hash}"
DEFAULT_API_HOST = "0.0.0.0"
DEFAULT_API_PORT = 8000


@dataclass(frozen=True)
class Settings:
    """Typed service configuration; build with get_settings()."""

    snapshot_url: str = DEFAULT_SNAPSHOT_URL
    stream_url: str = DEFAULT_STREAM_URL
    snapshot_timeout_sec: float = DEFAULT_SNAPSHOT_TIMEOUT_SEC
    reconnect_min_sec: float = DEFAULT_RECONNECT_MIN_SEC
    reconnect_max_sec: float = DEFAULT_RECONNECT_MAX_SEC
    ws_ping_interval: float | None = DEFAULT_WS_PING_INTERVAL
    ws_ping_timeout: float | None = DEFAULT_WS_PING_TIMEOUT
    fees_in_btc: bool = False
    """Upstream reports fees in BTC (Bitcoin Core RPC); convert to satoshis."""
    log_buffer_size: int = DEFAULT_LOG_BUFFER_SIZE
    """Recent notifier log entries kept in memory for GET /logs."""
    explorer_block_url: str = DEFAULT_EXPLORER_BLOCK_URL
    api_host: str = DEFAULT_API_HOST
    api_port: int = DEFAULT_API_PORT

    def __post_init__(self) -> None:
        if self.reconnect_min_sec <= 0:
            object.__setattr__(self, "reconnect_min_sec", DEFAULT_RECONNECT_MIN_SEC)
        if self.reconnect_max_sec < self.reconnect_min_sec:
            object.__setattr__(self, "reconnect_max_sec", self.reconnect_min_sec)
        if self.log_buffer_size < 1:
            object.__setattr__(self, "log_buffer_size", DEFAULT_LOG_BUFFER_SIZE)


def get_settings() -> Settings:
    """
    Return the current application settings, read fresh from the environment.

    Variables: MEMPOOL_SNAPSHOT_URL, MEMPOOL_STREAM_URL, MEMPOOL_SNAPSHOT_TIMEOUT_SEC,
    MEMPOOL_RECONNECT_MIN_SEC, MEMPOOL_RECONNECT_MAX_SEC, MEMPOOL_WS_PING_INTERVAL,
    MEMPOOL_WS_PING_TIMEOUT, MEMPOOL_FEES_IN_BTC, MEMPOOL_LOG_BUFFER_SIZE,
    MEMPOOL_EXPLORER_BLOCK_URL, API_HOST, API_PORT.
    """
    load_env()
    return Settings(
        snapshot_url=env_str("MEMPOOL_SNAPSHOT_URL", DEFAULT_SNAPSHOT_URL),
        stream_url=env_str("MEMPOOL_STREAM_URL", DEFAULT_STREAM_URL),
        snapshot_timeout_sec=env_float("MEMPOOL_SNAPSHOT_TIMEOUT_SEC", DEFAULT_SNAPSHOT_TIMEOUT_SEC),
        reconnect_min_sec=env_float("MEMPOOL_RECONNECT_MIN_SEC", DEFAULT_RECONNECT_MIN_SEC),
        reconnect_max_sec=env_float("MEMPOOL_RECONNECT_MAX_SEC", DEFAULT_RECONNECT_MAX_SEC),
        ws_ping_interval=env_optional_float("MEMPOOL_WS_PING_INTERVAL", DEFAULT_WS_PING_INTERVAL),
        ws_ping_timeout=env_optional_float("MEMPOOL_WS_PING_TIMEOUT", DEFAULT_WS_PING_TIMEOUT),
        fees_in_btc=env_bool("MEMPOOL_FEES_IN_BTC", False),
        log_buffer_size=env_int("MEMPOOL_LOG_BUFFER_SIZE", DEFAULT_LOG_BUFFER_SIZE),
        explorer_block_url=env_str("MEMPOOL_EXPLORER_BLOCK_URL", DEFAULT_EXPLORER_BLOCK_URL),
        api_host=env_str("API_HOST", DEFAULT_API_HOST),
        api_port=env_int("API_PORT", DEFAULT_API_PORT),
    )

"""
Configuration management for Mempool Sync.

Loads settings from environment variables and an optional .env file.
Exposes a single source of truth for service configuration.
"""

from mempool_sync.config.settings import Settings, get_settings  # noqa: F401

__all__ = ["Settings", "get_settings"]

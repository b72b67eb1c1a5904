"""
Structured logging for Mempool Sync.

JSON logs with timestamp, level, event_type and keyword context.
Use get_logger() in every module for aggregation-friendly output;
bind_block() / bind_txid() carry block or transaction context.
"""

from mempool_sync.sync_logging.logger import (
    bind_block,
    bind_txid,
    configure_structlog,
    get_logger,
)

__all__ = ["bind_block", "bind_txid", "configure_structlog", "get_logger"]

"""
Main entrypoint: FastAPI read API with the mempool sync engine in its lifespan.

The engine fetches the snapshot, subscribes to the sequence stream and keeps
the pending set current for as long as the server runs. On SIGINT/SIGTERM
uvicorn shuts the app down, which stops the engine and closes the stream.

Env: MEMPOOL_SNAPSHOT_URL, MEMPOOL_STREAM_URL, API_HOST, API_PORT, LOG_LEVEL, etc.

Equivalent: uvicorn mempool_sync.api_server.app:app --host 0.0.0.0 --port 8000
"""

import os

# Configure structured JSON logging before other imports that may log
from mempool_sync.sync_logging import get_logger

logger = get_logger("main")


def main() -> None:
    """Run the API server (and with it the sync engine) in the main thread."""
    from mempool_sync.config import get_settings

    settings = get_settings()
    logger.info(
        "main_server_starting",
        host=settings.api_host,
        port=settings.api_port,
        snapshot_url=settings.snapshot_url,
        stream_url=settings.stream_url,
    )

    from mempool_sync.api_server.app import app
    import uvicorn

    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
    )


if __name__ == "__main__":
    main()

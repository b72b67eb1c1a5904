"""
FastAPI/ASGI application entrypoint.

Run with: uvicorn mempool_sync.api_server.app:app --host 0.0.0.0 --port 8000
"""

from mempool_sync.api_server.server import app, create_app

__all__ = ["app", "create_app"]

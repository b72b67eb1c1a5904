"""
FastAPI server: read API over the live pending set.

Exposes the current mempool view, the pause/resume toggle, selection
summaries, CSV export and the recent block-event feed. The sync engine is
owned by the app lifespan: started (snapshot + stream) on startup, stopped
and discarded on shutdown.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, Callable, Literal

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import Response
from pydantic import BaseModel, Field

from mempool_sync import __version__
from mempool_sync.alerts.notifier import LogNotifier
from mempool_sync.analytics.export import default_export_filename, generate_transaction_csv
from mempool_sync.analytics.summary import select_transactions, sort_by_fee_rate, summarize
from mempool_sync.config.settings import Settings, get_settings
from mempool_sync.engine.sync_engine import SyncEngine, build_engine
from mempool_sync.sync_logging import get_logger

logger = get_logger(__name__)

EngineFactory = Callable[[Settings], SyncEngine]


# -----------------------------------------------------------------------------
# Response models
# -----------------------------------------------------------------------------

class HealthResponse(BaseModel):
    status: str = Field(..., description="'ok' while the app is up")
    state: str = Field(..., description="live | paused")
    version: int = Field(..., description="Pending set version; bumps on every visible change")
    stream_running: bool = Field(..., description="Stream consumer task is alive")
    stats: dict[str, Any] = Field(default_factory=dict, description="Engine counters")


class MempoolResponse(BaseModel):
    """GET /mempool response: the visible pending set."""

    state: str = Field(..., description="live | paused")
    version: int
    count: int = Field(..., description="Transactions in the full pending set")
    transactions: list[dict[str, Any]] = Field(default_factory=list)


class ToggleResponse(BaseModel):
    state: str = Field(..., description="State after the toggle")
    version: int
    pending_count: int
    merged_count: int = Field(0, description="Buffered transactions merged on resume")


class SummaryResponse(BaseModel):
    total_transactions: int
    total_vsize: int
    total_weight: int
    total_fees: int = Field(..., description="Sum of base fees (sat)")
    total_fees_btc: float
    average_fee_rate: float = Field(..., description="sat/vB")
    max_ancestor_count: int
    max_descendant_count: int
    average_vsize: float
    average_weight: float
    average_fee: float
    block_weight_share: float = Field(..., description="Percent of the 4M WU block limit")


class LogEntryResponse(BaseModel):
    event: str
    timestamp: str
    level: str
    message: str
    title: str | None = None
    url: str | None = None


# -----------------------------------------------------------------------------
# Dependency
# -----------------------------------------------------------------------------

def get_engine(request: Request) -> SyncEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Sync engine not running")
    return engine


# -----------------------------------------------------------------------------
# App factory
# -----------------------------------------------------------------------------

def create_app(engine_factory: EngineFactory | None = None) -> FastAPI:
    """
    Build the ASGI app. ``engine_factory`` defaults to build_engine (HTTP
    snapshot + WebSocket stream from settings); tests pass fakes.
    """
    factory = engine_factory or build_engine

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Start the sync engine on startup; stop it (closing the stream) on shutdown."""
        settings = get_settings()
        engine = factory(settings)
        logger.info(
            "api_engine_starting",
            snapshot_url=settings.snapshot_url,
            stream_url=settings.stream_url,
        )
        async with engine:
            app.state.engine = engine
            try:
                yield
            finally:
                app.state.engine = None
        logger.info("api_engine_stopped")

    app = FastAPI(
        title="Mempool Sync API",
        description="Live, deduplicated view of pending mempool transactions.",
        version=__version__,
        lifespan=lifespan,
    )

    @app.get("/health", response_model=HealthResponse)
    async def health(engine: SyncEngine = Depends(get_engine)) -> HealthResponse:
        """Liveness probe plus engine state."""
        return HealthResponse(
            status="ok",
            state=engine.state.value,
            version=engine.version,
            stream_running=engine.running,
            stats=engine.stats().to_dict(),
        )

    @app.get("/mempool", response_model=MempoolResponse)
    async def get_mempool(
        sort: Literal["recent", "fee_rate"] = Query("recent"),
        limit: int | None = Query(None, ge=1),
        engine: SyncEngine = Depends(get_engine),
    ) -> MempoolResponse:
        """
        Return the visible pending set, most recently added first (or highest
        fee rate first). While paused this is the frozen set.
        """
        txs = engine.current()
        ordered = sort_by_fee_rate(txs) if sort == "fee_rate" else list(txs)
        if limit is not None:
            ordered = ordered[:limit]
        return MempoolResponse(
            state=engine.state.value,
            version=engine.version,
            count=len(txs),
            transactions=[tx.to_dict() for tx in ordered],
        )

    @app.post("/mempool/toggle", response_model=ToggleResponse)
    async def toggle(engine: SyncEngine = Depends(get_engine)) -> ToggleResponse:
        """Pause or resume live updates; resuming merges buffered transactions."""
        before = len(engine.current())
        state = engine.toggle()
        # resume only appends, so growth is the merge count
        pending_count = len(engine.current())
        return ToggleResponse(
            state=state.value,
            version=engine.version,
            pending_count=pending_count,
            merged_count=pending_count - before,
        )

    @app.get("/mempool/summary", response_model=SummaryResponse)
    async def get_summary(
        txid: list[str] | None = Query(None, description="Restrict to these txids"),
        engine: SyncEngine = Depends(get_engine),
    ) -> SummaryResponse:
        """Aggregate statistics over the whole pending set or the selected txids."""
        txs = engine.current()
        selected = select_transactions(txs, txid) if txid else list(txs)
        return SummaryResponse(**summarize(selected).to_dict())

    @app.get("/mempool/export")
    async def export_csv(engine: SyncEngine = Depends(get_engine)) -> Response:
        """Download the visible pending set as CSV."""
        content = generate_transaction_csv(engine.current())
        filename = default_export_filename()
        return Response(
            content=content,
            media_type="text/csv; charset=utf-8",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    @app.get("/logs", response_model=list[LogEntryResponse])
    async def get_logs(engine: SyncEngine = Depends(get_engine)) -> list[LogEntryResponse]:
        """Recent block-event entries, newest first (empty without a LogNotifier)."""
        notifier = engine.notifier
        if not isinstance(notifier, LogNotifier):
            return []
        return [LogEntryResponse(**entry.to_dict()) for entry in notifier.entries()]

    return app


app = create_app()

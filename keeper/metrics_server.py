"""Keeper metrics server: FastAPI app exposing /health and /metrics.

Runs inside the daemon's event loop when ``metrics.port`` is non-zero.
"""

import asyncio
import contextlib
import logging
from dataclasses import asdict
from pathlib import Path

import uvicorn
from fastapi import FastAPI
from fastapi.responses import JSONResponse

from keeper.reporting.health_checker import HealthChecker
from keeper.reporting.metrics import KeeperMetrics
from keeper.storage.database import connect

logger = logging.getLogger(__name__)


def create_app(
    metrics: KeeperMetrics, db_path: str | Path, stale_after_s: float = 120.0
) -> FastAPI:
    app = FastAPI(title="Conditional Order Keeper", version="0.1.0")

    @app.get("/health")
    def get_health():
        """Liveness: ledger DB reachable and a cycle finished recently."""
        conn = connect(db_path)
        try:
            health = HealthChecker(conn, metrics, stale_after_s).check()
        finally:
            conn.close()
        body = {"status": health.status, **asdict(health)}
        code = 503 if health.status == "unhealthy" else 200
        return JSONResponse(body, status_code=code)

    @app.get("/metrics")
    def get_metrics():
        """Cumulative cycle counters and the last cycle summary."""
        return metrics.snapshot()

    return app


class _EmbeddedServer(uvicorn.Server):
    """uvicorn server that leaves SIGINT/SIGTERM to the daemon."""

    def install_signal_handlers(self) -> None:
        pass

    @contextlib.contextmanager
    def capture_signals(self):
        yield


class MetricsServer:
    def __init__(self, app: FastAPI, host: str, port: int):
        self.host = host
        self.port = port
        self._server = _EmbeddedServer(
            uvicorn.Config(app, host=host, port=port, log_level="warning")
        )
        self._task: asyncio.Task | None = None

    async def start(self) -> None:
        self._task = asyncio.create_task(self._serve())
        logger.info("Metrics server listening on http://%s:%d", self.host, self.port)

    async def _serve(self) -> None:
        try:
            await self._server.serve()
        except SystemExit:
            # uvicorn calls sys.exit when it cannot bind the port.
            logger.error("Metrics server failed to start on %s:%d", self.host, self.port)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._server.should_exit = True
        try:
            await self._task
        except Exception:
            logger.exception("Metrics server exited with an error")
        self._task = None

"""FastAPI application exposing provider status and pending transactions"""

import time
from typing import Optional

from fastapi import FastAPI, Request, Response, WebSocket
from fastapi.middleware.cors import CORSMiddleware
import structlog

from provider_hub.config.models import Settings
from provider_hub.monitoring import metrics
from provider_hub.supervisor.supervisor import ConnectionSupervisor
from provider_hub.transactions.tracker import PendingTransactionTracker

logger = structlog.get_logger()


def create_app(
    settings: Settings,
    supervisor: ConnectionSupervisor,
    tracker: Optional[PendingTransactionTracker] = None,
) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        settings: Application settings
        supervisor: Connection supervisor owning the provider status
        tracker: Optional pending transaction tracker

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="Provider Hub API",
        description="Connection status of the injected wallet / bridging fallback provider",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://localhost:8080"],
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        """Log request latency"""
        if request.url.path == "/metrics":
            return await call_next(request)

        start_time = time.time()
        response = await call_next(request)
        logger.debug(
            "api_request",
            path=request.url.path,
            method=request.method,
            status=response.status_code,
            latency=time.time() - start_time,
        )
        return response

    app.state.settings = settings
    app.state.supervisor = supervisor
    app.state.tracker = tracker or PendingTransactionTracker()

    from provider_hub.api.routes import health, status
    from provider_hub.api.websocket import status_stream

    app.include_router(health.router)
    app.include_router(status.router)

    @app.get("/metrics")
    async def metrics_endpoint():
        """Prometheus metrics endpoint"""
        return Response(content=metrics.get_metrics(), media_type=metrics.get_content_type())

    @app.websocket("/ws/v1/status")
    async def websocket_route(websocket: WebSocket):
        await status_stream(websocket, supervisor)

    logger.info(
        "fastapi_app_created",
        title=app.title,
        version=app.version,
        docs_url=app.docs_url,
    )

    return app

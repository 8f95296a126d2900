"""
FastAPI application factory.

``create_app()`` wires the browser error intake, health and metrics routes
around one :class:`Sorane` client, and ties the dispatch scheduler to the
application lifespan.

Endpoints:
    POST /sorane/js-errors   browser error intake (collector script target)
    GET  /health             pipeline health (pauses, buffer depth, scheduler)
    GET  /metrics            Prometheus text exposition

Host applications that already have a FastAPI app include
``create_router(sorane)`` instead and add :class:`PageVisitMiddleware`
themselves.

Tags:
    sorane, api, app-factory, FastAPI

Doc-Types:
    api-reference
"""

from __future__ import annotations

import json
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.concurrency import run_in_threadpool

from sorane.api.middleware import PageVisitMiddleware
from sorane.api.schemas import HealthResponse, IntakeResponse
from sorane.client import Sorane
from sorane.core.logging import get_internal_logger
from sorane.core.settings import SoraneSettings
from sorane.producers.request import RequestInfo

JS_ERRORS_PATH = "/sorane/js-errors"
PROMETHEUS_CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"

logger = get_internal_logger(__name__)


def create_router(sorane: Sorane) -> APIRouter:
    """Routes bound to ``sorane``."""
    router = APIRouter()

    @router.post(JS_ERRORS_PATH, response_model=IntakeResponse, tags=["intake"])
    async def store_javascript_error(request: Request) -> JSONResponse:
        """Accept one browser error from the collector script."""
        try:
            payload = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            payload = None
        if not isinstance(payload, dict):
            payload = {}

        result = await run_in_threadpool(
            sorane.javascript_errors.receive,
            payload,
            request=RequestInfo.from_starlette(request),
        )
        return JSONResponse(status_code=result.status_code, content=result.to_dict())

    @router.get("/health", response_model=HealthResponse, tags=["health"])
    async def health() -> HealthResponse:
        status = await run_in_threadpool(sorane.status)
        return HealthResponse(
            status="healthy" if status["healthy"] else "degraded",
            healthy=status["healthy"],
            timestamp=status["timestamp"],
            pauses=status["pauses"],
            buffers=status["buffers"],
            scheduler=status["scheduler"],
        )

    @router.get("/metrics", response_class=PlainTextResponse, tags=["observability"])
    async def metrics() -> PlainTextResponse:
        """Export Prometheus-compatible metrics."""
        return PlainTextResponse(
            content=sorane.metrics.registry.export_prometheus(),
            media_type=PROMETHEUS_CONTENT_TYPE,
        )

    return router


def create_app(
    *,
    settings: SoraneSettings | None = None,
    sorane: Sorane | None = None,
    run_scheduler: bool = True,
) -> FastAPI:
    """Build a FastAPI application around a Sorane client.

    Parameters
    ----------
    settings : SoraneSettings | None
        Used to build a client when ``sorane`` is not given.
    sorane : Sorane | None
        Pre-built client (useful for testing).
    run_scheduler : bool
        Start the dispatch scheduler on startup and stop it on shutdown.
    """
    client = sorane or Sorane(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        if run_scheduler:
            client.start()
        logger.info("sorane_api_started", scheduler=run_scheduler)
        yield
        client.shutdown()
        logger.info("sorane_api_stopped")

    from sorane import __version__

    app = FastAPI(title="Sorane client", version=__version__, lifespan=lifespan)
    app.state.sorane = client

    if client.settings.page_visits.enabled:
        app.add_middleware(PageVisitMiddleware, producer=client.page_visits)

    app.include_router(create_router(client))
    return app


__all__ = ["create_app", "create_router", "JS_ERRORS_PATH"]

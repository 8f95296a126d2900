"""Page visit middleware: records qualifying requests to the page_visits stream.

Tags:
    sorane, api, middleware, analytics
"""

from __future__ import annotations

from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from sorane.producers.page_visits import PageVisitProducer
from sorane.producers.request import RequestInfo


class PageVisitMiddleware(BaseHTTPMiddleware):
    """Hand every request to :meth:`PageVisitProducer.record` before serving it.

    Recording never fails the request: the producer swallows its own errors.
    """

    def __init__(self, app: ASGIApp, producer: PageVisitProducer):
        super().__init__(app)
        self.producer = producer

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if self.producer.enabled:
            # Cache and throttle lookups may block on Redis
            await run_in_threadpool(self.producer.record, RequestInfo.from_starlette(request))
        return await call_next(request)


__all__ = ["PageVisitMiddleware"]

"""Bind a request id (and the route) into structlog contextvars for each request.

An inbound ``X-Request-ID`` header is reused so ids correlate across services;
otherwise a fresh one is generated. The id is echoed on the response.
"""
from __future__ import annotations

import re
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from structlog.contextvars import bind_contextvars, clear_contextvars

_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9._-]{1,128}$")


class RequestIdMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, header_name: str = "X-Request-ID") -> None:  # type: ignore[override]
        super().__init__(app)
        self.header_name = header_name

    def _request_id(self, request: Request) -> str:
        inbound = request.headers.get(self.header_name)
        if inbound and _VALID_REQUEST_ID.match(inbound):
            return inbound
        return uuid.uuid4().hex

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:  # type: ignore[override]
        request_id = self._request_id(request)
        bind_contextvars(request_id=request_id, method=request.method, path=request.url.path)
        request.state.request_id = request_id

        try:
            response: Response = await call_next(request)
        finally:
            # Contextvars must not leak into the next request handled by this task
            clear_contextvars()

        response.headers[self.header_name] = request_id
        return response

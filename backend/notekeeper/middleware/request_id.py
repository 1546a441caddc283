"""
NoteKeeper Backend: Request ID Middleware
===========================================

What:  Assigns a correlation ID to every request and stamps it on log records.
How:   The ID (client-supplied X-Request-ID, or a short random one) is kept in
       a ContextVar for the duration of the request, returned in the
       X-Request-ID response header, and copied onto every LogRecord by
       RequestIDLogFilter so log lines from one request can be grouped.

A ContextVar is used because concurrent requests share one thread in
asyncio; each task sees its own value.
"""

import logging
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"

request_id_var: ContextVar[str] = ContextVar("request_id", default="")


class RequestIDLogFilter(logging.Filter):
    """Adds `record.request_id` ("-" outside a request)."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get("") or "-"
        return True


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Behavior:
        1. Reuse the client's X-Request-ID if present, else generate 8 hex chars
        2. Store it in request_id_var and request.state.request_id
        3. Echo it in the response header
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:8]
        request_id_var.set(rid)
        request.state.request_id = rid
        response = await call_next(request)

        response.headers[REQUEST_ID_HEADER] = rid
        return response

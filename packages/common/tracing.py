"""Tracing helpers for FastAPI.

Adds a request-level trace middleware that injects/propagates `X-Request-ID`
and writes one access log line per request.
"""

from .errors import ServiceError, error_body
from .logging import set_request_id
from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from typing import Callable, Awaitable
import logging
import time
import uuid

log = logging.getLogger("postboard.access")

REQUEST_ID_HEADER = "X-Request-ID"


async def trace_middleware(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
    """ASGI middleware to attach a correlation id and echo it in the response.

    - Reads `X-Request-ID` from the incoming request or generates a UUIDv4.
    - Stores it in a ContextVar so logs include the same id.
    - Turns an exception escaping the handlers into the 500 error envelope.
    - Sets the same header on the outgoing response.
    - Logs method, path, status and duration once the response is ready.

    Args:
        request: Incoming FastAPI request.
        call_next: The next ASGI callable that returns a `Response`.

    Returns:
        The downstream response with `X-Request-ID` header set.
    """
    rid = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
    set_request_id(rid)
    t0 = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception:
        log.exception("%s %s crashed", request.method, request.url.path)
        response = JSONResponse(
            error_body(ServiceError.default_user_message, ServiceError.code),
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
    dt_ms = (time.perf_counter() - t0) * 1000
    response.headers[REQUEST_ID_HEADER] = rid
    log.info("%s %s -> %s (%.1f ms)", request.method, request.url.path, response.status_code, dt_ms)
    return response

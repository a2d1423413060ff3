"""Error taxonomy and HTTP translation for Postboard services.

Every non-2xx response carries the same envelope::

    {"error": {"userMessage": "...", "internalMessage": "..."}}

`userMessage` is safe to show to an end user. `internalMessage` only holds an
error code and the request id; the full diagnostic goes to the log.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .logging import get_request_id

log = logging.getLogger(__name__)


class ServiceError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "internal_error"
    default_user_message: str = "Something went wrong. Please try again later."

    def __init__(self, detail: str, user_message: str | None = None) -> None:
        """Initialize with an internal diagnostic and an optional user-facing message."""
        self.detail = detail
        self.user_message = user_message or self.default_user_message
        super().__init__(detail)


class ValidationError(ServiceError):
    """Malformed or out-of-range input."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "validation_error"
    default_user_message = "The request is invalid."


class NotFound(ServiceError):
    """Unknown post id or blob key."""

    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"
    default_user_message = "The requested resource does not exist."


class StorageUnavailable(ServiceError):
    """Database or blob store could not be reached."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "storage_unavailable"
    default_user_message = "The service is temporarily unavailable. Please try again later."


def error_body(user_message: str, code: str) -> dict:
    """Build the error envelope; the internal message is a code plus request id."""
    return {
        "error": {
            "userMessage": user_message,
            "internalMessage": f"{code} (request_id={get_request_id() or '-'})",
        }
    }


async def _service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    if exc.status_code >= 500:
        log.error("%s %s failed: %s: %s", request.method, request.url.path, exc.code, exc.detail,
                  exc_info=exc.__cause__ is not None)
    else:
        log.info("%s %s rejected: %s: %s", request.method, request.url.path, exc.code, exc.detail)
    return JSONResponse(error_body(exc.user_message, exc.code), status_code=exc.status_code)


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    log.info("%s %s rejected: validation_error: %s", request.method, request.url.path, exc.errors())
    return JSONResponse(
        error_body(describe_validation_errors(exc.errors()), ValidationError.code),
        status_code=status.HTTP_400_BAD_REQUEST,
    )


async def _http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = "not_found" if exc.status_code == 404 else f"http_{exc.status_code}"
    return JSONResponse(
        error_body(str(exc.detail), code),
        status_code=exc.status_code,
        headers=getattr(exc, "headers", None),
    )


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    log.exception("%s %s crashed", request.method, request.url.path)
    return JSONResponse(
        error_body(ServiceError.default_user_message, ServiceError.code),
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def describe_validation_errors(errors) -> str:
    """Render pydantic error dicts as one corrective sentence per field."""
    parts = []
    for err in errors:
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
        field = ".".join(loc)
        parts.append(f"{field}: {err.get('msg')}" if field else str(err.get("msg")))
    return "; ".join(parts) or ValidationError.default_user_message


def register_error_handlers(app: FastAPI) -> None:
    """Install the envelope-producing exception handlers on `app`."""
    app.add_exception_handler(ServiceError, _service_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)

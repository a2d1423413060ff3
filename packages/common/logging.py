"""Structured logging for the Postboard API.

Every record leaves the process as one JSON line on stdout. Records emitted
while a request is being served carry its `X-Request-ID` (see
`packages.common.tracing`), which is also the id quoted in the
`internalMessage` of error responses, so a client-reported error can be
matched to its log lines.
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone

_request_id: ContextVar[str | None] = ContextVar("request_id", default=None)

# uvicorn's access log duplicates the line written by trace_middleware;
# botocore logs every S3 request at INFO.
_QUIET_LOGGERS = {"uvicorn.access": logging.WARNING, "botocore": logging.WARNING, "boto3": logging.WARNING}


def set_request_id(rid: str | None) -> None:
    """Bind (or clear with None) the request id for the current context."""
    _request_id.set(rid)


def get_request_id() -> str | None:
    """Return the request id bound to the current context, if any."""
    return _request_id.get()


class RequestContextFilter(logging.Filter):
    """Stamp `request_id` and `service` onto each record passing the handler."""

    def __init__(self, service: str | None = None) -> None:
        super().__init__()
        self.service = service

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id.get()
        record.service = self.service
        return True


class JSONFormatter(logging.Formatter):
    """Render a record as one JSON object.

    Keys: `ts` (UTC ISO-8601), `level`, `logger`, `msg`, then `service`,
    `request_id` and `exc_info` when they are set.
    """

    def format(self, record: logging.LogRecord) -> str:
        line = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for key in ("service", "request_id"):
            value = getattr(record, key, None)
            if value:
                line[key] = value
        if record.exc_info:
            line["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(line, ensure_ascii=False)


def configure_logging(level: int | str = "INFO", service: str | None = None) -> logging.Logger:
    """Send all logging to stdout as JSON lines.

    Args:
        level: Root level, as a number or a name such as "info".
        service: Service name added to every line.

    Returns:
        The "postboard" logger.
    """
    if isinstance(level, str):
        level = level.upper()
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestContextFilter(service))
    handler.setFormatter(JSONFormatter())
    logging.basicConfig(level=level, handlers=[handler], force=True)
    for name, quiet_level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)
    return logging.getLogger("postboard")

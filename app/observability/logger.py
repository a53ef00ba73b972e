# app/observability/logger.py

"""
Structured JSON logging.

Every record is one JSON object on stdout (and in LOG_FILE when set).
Fields passed through `extra=` land at the top level. The id of the HTTP
request being served is attached to every record emitted while serving
it, so workflow logs deep in the call stack can be joined to the request.
"""

import json
import logging
import os
import sys
import time
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional


SERVICE_NAME = "pdf-chat-api"

_request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

# LogRecord attributes that are not user fields
_STANDARD_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "asctime",
}


def bind_request_id(request_id: Optional[str]):
    """Attach a request id to the current context; returns a reset token."""
    return _request_id.set(request_id)


def reset_request_id(token) -> None:
    _request_id.reset(token)


def current_request_id() -> Optional[str]:
    return _request_id.get()


class RequestContextFilter(logging.Filter):

    def filter(self, record: logging.LogRecord) -> bool:

        if getattr(record, "request_id", None) is None:
            record.request_id = current_request_id()

        return True


class JSONFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:

        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "service": SERVICE_NAME,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }

        for key, value in record.__dict__.items():

            if key in _STANDARD_ATTRS or key.startswith("_"):
                continue

            # user fields never shadow the envelope
            payload[key if key not in payload else f"extra_{key}"] = value

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


def _handler(stream_or_path) -> logging.Handler:

    if isinstance(stream_or_path, str):
        handler = logging.FileHandler(stream_or_path, encoding="utf-8")
    else:
        handler = logging.StreamHandler(stream_or_path)

    handler.setFormatter(JSONFormatter())
    handler.addFilter(RequestContextFilter())

    return handler


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None):
    """Install JSON handlers on the root logger, replacing existing ones."""

    root = logging.getLogger()
    root.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    root.handlers = [_handler(sys.stdout)]

    if log_file:

        directory = os.path.dirname(log_file)
        if directory:
            os.makedirs(directory, exist_ok=True)

        root.addHandler(_handler(log_file))

    for noisy in ("urllib3", "httpx", "httpcore", "openai"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logging.getLogger("pypdf").setLevel(logging.ERROR)


# ============================================================
# ENDPOINT LIFECYCLE EVENTS
# ============================================================

def log_request_start(logger: logging.Logger, endpoint: str, **fields) -> float:
    """Log `<endpoint>_started` and return the start time for latency."""

    logger.info(f"{endpoint}_started", extra={"endpoint": endpoint, **fields})

    return time.time()


def log_request_complete(logger: logging.Logger, endpoint: str, started: float, **fields) -> float:
    """Log `<endpoint>_completed` with latency; returns the latency in seconds."""

    latency = time.time() - started

    logger.info(
        f"{endpoint}_completed",
        extra={"endpoint": endpoint, "latency_seconds": round(latency, 3), **fields},
    )

    return latency


def log_request_error(logger: logging.Logger, endpoint: str, error: BaseException, **fields):

    logger.error(
        f"{endpoint}_failed",
        extra={
            "endpoint": endpoint,
            "error": str(error),
            "error_type": type(error).__name__,
            **fields,
        },
        exc_info=error,
    )

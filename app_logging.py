"""Structured JSON logging for the attendance service.

Every log line is a single JSON object on stdout. Request-scoped values such
as the correlation ID, the HTTP method/path and the time spent talking to the
key-value store are kept in :mod:`contextvars` and merged into each record, so
the ledger and store modules can log plainly with ``extra={...}`` and still
produce lines that can be tied back to the request that caused them.
"""

from __future__ import annotations

import contextvars
import json
import logging
import os
import sys
import time
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, Mapping, Optional

_request_id_ctx: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "request_id", default=None
)
_request_context_ctx: contextvars.ContextVar[Optional[Dict[str, Any]]] = (
    contextvars.ContextVar("request_context", default=None)
)

_REDACTED = "[REDACTED]"
_SENSITIVE_FIELDS = {
    field.strip().lower()
    for field in os.environ.get("SENSITIVE_FIELDS", "password,token,secret_key").split(",")
    if field.strip()
}

# Top-level keys of every emitted line, in addition to ``extra_context``.
_JSON_LOG_FIELDS = (
    "ts",
    "level",
    "logger",
    "msg",
    "request_id",
    "method",
    "path",
    "route",
    "status",
    "duration_ms",
    "client_ip",
    "course_id",
    "store_time_ms",
    "error_type",
    "error",
    "stack",
    "extra_context",
)
_PROMOTED_FIELDS = _JSON_LOG_FIELDS[5:13]


def get_request_id() -> Optional[str]:
    return _request_id_ctx.get()


def set_request_id(request_id: str) -> None:
    _request_id_ctx.set(request_id)
    merge_request_context(request_id=request_id)


def clear_request_id() -> None:
    _request_id_ctx.set(None)


def get_request_context() -> Dict[str, Any]:
    """Return the values attached to the current request so far."""

    ctx = _request_context_ctx.get()
    if ctx is None:
        ctx = {}
        _request_context_ctx.set(ctx)
    return ctx


def merge_request_context(**kwargs: Any) -> None:
    """Merge non-``None`` values into the current request context."""

    ctx = dict(get_request_context())
    ctx.update({key: value for key, value in kwargs.items() if value is not None})
    _request_context_ctx.set(ctx)


def clear_request_context() -> None:
    _request_context_ctx.set({})


def redact_sensitive_data(data: Any, fields: Optional[Iterable[str]] = None) -> Any:
    """Recursively replace values of sensitive keys with ``[REDACTED]``.

    Keys are compared case-insensitively. Scalars are returned unchanged.
    """

    fields_set = {field.lower() for field in (fields or _SENSITIVE_FIELDS)}

    if isinstance(data, Mapping):
        return {
            key: _REDACTED if str(key).lower() in fields_set else redact_sensitive_data(value, fields_set)
            for key, value in data.items()
        }
    if isinstance(data, (list, tuple, set)):
        return [redact_sensitive_data(item, fields_set) for item in data]
    return data


class JSONFormatter(logging.Formatter):
    """Render log records as single-line JSON objects."""

    # Attributes every LogRecord has; anything else came in through ``extra``.
    _RESERVED = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
        "message",
        "asctime",
        "taskName",
    }

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = dict.fromkeys(_JSON_LOG_FIELDS)
        payload.update(
            ts=datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="milliseconds"),
            level=record.levelname,
            logger=record.name,
            msg=record.getMessage(),
            request_id=get_request_id(),
        )

        for key, value in get_request_context().items():
            if payload.get(key) is None:
                payload[key] = value

        for field in _PROMOTED_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                payload[field] = value

        if record.exc_info and record.exc_info[0] is not None:
            payload["error_type"] = record.exc_info[0].__name__
            payload["error"] = str(record.exc_info[1])
            payload["stack"] = self.formatException(record.exc_info)
        elif record.stack_info:
            payload["stack"] = record.stack_info

        extra = {
            key: value
            for key, value in record.__dict__.items()
            if key not in self._RESERVED and key not in payload and not key.startswith("_")
        }
        if extra:
            payload["extra_context"] = redact_sensitive_data(extra)

        return json.dumps(payload, default=_json_default, separators=(",", ":"))


def _json_default(obj: Any) -> Any:
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    return str(obj)


_configured = False


def configure_logging() -> None:
    """Install the JSON formatter on the root logger (once)."""

    global _configured
    if _configured:
        return

    level_name = os.environ.get("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(JSONFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = [handler]
    logging.captureWarnings(True)

    # Request lines come from request_logging_middleware; keep werkzeug and
    # SQLAlchemy quiet unless something goes wrong.
    for noisy_logger in ("werkzeug", "sqlalchemy.engine", "gunicorn.access"):
        log = logging.getLogger(noisy_logger)
        log.handlers = []
        log.propagate = True
        log.setLevel(logging.WARNING)

    _configured = True


def get_logger(name: str) -> logging.Logger:
    configure_logging()
    return logging.getLogger(name)


class StoreTimer:
    """Accumulate time spent in the key-value store into ``store_time_ms``."""

    def __enter__(self) -> "StoreTimer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        elapsed = (time.perf_counter() - self._start) * 1000
        previous = get_request_context().get("store_time_ms", 0.0)
        merge_request_context(store_time_ms=round(previous + elapsed, 2))


__all__ = [
    "JSONFormatter",
    "StoreTimer",
    "clear_request_context",
    "clear_request_id",
    "configure_logging",
    "get_logger",
    "get_request_context",
    "get_request_id",
    "merge_request_context",
    "redact_sensitive_data",
    "set_request_id",
]

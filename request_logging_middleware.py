"""Request/response logging for the attendance API.

One ``request_start`` and one ``request_end`` line per sampled request. The
end line reports the status, duration and the time spent in the key-value
store, plus a redacted, size-capped copy of the JSON response body.
"""

from __future__ import annotations

import json
import os
import random
import time
from typing import Any, Dict, Optional

from flask import Flask, Response, g, request

from app_logging import get_logger, get_request_context, merge_request_context, redact_sensitive_data

_DEFAULT_SAMPLE_RATE = 1.0
_DEFAULT_MAX_BYTES = 2048
_UNLOGGED_PATHS = {"/health"}

_request_logger = get_logger("app.request")


def _env_number(name: str, default, cast):
    try:
        return cast(os.environ.get(name, default))
    except ValueError:
        return default


def _sample_rate() -> float:
    return max(0.0, min(1.0, _env_number("REQUEST_LOG_SAMPLE_RATE", _DEFAULT_SAMPLE_RATE, float)))


def _max_response_bytes() -> int:
    return max(0, _env_number("RESPONSE_BODY_MAX_BYTES", _DEFAULT_MAX_BYTES, int))


def _client_ip() -> str:
    forwarded = request.headers.get("X-Forwarded-For", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.remote_addr or "unknown"


def _should_log(path: str) -> bool:
    if path in _UNLOGGED_PATHS or path.startswith("/static"):
        return False
    rate = _sample_rate()
    return rate >= 1.0 or random.random() < rate


def _request_payload() -> Dict[str, Any]:
    payload: Dict[str, Any] = {}
    if request.args:
        payload["query"] = redact_sensitive_data(request.args.to_dict(flat=False))
    if request.method in {"POST", "PUT", "PATCH", "DELETE"}:
        body = request.get_json(silent=True)
        if body is not None:
            payload["json"] = redact_sensitive_data(body)
    return payload


def _response_excerpt(response: Response) -> Optional[str]:
    limit = _max_response_bytes()
    if limit == 0 or response.direct_passthrough or not response.is_json:
        return None
    body = json.dumps(redact_sensitive_data(response.get_json(silent=True)))
    if len(body) > limit:
        return body[:limit] + f"... truncated {len(body) - limit} bytes"
    return body


def init_request_logging(app: Flask) -> None:
    """Register hooks that log each request and its response."""

    @app.before_request
    def _log_request_start() -> None:
        g._request_start = time.perf_counter()
        g._log_request = _should_log(request.path)
        route = request.url_rule.rule if request.url_rule else None
        merge_request_context(method=request.method, path=request.path, route=route, client_ip=_client_ip())
        if g._log_request:
            _request_logger.info(
                "request_start",
                extra={"event": "request_start", "request_payload": _request_payload()},
            )

    @app.after_request
    def _log_request_end(response: Response) -> Response:
        duration_ms = None
        if hasattr(g, "_request_start"):
            duration_ms = round((time.perf_counter() - g._request_start) * 1000, 2)
        merge_request_context(status=response.status_code, duration_ms=duration_ms)
        if getattr(g, "_log_request", False):
            _request_logger.info(
                "request_end",
                extra={
                    "event": "request_end",
                    "store_time_ms": get_request_context().get("store_time_ms"),
                    "response_body": _response_excerpt(response),
                },
            )
        return response


__all__ = ["init_request_logging"]

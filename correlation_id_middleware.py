"""Correlation IDs for API requests.

Each request is tagged with the caller's ``X-Request-ID`` (or a fresh UUID).
The ID is echoed on the response, stored on :data:`flask.g` for the problem
details renderer, and placed in the logging context so every line written by
the ledger and the store while handling the request carries it. The course
being addressed, if the route has one, is added to the context as well.
"""

from __future__ import annotations

import uuid
from typing import Optional

from flask import Flask, g, request

from app_logging import clear_request_context, clear_request_id, merge_request_context, set_request_id

HEADER_NAME = "X-Request-ID"


def _incoming_request_id() -> Optional[str]:
    return request.headers.get(HEADER_NAME, "").strip() or None


def current_request_id() -> Optional[str]:
    return getattr(g, "request_id", None) or _incoming_request_id()


def init_correlation_id(app: Flask) -> None:
    """Attach a correlation ID to every request handled by ``app``."""

    @app.before_request
    def _assign_request_id() -> None:
        request_id = _incoming_request_id() or str(uuid.uuid4())
        g.request_id = request_id
        set_request_id(request_id)
        view_args = request.view_args or {}
        merge_request_context(course_id=view_args.get("course_id"))

    @app.after_request
    def _echo_request_id(response):
        request_id = current_request_id()
        if request_id:
            response.headers[HEADER_NAME] = request_id
        return response

    @app.teardown_request
    def _forget_request(_exc):
        clear_request_id()
        clear_request_context()


__all__ = ["HEADER_NAME", "current_request_id", "init_correlation_id"]

"""Start-up helpers for the key-value table.

Only schema creation is retried. Reads and writes of the course collection are
never retried: a failed save is logged and the in-memory snapshot stays
authoritative.
"""

from __future__ import annotations

import time
from typing import Callable, Tuple, Type, TypeVar

from sqlalchemy.exc import SQLAlchemyError

from app_logging import get_logger

T = TypeVar("T")

_logger = get_logger("app.db")


def retry_with_backoff(
    func: Callable[[], T],
    attempts: int = 3,
    base_delay: float = 0.1,
    max_total_delay: float = 2.0,
    retry_on: Tuple[Type[BaseException], ...] = (SQLAlchemyError,),
) -> T:
    """Call ``func`` until it succeeds, sleeping exponentially between tries.

    Exceptions outside ``retry_on`` propagate immediately. The last retried
    exception is re-raised once ``attempts`` or ``max_total_delay`` run out.
    """

    total_delay = 0.0
    attempt = 1
    while True:
        try:
            return func()
        except retry_on as exc:
            _logger.warning("transient operation failed", extra={"attempt": attempt, "error": str(exc)})
            delay = min(base_delay * (2 ** (attempt - 1)), max_total_delay - total_delay)
            if attempt >= attempts or delay <= 0:
                raise
        time.sleep(delay)
        total_delay += delay
        attempt += 1


def create_tables(db, attempts: int = 3) -> bool:
    """Create missing tables; returns ``False`` if the database stayed unavailable."""

    try:
        retry_with_backoff(db.create_all, attempts=attempts)
    except SQLAlchemyError as exc:
        _logger.warning("database unavailable during table creation", extra={"error": str(exc)})
        return False
    return True


__all__ = ["create_tables", "retry_with_backoff"]

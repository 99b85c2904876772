"""Key-value persistence collaborators.

The course store only needs ``get``/``set``/``delete`` on string values, which
keeps it independent of where the data actually lives. Two implementations
are provided:

* :class:`InMemoryStore` – a dict, used by tests and throwaway sessions.
* :class:`SQLAlchemyStore` – rows of the ``stored_value`` table. It uses the
  Flask-SQLAlchemy session and therefore needs an application context.
"""

from __future__ import annotations

from typing import Dict, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError

from models import StoredValue, db


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemoryStore:
    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._values: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def delete(self, key: str) -> None:
        self._values.pop(key, None)


class SQLAlchemyStore:
    """Store values in the ``stored_value`` table."""

    def get(self, key: str) -> Optional[str]:
        row = db.session.get(StoredValue, key)
        return row.value if row is not None else None

    def set(self, key: str, value: str) -> None:
        try:
            row = db.session.get(StoredValue, key)
            if row is None:
                db.session.add(StoredValue(key=key, value=value))
            else:
                row.value = value
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise

    def delete(self, key: str) -> None:
        try:
            db.session.query(StoredValue).filter_by(key=key).delete()
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise


__all__ = ["InMemoryStore", "KeyValueStore", "SQLAlchemyStore"]

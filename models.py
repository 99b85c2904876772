"""Database model backing the key-value store.

The attendance ledger keeps its whole state as two serialized values (the
course collection and the theme preference), so a single table is enough:

* :class:`StoredValue` – one row per key, holding an opaque text value.
"""

from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy


# Initialised with the Flask application in ``app.py`` via ``db.init_app(app)``.
db = SQLAlchemy()


def _utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class StoredValue(db.Model):
    """A single key and its serialized value."""

    __tablename__ = 'stored_value'

    key = db.Column(db.String(64), primary_key=True)
    value = db.Column(db.Text, nullable=False)
    updated_at = db.Column(db.DateTime, default=_utc_now, onupdate=_utc_now, nullable=False)

    def __repr__(self) -> str:
        return f"<StoredValue {self.key} ({len(self.value)} chars)>"

# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Repository base: connection handling shared by every data-access class.
"""

import json
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator, Optional

from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat(timespec="microseconds") if value else None


def from_iso(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def to_json(value: Any) -> str:
    return json.dumps(value or [])


def from_json(value: Any, default: Any = None) -> Any:
    if value is None or value == "":
        return default
    if isinstance(value, (list, dict)):
        return value
    return json.loads(value)


class BaseRepository:
    """Owns the engine; writes accept a caller-supplied transactional connection."""

    def __init__(self, engine: Engine):
        self._engine = engine

    @property
    def engine(self) -> Engine:
        return self._engine

    def begin_transaction(self):
        """Return a transactional connection context."""
        return self._engine.begin()

    @contextmanager
    def _connection(self, conn: Optional[Connection] = None) -> Iterator[Connection]:
        # Reuse the caller's transaction when given, else a short-lived connection
        if conn is not None:
            yield conn
            return
        with self._engine.connect() as own:
            yield own

    def verify_connection(self) -> None:
        """Verify database connectivity."""
        with self._engine.connect() as conn:
            conn.execute(text("SELECT 1"))

    def dispose(self) -> None:
        """Dispose the connection pool."""
        self._engine.dispose()

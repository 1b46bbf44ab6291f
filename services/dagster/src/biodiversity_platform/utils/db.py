from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass

from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine


@dataclass
class DBConnection:
    """An open transaction plus the identity of the user it runs as."""

    conn: Connection
    system_user_id: int | None = None

    def execute(self, statement, params: dict | None = None):
        return self.conn.execute(statement, params or {})

    @property
    def dialect_name(self) -> str:
        return self.conn.dialect.name

    def lock_dataset(self, dataset_id: str) -> None:
        if self.dialect_name != "postgresql":
            return
        self.conn.execute(
            text("SELECT pg_advisory_xact_lock(hashtext(:dataset_id))"),
            {"dataset_id": dataset_id},
        )

    @contextmanager
    def savepoint(self):
        """Scope a step so a failed statement does not poison the enclosing PostgreSQL transaction."""
        if self.dialect_name != "postgresql":
            yield
            return
        with self.conn.begin_nested():
            yield


@contextmanager
def open_connection(engine: Engine, system_user_id: int | None = None):
    with engine.begin() as conn:
        yield DBConnection(conn=conn, system_user_id=system_user_id)

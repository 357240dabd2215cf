from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator, Sequence

import psycopg
from fastapi import Request
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from .errors import StoreError

log = logging.getLogger(__name__)

_SCHEMA_SQL = Path(__file__).resolve().parent / "schema.sql"


@dataclass(frozen=True)
class ExecResult:
    rows_affected: int
    inserted_id: int | None = None


class StoreSession:
    """Statements issued against one borrowed connection."""

    def __init__(self, conn: psycopg.Connection) -> None:
        self._conn = conn

    def query(self, statement: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        try:
            return list(self._conn.execute(statement, params).fetchall())
        except psycopg.Error as exc:
            raise StoreError(str(exc)) from exc

    def execute(self, statement: str, params: Sequence[Any] = ()) -> ExecResult:
        """Run a write statement.

        ``inserted_id`` is filled from the first returned row when the
        statement ends in ``RETURNING id``.
        """

        try:
            cur = self._conn.execute(statement, params)
            inserted_id = None
            if cur.description is not None:
                row = cur.fetchone()
                if row is not None:
                    inserted_id = row.get("id")
            return ExecResult(rows_affected=cur.rowcount, inserted_id=inserted_id)
        except psycopg.Error as exc:
            raise StoreError(str(exc)) from exc


class RecordStore:
    """Injected handle on the relational store.

    The pool is opened at process startup and closed at shutdown; every unit
    of work borrows a single connection for the duration of a ``with`` block.
    """

    def __init__(
        self,
        conninfo: str,
        *,
        min_size: int = 1,
        max_size: int = 10,
        atomic_writes: bool = True,
    ) -> None:
        self.atomic_writes = atomic_writes
        self._pool = ConnectionPool(
            conninfo,
            min_size=min_size,
            max_size=max_size,
            kwargs={"autocommit": True, "row_factory": dict_row},
            open=False,
        )

    def open(self) -> None:
        try:
            self._pool.open(wait=True)
            with self._pool.connection() as conn:
                conn.execute(_SCHEMA_SQL.read_text(encoding="utf-8"))
        except psycopg.Error as exc:
            raise StoreError(f"could not open record store: {exc}") from exc
        log.info("record store open (pool %s..%s)", self._pool.min_size, self._pool.max_size)

    def close(self) -> None:
        self._pool.close()
        log.info("record store closed")

    @contextmanager
    def session(self) -> Iterator[StoreSession]:
        try:
            with self._pool.connection() as conn:
                yield StoreSession(conn)
        except psycopg.Error as exc:
            raise StoreError(str(exc)) from exc

    @contextmanager
    def transaction(self) -> Iterator[StoreSession]:
        """Yield a session whose statements commit or roll back together.

        With ``atomic_writes`` off each statement commits on its own, which
        is what callers check to tell a clean failure from a partial one.
        """

        try:
            with self._pool.connection() as conn:
                if not self.atomic_writes:
                    yield StoreSession(conn)
                    return
                with conn.transaction():
                    yield StoreSession(conn)
        except psycopg.Error as exc:
            raise StoreError(str(exc)) from exc

    def query(self, statement: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        with self.session() as s:
            return s.query(statement, params)

    def execute(self, statement: str, params: Sequence[Any] = ()) -> ExecResult:
        with self.session() as s:
            return s.execute(statement, params)


def get_store(request: Request) -> RecordStore:
    """FastAPI dependency: the store handle opened by the application lifespan."""
    return request.app.state.store

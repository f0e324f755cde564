# Overview: Transaction boundary, row locking and retry shared by every writing service.

from __future__ import annotations

import time
from contextlib import contextmanager

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def _begin_immediate_if_sqlite(session) -> None:
    """
    Take the SQLite write lock before anything is read.

    pysqlite only opens a transaction lazily on the first DML statement, so a
    read-then-write sequence would otherwise race with other writers. Skipped
    when the driver connection already holds a transaction.
    """
    if db.engine.dialect.name != "sqlite":
        return
    dbapi_conn = session.connection().connection.dbapi_connection
    if not dbapi_conn.in_transaction:
        session.execute(text("BEGIN IMMEDIATE"))


@contextmanager
def unit_of_work():
    """
    One all-or-nothing write.

    Commits on clean exit, rolls back and re-raises on any exception.
    Wrap the enclosing function in run_with_retry so lock timeouts and
    version conflicts re-run the whole block.
    """
    session = db.session
    _begin_immediate_if_sqlite(session)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts).
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc

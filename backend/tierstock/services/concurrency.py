# Overview: Row locking and retry helpers shared by every ledger-writing service.

from __future__ import annotations

import logging
import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the database-wide write
    lock plus the conditional UPDATE in ledger_service serialize writers.
    """
    return query.with_for_update()


def _default_attempts() -> int:
    try:
        return int(current_app.config.get("LEDGER_RETRY_ATTEMPTS", 3))
    except RuntimeError:
        return 3


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Domain errors propagate immediately.
    """
    attempts = attempts or _default_attempts()
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            logger.warning("Retrying after concurrency conflict (attempt %s/%s): %s", attempt + 1, attempts, exc)
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def begin_immediate() -> None:
    """
    SQLite: open the transaction with BEGIN IMMEDIATE.

    Writers then queue on the database lock (busy timeout) before reading, and
    savepoints nest inside a real transaction. No-op on other databases or
    when the connection is already inside a transaction.
    """
    if db.engine.dialect.name != "sqlite":
        return
    dbapi_connection = db.session.connection().connection.dbapi_connection
    if not dbapi_connection.in_transaction:
        db.session.execute(text("BEGIN IMMEDIATE"))

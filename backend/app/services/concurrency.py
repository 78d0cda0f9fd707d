# Overview: Service-layer operations for concurrency; transaction scope, row locking and retries.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from .errors import TransientError


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write() takes the
    database write lock there instead.
    """
    return query.with_for_update()


def begin_write() -> None:
    """
    Start the transaction as a writer.

    On SQLite this issues BEGIN IMMEDIATE so concurrent writers serialize at
    the start of the transaction rather than failing at commit time. Other
    databases rely on the FOR UPDATE row locks taken by each service.
    """
    if db.engine.dialect.name == "sqlite":
        db.session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, lock timeouts) and StaleDataError
    (optimistic locking conflicts). When attempts run out the failure is
    reported as TransientError.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            current_app.logger.warning(
                "Transient database failure (attempt %s/%s): %s", attempt + 1, attempts, exc
            )
            if attempt < attempts - 1:
                time.sleep(backoff_base * (2 ** attempt))
    raise TransientError(details={"reason": type(last_exc).__name__}) from last_exc


def run_in_transaction(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run `func` as one write transaction.

    `func` commits on success. Any other outcome rolls the session back so
    no partial effect (stock decrements, inserted rows) survives.
    """
    def _op():
        begin_write()
        try:
            return func()
        except (OperationalError, StaleDataError):
            # run_with_retry rolls back before the next attempt
            raise
        except Exception:
            db.session.rollback()
            raise

    return run_with_retry(_op, attempts=attempts, backoff_base=backoff_base)

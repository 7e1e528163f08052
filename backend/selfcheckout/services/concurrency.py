# Overview: Storage transaction primitive; retry loop for optimistic-concurrency conflicts.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from .errors import TransactionConflictError


# OperationalError: deadlocks / "database is locked"
# StaleDataError: version_id_col mismatch (another writer committed first)
# IntegrityError: unique-key race (e.g. two inserts of the same payment record)
RETRYABLE_ERRORS = (OperationalError, StaleDataError, IntegrityError)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def _begin_immediate() -> None:
    # SQLite: take the write lock up front so concurrent attempts serialize
    # instead of failing on lock upgrade halfway through.
    if db.engine.dialect.name == "sqlite":
        db.session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(
    func,
    *,
    attempts: int | None = None,
    backoff_base: float | None = None,
    immediate: bool | None = None,
):
    """
    Execute one unit of work as a storage transaction.

    `func` must perform all of its reads before its writes and commit at the
    end. On a concurrency failure the session is rolled back and `func` runs
    again from scratch, so every read is repeated against fresh state.

    Any other exception rolls the session back and propagates unchanged;
    nothing from the failed attempt is left behind.

    Raises:
        TransactionConflictError: retries exhausted
    """
    config = current_app.config
    if attempts is None:
        attempts = config.get("TRANSACTION_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = config.get("TRANSACTION_RETRY_BACKOFF", 0.1)
    if immediate is None:
        immediate = config.get("SQLITE_IMMEDIATE_TRANSACTIONS", True)

    last_exc = None
    for attempt in range(attempts):
        try:
            if immediate:
                _begin_immediate()
            return func()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            last_exc = exc
            current_app.logger.warning(
                "Transaction attempt %d/%d conflicted: %s", attempt + 1, attempts, type(exc).__name__
            )
            if attempt >= attempts - 1:
                break
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise

    raise TransactionConflictError(
        "Storage transaction kept conflicting; retry the request.",
        details={"attempts": attempts, "cause": type(last_exc).__name__ if last_exc else None},
    ) from last_exc

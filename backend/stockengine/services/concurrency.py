# Overview: Row locking, bounded retry and the unit-of-work wrapper every mutating service runs in.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConcurrencyConflictError, InventoryError, PersistenceError
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    version_id optimistic locking still catches lost updates there.
    """
    return query.with_for_update()


def _retry_policy(attempts: int | None, backoff_base: float | None) -> tuple[int, float]:
    if attempts is None:
        attempts = int(current_app.config.get("INVENTORY_RETRY_ATTEMPTS", 3))
    if backoff_base is None:
        backoff_base = float(current_app.config.get("INVENTORY_RETRY_BACKOFF", 0.05))
    return max(1, attempts), max(0.0, backoff_base)


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, lock timeouts) and StaleDataError
    (optimistic locking conflicts). The session is rolled back before each
    retry, so func must re-read everything it needs.
    """
    attempts, backoff_base = _retry_policy(attempts, backoff_base)
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                current_app.logger.warning(
                    "Giving up after %d attempts on concurrent update: %s", attempts, exc
                )
                raise ConcurrencyConflictError(
                    "Concurrent update conflict, please retry",
                    attempts=attempts,
                ) from exc
            current_app.logger.debug("Concurrent update conflict (attempt %d), retrying", attempt + 1)
            time.sleep(backoff_base * (2 ** attempt))


def run_in_transaction(op, *, commit: bool = True, attempts: int | None = None, backoff_base: float | None = None):
    """
    Run op as one unit of work.

    commit=True: op runs, the session commits, and ANY exception rolls the
    whole unit back. Lock/version conflicts are retried; domain errors
    propagate unchanged; other database errors become PersistenceError.

    commit=False: op runs inside the caller's transaction; nothing is
    committed or rolled back here.
    """
    if not commit:
        return op()

    def _attempt():
        try:
            result = op()
            db.session.commit()
            return result
        except (OperationalError, StaleDataError):
            raise
        except InventoryError:
            db.session.rollback()
            raise
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.exception("Unit of work failed with a database error")
            raise PersistenceError("Database error, transaction rolled back") from exc
        except Exception:
            db.session.rollback()
            raise

    return run_with_retry(_attempt, attempts=attempts, backoff_base=backoff_base)

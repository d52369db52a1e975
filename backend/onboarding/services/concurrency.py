# Overview: Row locking and bounded retry helpers shared by the workflow services.

from __future__ import annotations

import logging
import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import Conflict, StoreUnavailable
from ..extensions import db

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; use begin_immediate() there.
    """
    return query.with_for_update()


def is_sqlite() -> bool:
    return db.engine.dialect.name == "sqlite"


def begin_immediate() -> None:
    """
    Take the SQLite write lock up front so two writers cannot both read the
    same row and race to update it. No-op on other dialects.
    """
    if is_sqlite():
        db.session.execute(text("BEGIN IMMEDIATE"))


def _retry_policy(attempts: int | None, backoff_base: float | None) -> tuple[int, float]:
    if attempts is None:
        attempts = current_app.config.get("STORE_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("STORE_RETRY_BACKOFF", 0.1)
    return max(1, int(attempts)), float(backoff_base)


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (locks, timeouts) and StaleDataError
    (optimistic locking conflicts). func is re-run from scratch, so it must
    re-read whatever it decides on.

    After the last attempt:
    - OperationalError -> StoreUnavailable
    - StaleDataError   -> Conflict
    """
    attempts, backoff_base = _retry_policy(attempts, backoff_base)
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                if isinstance(exc, StaleDataError):
                    raise Conflict("Record was modified concurrently") from exc
                logger.error("Store unavailable after %d attempts: %s", attempts, exc)
                raise StoreUnavailable("Store unavailable, try again later") from exc
            logger.warning("Retrying store operation (attempt %d/%d): %s", attempt + 1, attempts, exc)
            time.sleep(backoff_base * (2 ** attempt))

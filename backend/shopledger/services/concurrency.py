# Overview: Unit-of-work helpers shared by every money-moving service.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    # Customers, bills and products are read and then rewritten in one unit.
    # SQLite ignores FOR UPDATE; version_id catches conflicting writers there.
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run `func` as one unit of work.

    `func` does its reads and writes and commits at the end. Lock timeouts,
    deadlocks (OperationalError) and optimistic-locking conflicts
    (StaleDataError) are retried with exponential backoff. Any other
    exception rolls the session back and propagates, so a failed unit never
    leaves half-applied balances in the session.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError):
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise

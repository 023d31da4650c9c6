# Overview: Retry helpers for order writes; absorbs lock and optimistic-version conflicts.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run a unit of database work, retrying on transient write conflicts.

    OperationalError covers "database is locked" and deadlocks; StaleDataError
    is raised when another pass bumped Order.version_id between our read and
    our flush. The session is rolled back before each retry so func() always
    starts from freshly loaded rows.
    """
    for attempt in range(attempts):
        try:
            return func()
        except RETRYABLE_ERRORS:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    return None

# Overview: Service-layer concurrency primitives; retries and atomic counter updates.

from __future__ import annotations

import time

from sqlalchemy import update
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def apply_delta(column, delta: int, *criteria, floor: int | None = None) -> int:
    """
    Atomically add delta to an integer column on the rows matching criteria.

    Issues a single UPDATE ... SET col = col + :delta WHERE ... so concurrent
    callers can never interleave a read and a write. With floor set, the
    row is only touched when the result stays >= floor; the caller checks the
    returned affected-row count to learn whether the guard held.

    Returns the number of rows updated.
    """
    model = column.class_
    stmt = update(model).where(*criteria)
    if floor is not None:
        stmt = stmt.where(column + delta >= floor)
    stmt = stmt.values({column.key: column + delta}).execution_options(synchronize_session=False)
    result = db.session.execute(stmt)
    return result.rowcount


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

# Overview: Transaction primitives; unit of work, retry, row locks and typed constraint conflicts.

from __future__ import annotations

import time
from typing import Callable, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


class ConstraintConflict(Exception):
    """
    A uniqueness (or other integrity) constraint rejected a write.

    Raised in place of the driver's IntegrityError so callers can decide to
    re-run the whole unit of work without inspecting driver messages.
    """

    def __init__(self, original: IntegrityError):
        super().__init__(str(original.orig) if original.orig is not None else str(original))
        self.original = original


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    The guarded UPDATE statements in the ledger and unit registry are what
    actually serialize writers there.
    """
    return query.with_for_update()


def flush_or_conflict() -> None:
    """Flush pending writes, translating IntegrityError into ConstraintConflict."""
    try:
        db.session.flush()
    except IntegrityError as exc:
        raise ConstraintConflict(exc) from exc


def run_with_retry(
    func,
    *,
    attempts: int = 3,
    backoff_base: float = 0.1,
    retry_on: tuple = (OperationalError, StaleDataError),
    on_exhausted: Optional[Callable[[Exception], Exception]] = None,
):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Each attempt re-runs `func` from scratch after a rollback, so `func` must
    re-read everything it depends on. When `on_exhausted` is given, its
    return value is raised instead of the last underlying exception.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except retry_on as exc:
            db.session.rollback()
            last_exc = exc
            current_app.logger.warning(
                "Retryable conflict on attempt %d/%d: %s", attempt + 1, attempts, exc
            )
            if attempt >= attempts - 1:
                break
            time.sleep(backoff_base * (2 ** attempt))
    if on_exhausted is not None:
        raise on_exhausted(last_exc) from last_exc
    if last_exc:
        raise last_exc


class UnitOfWork:
    """
    One relational transaction per logical operation.

    Steps run in order against the shared session; the first exception rolls
    everything back and propagates unchanged (IntegrityError is surfaced as
    ConstraintConflict). On success the session is committed exactly once
    and the last step's return value is returned.
    """

    def __init__(self, name: str):
        self.name = name
        self._steps: list[Callable] = []

    def add(self, step: Callable) -> "UnitOfWork":
        self._steps.append(step)
        return self

    def run(self):
        result = None
        try:
            for step in self._steps:
                result = step()
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            raise ConstraintConflict(exc) from exc
        except Exception:
            db.session.rollback()
            raise
        current_app.logger.debug("Unit of work %s committed", self.name)
        return result


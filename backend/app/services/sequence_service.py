# Overview: Tenant- and year-scoped request sequences with retry on unique collisions.

"""
Request Number Allocation

WHY: Display numbers must be gap-tolerant but collision-free per
(tenant, year) without an external lock service.

HOW:
- The next sequence is max(sequence) + 1, read inside the same transaction
  that inserts the request.
- The unique constraint (tenant_id, year, sequence) rejects the loser of a
  race at flush time; the loser's whole unit of work is rolled back and run
  again with a fresh read.
- A writer that finds the database locked (SQLite reports "database is
  locked" as OperationalError) is rolled back and retried the same way.
- After SEQUENCE_MAX_ATTEMPTS failed attempts the caller gets
  SequenceExhaustedError. Nothing partial is ever persisted.
"""

from __future__ import annotations

from typing import Callable, TypeVar

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import OperationalError

from ..errors import SequenceExhaustedError
from ..extensions import db
from ..models import Request
from .concurrency import ConstraintConflict, run_with_retry

T = TypeVar("T")


def format_display_number(prefix: str, year: int, sequence: int) -> str:
    return f"{prefix}-{year}-{sequence:06d}"


def current_max_sequence(tenant_id: int, year: int) -> int:
    value = db.session.query(func.max(Request.sequence)).filter(
        Request.tenant_id == tenant_id,
        Request.year == year,
    ).scalar()
    return int(value or 0)


def next_display_number(tenant_id: int, year: int) -> tuple[int, str]:
    """Return (sequence, display_number) for the next request in the partition."""
    sequence = current_max_sequence(tenant_id, year) + 1
    prefix = current_app.config.get("REQUEST_NUMBER_PREFIX", "REQ")
    return sequence, format_display_number(prefix, year, sequence)


def run_sequenced(tenant_id: int, year: int, work: Callable[[int, str], T]) -> T:
    """
    Run `work(sequence, display_number)` until it commits without a collision.

    `work` must open and commit its own unit of work; on ConstraintConflict
    or a lock timeout the session is rolled back and `work` is called again
    with a freshly computed number.
    """
    attempts = current_app.config.get("SEQUENCE_MAX_ATTEMPTS", 5)
    backoff = current_app.config.get("SEQUENCE_RETRY_BACKOFF", 0.01)

    def _attempt():
        sequence, display_number = next_display_number(tenant_id, year)
        return work(sequence, display_number)

    def _exhausted(exc):
        current_app.logger.error(
            "Sequence allocation exhausted for tenant=%s year=%s after %d attempts",
            tenant_id, year, attempts,
        )
        return SequenceExhaustedError("could not allocate sequence", tenant_id=tenant_id, year=year)

    return run_with_retry(
        _attempt,
        attempts=attempts,
        backoff_base=backoff,
        retry_on=(ConstraintConflict, OperationalError),
        on_exhausted=_exhausted,
    )

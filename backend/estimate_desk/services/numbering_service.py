# Overview: Atomic per-trader document numbering (EST-2025-0001).

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..extensions import db
from ..models import DocumentSequence
from ..time_utils import utcnow
from .concurrency import run_with_retry


ESTIMATE_DOCUMENT_TYPE = "ESTIMATE"
ESTIMATE_PREFIX = "EST"


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def _read_next(trader_id: int, document_type: str, year: int) -> int:
    return (
        db.session.query(DocumentSequence.next_number)
        .filter_by(trader_id=trader_id, document_type=document_type, year=year)
        .scalar()
    )


def allocate_sequence_number(*, trader_id: int, document_type: str, year: int) -> int:
    """
    Atomically allocate the next number in (trader, type, year).

    The counter row is bumped with a single UPDATE ... SET n = n + 1, so two
    concurrent allocations can never read the same value. The row is created
    on first use; if another request creates it first, the insert hits the
    unique constraint and the UPDATE is retried.

    Runs inside the caller's transaction (flush, no commit). Call it before
    adding anything else to the session: the duplicate-insert path rolls the
    session back.
    """
    if not trader_id:
        raise DocumentSequenceError("trader_id is required")
    if not document_type:
        raise DocumentSequenceError("document_type is required")

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.trader_id == trader_id,
            DocumentSequence.document_type == document_type,
            DocumentSequence.year == year,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        return _read_next(trader_id, document_type, year) - 1

    db.session.add(
        DocumentSequence(trader_id=trader_id, document_type=document_type, year=year, next_number=2)
    )
    try:
        db.session.flush()
        return 1
    except IntegrityError:
        db.session.rollback()

    result = db.session.execute(stmt)
    if not result.rowcount:
        raise DocumentSequenceError("Could not allocate document number")
    return _read_next(trader_id, document_type, year) - 1


def format_estimate_number(year: int, number: int) -> str:
    return f"{ESTIMATE_PREFIX}-{year}-{number:04d}"


def fallback_estimate_number(year: int) -> str:
    """Timestamp-suffixed number used when the sequence cannot be allocated."""
    millis = int(time.time() * 1000)
    return f"{ESTIMATE_PREFIX}-{year}-{str(millis)[-6:]}"


def next_estimate_number(trader_id: int, year: int | None = None) -> str:
    """
    Next estimate number for a trader, e.g. EST-2025-0003.

    Allocation retries lock/stale errors. If it still fails, a
    timestamp-suffixed number is returned instead so estimate creation does
    not fail outright; the per-trader unique constraint still guards it.
    """
    year = year or utcnow().year

    def _op() -> str:
        number = allocate_sequence_number(
            trader_id=trader_id, document_type=ESTIMATE_DOCUMENT_TYPE, year=year
        )
        return format_estimate_number(year, number)

    try:
        return run_with_retry(_op)
    except (SQLAlchemyError, DocumentSequenceError):
        db.session.rollback()
        current_app.logger.warning(
            "Estimate sequence allocation failed for trader %s; using timestamp fallback",
            trader_id,
            exc_info=True,
        )
        return fallback_estimate_number(year)

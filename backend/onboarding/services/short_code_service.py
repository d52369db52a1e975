# Overview: Short-code allocation backed by a dedicated atomic counter row.

"""
Short-Code Allocator

Codes are fixed-width zero-padded decimals handed out at final validation.

The counter lives in short_code_sequences. allocate_short_code() advances it
with a single UPDATE ... SET next_value = next_value + 1 inside the caller's
transaction, so a rolled-back final validation also rolls back the increment.

The unique constraint on merchants.short_code is the final adjudicator: if a
code somehow collides (counter seeded behind a manual insert, restored
backup, ...) the caller's commit fails with IntegrityError, the caller runs
resync_sequence() and tries again.
"""

from __future__ import annotations

import logging

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import AllocationConflict
from ..extensions import db
from ..models import Merchant, ShortCodeSequence

logger = logging.getLogger(__name__)

SEQUENCE_NAME = "merchant"


def _floor() -> int:
    return int(current_app.config.get("SHORT_CODE_FLOOR", 3000))


def _width() -> int:
    return int(current_app.config.get("SHORT_CODE_WIDTH", 6))


def format_short_code(value: int, width: int | None = None) -> str:
    """Render value zero-padded to width. Raises AllocationConflict if it does not fit."""
    width = width or _width()
    if value < 0 or value >= 10 ** width:
        raise AllocationConflict(
            "Short-code pool exhausted",
            {"value": value, "width": width},
        )
    return f"{value:0{width}d}"


def current_max_short_code() -> int | None:
    """Highest numeric code currently held by a merchant, or None."""
    return (
        db.session.query(db.func.max(db.cast(Merchant.short_code, db.Integer)))
        .filter(Merchant.short_code.isnot(None))
        .scalar()
    )


def _seed_value() -> int:
    current_max = current_max_short_code()
    if current_max is None:
        return _floor()
    return max(_floor(), current_max + 1)


def _get_sequence() -> ShortCodeSequence | None:
    return db.session.query(ShortCodeSequence).filter_by(name=SEQUENCE_NAME).first()


def ensure_sequence() -> ShortCodeSequence:
    """
    Make sure the counter row exists, seeding it past any existing code.

    Runs (and commits) in its own transaction. Two callers seeding at once
    both try to insert; the loser hits the unique name and re-reads.
    """
    seq = _get_sequence()
    if seq is not None:
        return seq

    seq = ShortCodeSequence(name=SEQUENCE_NAME, next_value=_seed_value())
    db.session.add(seq)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        seq = _get_sequence()
        if seq is None:
            raise
    return seq


def resync_sequence() -> int:
    """
    Move the counter past the highest assigned code (never backwards).

    Commits. Returns the new next_value.
    """
    seq = ensure_sequence()
    target = _seed_value()
    if seq.next_value < target:
        db.session.execute(
            update(ShortCodeSequence)
            .where(
                ShortCodeSequence.name == SEQUENCE_NAME,
                ShortCodeSequence.next_value < target,
            )
            .values(next_value=target)
        )
        logger.warning("Short-code counter resynced to %s", target)
    db.session.commit()
    seq = _get_sequence()
    return seq.next_value


def allocate_short_code() -> str:
    """
    Take the next code inside the current transaction.

    The caller owns the transaction: it must commit (making the code
    permanent) or roll back (returning it to the pool).
    """
    stmt = (
        update(ShortCodeSequence)
        .where(ShortCodeSequence.name == SEQUENCE_NAME)
        .values(next_value=ShortCodeSequence.next_value + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(ShortCodeSequence.next_value)
            .filter_by(name=SEQUENCE_NAME)
            .scalar()
        )
        value = current - 1
    else:
        value = _seed_value()
        db.session.add(ShortCodeSequence(name=SEQUENCE_NAME, next_value=value + 1))
        db.session.flush()

    return format_short_code(value)


def peek_next_short_code() -> str:
    """The code the next final validation would receive (no side effects)."""
    seq = _get_sequence()
    value = seq.next_value if seq is not None else _seed_value()
    return format_short_code(value)


def sequence_status() -> dict:
    seq = _get_sequence()
    current_max = current_max_short_code()
    return {
        "name": SEQUENCE_NAME,
        "next_value": seq.next_value if seq is not None else None,
        "current_max": current_max,
        "floor": _floor(),
        "width": _width(),
        "in_sync": seq is None or current_max is None or seq.next_value > current_max,
    }

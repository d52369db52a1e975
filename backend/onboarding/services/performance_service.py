# Overview: Per-user workflow counters; side effects of transitions, never their cause.

from __future__ import annotations

import logging

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..extensions import db
from ..models import AgentPerformance, ProvisioningStatus, User

logger = logging.getLogger(__name__)

COUNTER_COLUMNS = frozenset({
    "enrollments",
    "validations",
    "rejections",
    "data_entry_created",
    "data_entry_failed",
})


def _increment(user_id: int, column: str) -> None:
    """
    UPDATE agent_performance SET <column> = <column> + 1, creating the row on
    first use. Commits its own transaction.
    """
    if column not in COUNTER_COLUMNS:
        raise ValueError(f"Unknown counter: {column}")

    col = getattr(AgentPerformance, column)
    stmt = (
        update(AgentPerformance)
        .where(AgentPerformance.user_id == user_id)
        .values({col: col + 1})
    )

    result = db.session.execute(stmt)
    if not result.rowcount:
        row = AgentPerformance(user_id=user_id)
        setattr(row, column, 1)
        db.session.add(row)
        try:
            db.session.flush()
        except IntegrityError:
            db.session.rollback()
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise
    db.session.commit()


def _safe_increment(user_id: int | None, column: str) -> bool:
    """Counter failures are logged and swallowed; the transition already committed."""
    if user_id is None:
        return False
    try:
        _increment(user_id, column)
        return True
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to increment %s for user %s", column, user_id)
        return False


def increment_enrolled(agent_id: int) -> bool:
    return _safe_increment(agent_id, "enrollments")


def increment_validated(agent_id: int) -> bool:
    return _safe_increment(agent_id, "validations")


def increment_rejected(agent_id: int) -> bool:
    return _safe_increment(agent_id, "rejections")


def increment_data_entry(agent_id: int, outcome: str) -> bool:
    outcome = getattr(outcome, "value", outcome)
    if outcome == ProvisioningStatus.CREATED.value:
        return _safe_increment(agent_id, "data_entry_created")
    if outcome == ProvisioningStatus.FAILED.value:
        return _safe_increment(agent_id, "data_entry_failed")
    logger.warning("Ignoring unknown data-entry outcome %r for user %s", outcome, agent_id)
    return False


def get_performance(user_id: int) -> dict:
    """Counters for one user; zeros when nothing has been recorded yet."""
    row = db.session.query(AgentPerformance).filter_by(user_id=user_id).first()
    if row is not None:
        return row.to_dict()
    user = db.session.get(User, user_id)
    return {
        "user_id": user_id,
        "matricule": user.matricule if user else None,
        **{column: 0 for column in sorted(COUNTER_COLUMNS)},
        "updated_at": None,
    }


def list_performance(user_ids: list[int] | None = None, role: str | None = None) -> list[dict]:
    """Counters for a set of users (by id and/or role), including users with no row yet."""
    query = db.session.query(User)
    if user_ids is not None:
        if not user_ids:
            return []
        query = query.filter(User.id.in_(user_ids))
    if role is not None:
        query = query.filter(User.role == getattr(role, "value", role))
    users = query.order_by(User.matricule.asc()).all()
    return [get_performance(user.id) for user in users]

# Overview: Activity log of authenticated mutating requests and login attempts.

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import ActivityLog

logger = logging.getLogger(__name__)

MUTATING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


def log_activity(
    action: str,
    user_id: int | None = None,
    matricule: str | None = None,
    status_code: int | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> ActivityLog | None:
    """
    Append an activity row in its own transaction.

    Never raises: a failure here is logged and the caller carries on.
    """
    entry = ActivityLog(
        user_id=user_id,
        matricule=matricule,
        action=action[:255],
        status_code=status_code,
        ip_address=ip_address,
        user_agent=(user_agent or "")[:512] or None,
    )
    try:
        db.session.add(entry)
        db.session.commit()
        return entry
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to write activity log for %s", action)
        return None


def should_log(method: str) -> bool:
    return method.upper() in MUTATING_METHODS


def list_activity(
    *,
    user_id: int | None = None,
    matricule: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[ActivityLog], int]:
    query = db.session.query(ActivityLog)
    if user_id is not None:
        query = query.filter(ActivityLog.user_id == user_id)
    if matricule:
        query = query.filter(ActivityLog.matricule == matricule)
    total = query.count()
    logs = (
        query.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
        .offset(max(0, offset))
        .limit(max(1, min(limit, 1000)))
        .all()
    )
    return logs, total

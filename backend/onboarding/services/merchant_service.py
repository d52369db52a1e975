# Overview: Role-scoped merchant queries (listings, detail, history, dashboard).

from __future__ import annotations

from ..errors import Forbidden, NotFound
from ..extensions import db
from ..models import Merchant, MerchantHistory, MerchantStatus, Role
from . import directory_service


def scoped_query(user):
    """
    Merchants the user may see:
    - AGENT: own submissions
    - SUPERVISOR: submissions of agents reporting to them
    - ADMIN: everything
    - CALL_CENTER_SUPERVISOR: finally validated merchants
    - DATA_ENTRY_AGENT: merchants dispatched to them
    """
    query = db.session.query(Merchant)
    role = user.role

    if role == Role.ADMIN.value:
        return query
    if role == Role.AGENT.value:
        return query.filter(Merchant.submitted_by_id == user.id)
    if role == Role.SUPERVISOR.value:
        team_ids = directory_service.team_ids_of(user.id)
        return query.filter(Merchant.submitted_by_id.in_(team_ids or [-1]))
    if role == Role.CALL_CENTER_SUPERVISOR.value:
        return query.filter(Merchant.status == MerchantStatus.FINALLY_VALIDATED.value)
    if role == Role.DATA_ENTRY_AGENT.value:
        return query.filter(Merchant.data_entry_agent_id == user.id)
    return query.filter(db.false())


def _apply_filters(query, *, status=None, search=None, submitted_by_id=None):
    if status:
        query = query.filter(Merchant.status == status)
    if submitted_by_id is not None:
        query = query.filter(Merchant.submitted_by_id == submitted_by_id)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            db.or_(
                Merchant.name.ilike(pattern),
                Merchant.manager_last_name.ilike(pattern),
                Merchant.manager_first_name.ilike(pattern),
                Merchant.contact.ilike(pattern),
            )
        )
    return query


def list_merchants(
    user,
    *,
    status: str | None = None,
    search: str | None = None,
    submitted_by_id: int | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Merchant], int]:
    """Returns (page, total) for the user's scope, newest first."""
    query = _apply_filters(
        scoped_query(user),
        status=status,
        search=search,
        submitted_by_id=submitted_by_id,
    )
    total = query.count()
    merchants = (
        query.order_by(Merchant.created_at.desc(), Merchant.id.desc())
        .offset(max(0, offset))
        .limit(max(1, min(limit, 500)))
        .all()
    )
    return merchants, total


def pending_queue(user) -> list[Merchant]:
    """What the user is expected to decide on next, oldest first."""
    if user.role == Role.ADMIN.value:
        status = MerchantStatus.SUPERVISOR_VALIDATED.value
    else:
        status = MerchantStatus.PENDING.value
    return (
        scoped_query(user)
        .filter(Merchant.status == status)
        .order_by(Merchant.created_at.asc(), Merchant.id.asc())
        .all()
    )


def get_merchant_for(user, merchant_id: int) -> Merchant:
    """Load a merchant the user may see. NotFound if missing, Forbidden if out of scope."""
    merchant = db.session.get(Merchant, merchant_id)
    if not merchant:
        raise NotFound("Merchant not found", {"merchant_id": merchant_id})
    visible = scoped_query(user).filter(Merchant.id == merchant_id).first()
    if visible is None:
        raise Forbidden("Merchant is outside your scope", {"merchant_id": merchant_id})
    return merchant


def history_of(user, merchant_id: int) -> list[MerchantHistory]:
    get_merchant_for(user, merchant_id)
    return (
        db.session.query(MerchantHistory)
        .filter_by(merchant_id=merchant_id)
        .order_by(MerchantHistory.occurred_at.asc(), MerchantHistory.id.asc())
        .all()
    )


def status_counts(user) -> dict[str, int]:
    rows = (
        scoped_query(user)
        .with_entities(Merchant.status, db.func.count(Merchant.id))
        .group_by(Merchant.status)
        .all()
    )
    counts = {status.value: 0 for status in MerchantStatus}
    counts.update({status: count for status, count in rows})
    return counts


def dashboard_stats(user) -> dict:
    counts = status_counts(user)
    pending = pending_queue(user)
    return {
        "total": sum(counts.values()),
        "by_status": counts,
        "pending": [m.to_dict(include_operators=False) for m in pending],
    }


def finally_validated_merchants() -> list[Merchant]:
    """Export source: every finally validated merchant in short-code order."""
    return (
        db.session.query(Merchant)
        .filter(Merchant.status == MerchantStatus.FINALLY_VALIDATED.value)
        .order_by(Merchant.short_code.asc())
        .all()
    )

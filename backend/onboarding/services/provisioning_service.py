# Overview: Provisioning hand-off of finally validated merchants to data-entry agents.

"""
Call-center supervisors dispatch a FINALLY_VALIDATED merchant to a data-entry
agent, who then records whether the merchant account was CREATED on the
mobile-money platform or FAILED (with a note).

Neither step touches status or short_code; both are recorded in the merchant
history and run under the same row locking as the validation transitions.
A FAILED merchant can be dispatched again; a CREATED one cannot.
"""

from __future__ import annotations

import logging

from ..errors import Conflict, Forbidden, OnboardingError, ValidationFailed
from ..extensions import db
from ..models import HistoryEvent, Merchant, MerchantStatus, ProvisioningStatus, Role
from ..permissions import role_has_permission
from ..time_utils import utcnow
from . import directory_service, performance_service
from .concurrency import begin_immediate, run_with_retry
from .lifecycle_service import load_merchant_for_update, record_history

logger = logging.getLogger(__name__)

FINALLY_VALIDATED = MerchantStatus.FINALLY_VALIDATED.value
OUTCOMES = (ProvisioningStatus.CREATED.value, ProvisioningStatus.FAILED.value)


def _run(op):
    try:
        return run_with_retry(op)
    except OnboardingError:
        db.session.rollback()
        raise


def dispatch(actor_id: int, merchant_id: int, data_entry_agent_id: int):
    """Assign a finally validated merchant to a data-entry agent."""

    def _op():
        begin_immediate()
        actor = directory_service.get_user(actor_id)
        merchant = load_merchant_for_update(merchant_id)

        if not role_has_permission(actor.role, "DISPATCH_PROVISIONING"):
            raise Forbidden(f"Role {actor.role} cannot dispatch merchants", {"role": actor.role})

        if data_entry_agent_id is None:
            raise ValidationFailed("data_entry_agent_id is required", {"field": "data_entry_agent_id"})
        target = directory_service.get_user(data_entry_agent_id)
        if directory_service.role_of(target.id) is not Role.DATA_ENTRY_AGENT or not target.is_active:
            raise ValidationFailed(
                "Target user is not an active data-entry agent",
                {"field": "data_entry_agent_id"},
            )

        if merchant.status != FINALLY_VALIDATED:
            raise Conflict(
                f"Merchant is {merchant.status}; only {FINALLY_VALIDATED} merchants can be dispatched",
                {"current_status": merchant.status},
            )
        if merchant.provisioning_status == ProvisioningStatus.CREATED.value:
            raise Conflict("Merchant is already provisioned", {"provisioning_status": merchant.provisioning_status})

        now = utcnow()
        merchant.data_entry_agent_id = target.id
        merchant.dispatched_at = now
        merchant.provisioning_status = None
        merchant.provisioning_note = None
        merchant.provisioned_at = None
        record_history(
            merchant, actor.id, HistoryEvent.DISPATCHED, merchant.status, merchant.status,
            reason=f"Assigned to {target.matricule}", occurred_at=now,
        )
        db.session.commit()
        return merchant

    merchant = _run(_op)
    logger.info("Merchant %s dispatched to user %s by user %s", merchant_id, data_entry_agent_id, actor_id)
    return merchant


def record_provisioning(actor_id: int, merchant_id: int, outcome: str, note: str | None = None):
    """The assigned data-entry agent records CREATED or FAILED (note required)."""
    outcome = (str(outcome or "")).strip().upper()
    note = (note or "").strip() or None

    def _op():
        begin_immediate()
        actor = directory_service.get_user(actor_id)
        merchant = load_merchant_for_update(merchant_id)

        if not role_has_permission(actor.role, "RECORD_PROVISIONING"):
            raise Forbidden(f"Role {actor.role} cannot record provisioning", {"role": actor.role})
        if merchant.data_entry_agent_id != actor.id:
            raise Forbidden("Merchant is not assigned to you", {"merchant_id": merchant.id})

        if outcome not in OUTCOMES:
            raise ValidationFailed(f"outcome must be one of: {', '.join(OUTCOMES)}", {"field": "outcome"})
        if outcome == ProvisioningStatus.FAILED.value and not note:
            raise ValidationFailed("A note is required when provisioning failed", {"field": "note"})

        if merchant.provisioning_status is not None:
            raise Conflict(
                f"Provisioning already recorded as {merchant.provisioning_status}",
                {"provisioning_status": merchant.provisioning_status},
            )

        now = utcnow()
        merchant.provisioning_status = outcome
        merchant.provisioning_note = note
        merchant.provisioned_at = now
        record_history(
            merchant, actor.id, HistoryEvent.PROVISIONED, merchant.status, merchant.status,
            reason=note or outcome, occurred_at=now,
        )
        db.session.commit()
        return merchant

    merchant = _run(_op)
    logger.info("Merchant %s provisioning %s by user %s", merchant_id, outcome, actor_id)

    performance_service.increment_data_entry(actor_id, outcome)
    return merchant


def queue_for(actor_id: int) -> list:
    """Merchants dispatched to a data-entry agent and not yet recorded."""
    return (
        db.session.query(Merchant)
        .filter(
            Merchant.data_entry_agent_id == actor_id,
            Merchant.provisioning_status.is_(None),
        )
        .order_by(Merchant.dispatched_at.asc(), Merchant.id.asc())
        .all()
    )

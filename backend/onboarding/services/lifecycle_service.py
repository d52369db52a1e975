# Overview: Merchant validation state machine; every transition is one unit of work.

"""
Merchant Validation Lifecycle

================================================================================
STATE MACHINE:
    (new) -> PENDING -> SUPERVISOR_VALIDATED -> FINALLY_VALIDATED
                |  ^            |
                v  |            v
             REJECTED        PENDING (admin send-back, reason kept)

    PENDING:              submitted by an agent, waiting for the supervisor
    SUPERVISOR_VALIDATED: pre-validated, waiting for an admin
    FINALLY_VALIDATED:    terminal; holds a short code (merchant + operators)
    REJECTED:             supervisor rejection; the submitting agent corrects it

RULES:
1. Edges and who may request them live in permissions.transitions
2. Guards run in a fixed order: NotFound, Forbidden, ValidationFailed, Conflict
3. Requesting the state a merchant is already in is a Conflict, not a no-op
4. Merchant, operators and the history row are written in one transaction
5. Performance counters are bumped after commit; their failure is logged only
================================================================================
"""

from __future__ import annotations

import logging
import math

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import (
    AllocationConflict,
    Conflict,
    Forbidden,
    NotFound,
    OnboardingError,
    ValidationFailed,
)
from ..extensions import db
from ..models import (
    HistoryEvent,
    IdDocumentType,
    Merchant,
    MerchantHistory,
    MerchantStatus,
    Operator,
    RejectionSource,
    Role,
)
from ..permissions import TERMINAL_STATUSES, allowed_targets, is_transition_allowed, sources_for
from ..time_utils import utcnow
from . import directory_service, performance_service, short_code_service
from .concurrency import begin_immediate, lock_for_update, run_with_retry

logger = logging.getLogger(__name__)

PENDING = MerchantStatus.PENDING.value
SUPERVISOR_VALIDATED = MerchantStatus.SUPERVISOR_VALIDATED.value
FINALLY_VALIDATED = MerchantStatus.FINALLY_VALIDATED.value
REJECTED = MerchantStatus.REJECTED.value

MERCHANT_REQUIRED_FIELDS = (
    "name",
    "sector",
    "commerce_type",
    "region",
    "city",
    "commune",
    "manager_last_name",
    "manager_first_name",
    "address",
    "contact",
)
MERCHANT_OPTIONAL_FIELDS = ("tax_id", "trade_register")
COORDINATE_FIELDS = ("latitude", "longitude")
EVIDENCE_FIELDS = ("id_front_url", "id_back_url", "passport_url", "shop_photo_url")
OPERATOR_REQUIRED_FIELDS = ("last_name", "first_name", "national_id", "phone")

CORRECTABLE_FIELDS = frozenset(
    MERCHANT_REQUIRED_FIELDS
    + MERCHANT_OPTIONAL_FIELDS
    + COORDINATE_FIELDS
    + EVIDENCE_FIELDS
    + ("id_document_type", "operators")
)

# Evidence each identity document needs besides the shop photo
DOCUMENT_EVIDENCE = {
    IdDocumentType.CNI.value: ("id_front_url",),
    IdDocumentType.RESIDENCE_PERMIT.value: ("id_front_url",),
    IdDocumentType.PASSPORT.value: ("passport_url",),
}

SUPERVISOR_DECISIONS = {
    "approve": SUPERVISOR_VALIDATED,
    "reject": REJECTED,
}

ADMIN_DECISIONS = {
    "final_approve": FINALLY_VALIDATED,
    "reject": PENDING,
}


# =============================================================================
# INPUT NORMALIZATION
# =============================================================================

def _clean(value):
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _coordinate(name: str, value):
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationFailed(f"{name} must be a number", {"field": name})
    limit = 90.0 if name == "latitude" else 180.0
    if not math.isfinite(number) or abs(number) > limit:
        raise ValidationFailed(f"{name} is out of range", {"field": name})
    return number


def _normalize_merchant_fields(data: dict, *, partial: bool = False) -> dict:
    """
    Clean business fields. With partial=True only the keys present are
    returned, but a present required field still may not be blank.
    """
    data = data or {}
    if not isinstance(data, dict):
        raise ValidationFailed("Merchant data must be an object", {"field": "merchant"})
    cleaned = {}
    missing = []

    for field in MERCHANT_REQUIRED_FIELDS:
        if partial and field not in data:
            continue
        value = _clean(data.get(field))
        if value is None:
            missing.append(field)
        cleaned[field] = value

    for field in MERCHANT_OPTIONAL_FIELDS:
        if partial and field not in data:
            continue
        cleaned[field] = _clean(data.get(field))

    for field in COORDINATE_FIELDS:
        if partial and field not in data:
            continue
        cleaned[field] = _coordinate(field, data.get(field))

    if not partial or "id_document_type" in data:
        doc_type = _clean(data.get("id_document_type"))
        doc_type = doc_type.upper() if doc_type else None
        if doc_type is None:
            missing.append("id_document_type")
        elif doc_type not in DOCUMENT_EVIDENCE:
            raise ValidationFailed(
                f"id_document_type must be one of: {', '.join(sorted(DOCUMENT_EVIDENCE))}",
                {"field": "id_document_type"},
            )
        cleaned["id_document_type"] = doc_type

    if missing:
        raise ValidationFailed("Missing required fields", {"missing": missing})
    return cleaned


def _normalize_evidence(urls: dict | None, *, partial: bool = False) -> dict:
    urls = urls or {}
    if not isinstance(urls, dict):
        raise ValidationFailed("Evidence must be an object of photo URLs", {"field": "evidence"})
    return {
        field: _clean(urls.get(field))
        for field in EVIDENCE_FIELDS
        if not partial or field in urls
    }


def _check_evidence(doc_type: str, evidence: dict) -> None:
    """Shop photo always; the document-specific photo(s) for doc_type."""
    missing = [
        field
        for field in ("shop_photo_url",) + DOCUMENT_EVIDENCE[doc_type]
        if not evidence.get(field)
    ]
    if missing:
        raise ValidationFailed("Missing evidence photos", {"missing": missing})


def _normalize_operators(operators) -> list[dict]:
    if not isinstance(operators, (list, tuple)) or not operators:
        raise ValidationFailed("At least one operator is required", {"field": "operators"})

    cleaned = []
    for index, op in enumerate(operators):
        if not isinstance(op, dict):
            raise ValidationFailed("Operator must be an object", {"index": index})
        row = {field: _clean(op.get(field)) for field in OPERATOR_REQUIRED_FIELDS}
        missing = [field for field, value in row.items() if value is None]
        if missing:
            raise ValidationFailed(
                "Missing required operator fields",
                {"index": index, "missing": missing},
            )
        cleaned.append(row)
    return cleaned


def _check_operator_uniqueness(operators: list[dict], *, merchant_id: int | None = None) -> None:
    """
    Duplicate national_id / phone, inside the payload or against the store,
    is a Conflict. Operators of merchant_id itself are ignored (resubmission).
    """
    for field in ("national_id", "phone"):
        values = [op[field] for op in operators]
        dupes = sorted({v for v in values if values.count(v) > 1})
        if dupes:
            raise Conflict(
                f"Duplicate operator {field} in submission",
                {"field": field, "values": dupes},
            )

    national_ids = [op["national_id"] for op in operators]
    phones = [op["phone"] for op in operators]
    query = db.session.query(Operator).filter(
        db.or_(Operator.national_id.in_(national_ids), Operator.phone.in_(phones))
    )
    if merchant_id is not None:
        query = query.filter(Operator.merchant_id != merchant_id)

    existing = query.all()
    if existing:
        taken_ids = sorted({op.national_id for op in existing if op.national_id in national_ids})
        taken_phones = sorted({op.phone for op in existing if op.phone in phones})
        raise Conflict(
            "Operator already registered",
            {"national_id": taken_ids, "phone": taken_phones},
        )


def _normalize_decision(decision, allowed: dict) -> str:
    key = (_clean(decision) or "").lower()
    if key not in allowed:
        raise ValidationFailed(
            f"decision must be one of: {', '.join(allowed)}",
            {"field": "decision"},
        )
    return key


# =============================================================================
# TRANSITION PLUMBING
# =============================================================================

def load_merchant_for_update(merchant_id: int) -> Merchant:
    merchant = (
        lock_for_update(db.session.query(Merchant).filter_by(id=merchant_id))
        .populate_existing()
        .first()
    )
    if not merchant:
        raise NotFound("Merchant not found", {"merchant_id": merchant_id})
    return merchant


def _require_role(actor, from_status, action: str) -> None:
    if not allowed_targets(actor.role, from_status):
        raise Forbidden(
            f"Role {actor.role} cannot {action}",
            {"role": actor.role},
        )


def _require_supervision(actor, merchant: Merchant) -> None:
    """Admins act on any merchant; supervisors only on their own agents' submissions."""
    if actor.role == Role.ADMIN.value:
        return
    supervisor = directory_service.get_supervisor_of(merchant.submitted_by_id)
    if supervisor is None or supervisor.id != actor.id:
        raise Forbidden(
            "Merchant was not submitted by an agent you supervise",
            {"merchant_id": merchant.id},
        )


def _require_transition(actor, merchant: Merchant, target: str) -> None:
    if not is_transition_allowed(actor.role, merchant.status, target):
        details = {
            "current_status": merchant.status,
            "requested_status": target,
            "allowed_from": sorted(s for s in sources_for(actor.role, target) if s),
        }
        if merchant.status in TERMINAL_STATUSES:
            details["terminal"] = True
        raise Conflict(f"Merchant is {merchant.status}; cannot move to {target}", details)


def record_history(
    merchant: Merchant,
    actor_id: int,
    event: HistoryEvent,
    from_status: str | None,
    to_status: str | None,
    reason: str | None = None,
    occurred_at=None,
) -> MerchantHistory:
    entry = MerchantHistory(
        merchant_id=merchant.id,
        actor_id=actor_id,
        event=event.value,
        from_status=from_status,
        to_status=to_status,
        reason=reason,
        short_code=merchant.short_code,
        occurred_at=occurred_at or utcnow(),
    )
    db.session.add(entry)
    return entry


def _commit_aggregate() -> None:
    """Commit; a unique operator violation surfacing here becomes a Conflict."""
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise Conflict("Operator national_id or phone already registered") from exc


def _run_transition(op):
    try:
        return run_with_retry(op)
    except OnboardingError:
        db.session.rollback()
        raise


# =============================================================================
# OPERATIONS
# =============================================================================

def submit_merchant(agent_id: int, merchant_data: dict, operators, evidence_urls: dict | None = None) -> Merchant:
    """
    Create a merchant in PENDING with its operators.

    Raises NotFound (agent), Forbidden (not an agent), ValidationFailed
    (missing field / operator / evidence) or Conflict (duplicate operator).
    """
    agent = directory_service.get_user(agent_id)
    _require_role(agent, None, "submit merchants")

    fields = _normalize_merchant_fields(merchant_data)
    evidence = _normalize_evidence(evidence_urls)
    _check_evidence(fields["id_document_type"], evidence)
    operator_rows = _normalize_operators(operators)

    _check_operator_uniqueness(operator_rows)

    def _op():
        now = utcnow()
        merchant = Merchant(
            **fields,
            **evidence,
            status=PENDING,
            submitted_by_id=agent.id,
            created_at=now,
        )
        for position, row in enumerate(operator_rows):
            merchant.operators.append(Operator(position=position, created_at=now, **row))
        db.session.add(merchant)
        try:
            db.session.flush()
        except IntegrityError as exc:
            db.session.rollback()
            raise Conflict("Operator national_id or phone already registered") from exc

        record_history(merchant, agent.id, HistoryEvent.CREATED, None, PENDING, occurred_at=now)
        _commit_aggregate()
        return merchant

    merchant = _run_transition(_op)
    logger.info("Merchant %s submitted by user %s", merchant.id, agent_id)

    performance_service.increment_enrolled(agent_id)
    return merchant


def supervisor_decide(supervisor_id: int, merchant_id: int, decision: str, reason: str | None = None) -> Merchant:
    """
    Pre-validate or reject a PENDING merchant.

    decision: "approve" -> SUPERVISOR_VALIDATED, "reject" -> REJECTED (reason required)
    """
    reason = _clean(reason)
    rejected_agent = {}

    def _op():
        begin_immediate()
        actor = directory_service.get_user(supervisor_id)
        merchant = load_merchant_for_update(merchant_id)

        _require_role(actor, PENDING, "pre-validate merchants")
        _require_supervision(actor, merchant)

        key = _normalize_decision(decision, SUPERVISOR_DECISIONS)
        target = SUPERVISOR_DECISIONS[key]
        if target == REJECTED and not reason:
            raise ValidationFailed("A reason is required to reject", {"field": "reason"})

        _require_transition(actor, merchant, target)

        now = utcnow()
        from_status = merchant.status
        if target == SUPERVISOR_VALIDATED:
            merchant.status = SUPERVISOR_VALIDATED
            merchant.rejection_reason = None
            merchant.rejection_source = None
            merchant.supervisor_validated_by_id = actor.id
            merchant.supervisor_validated_at = now
            record_history(merchant, actor.id, HistoryEvent.PRE_VALIDATED, from_status, target, occurred_at=now)
        else:
            merchant.status = REJECTED
            merchant.rejection_reason = reason
            merchant.rejection_source = (
                RejectionSource.ADMIN.value if actor.role == Role.ADMIN.value
                else RejectionSource.SUPERVISOR.value
            )
            record_history(merchant, actor.id, HistoryEvent.REJECTED, from_status, target, reason=reason, occurred_at=now)
            rejected_agent["id"] = merchant.submitted_by_id

        db.session.commit()
        return merchant

    merchant = _run_transition(_op)
    logger.info("Merchant %s -> %s by user %s", merchant_id, merchant.status, supervisor_id)

    if rejected_agent:
        performance_service.increment_rejected(rejected_agent["id"])
    return merchant


def correct_and_resubmit(agent_id: int, merchant_id: int, updated_fields: dict | None) -> Merchant:
    """
    Apply the submitting agent's corrections to a REJECTED merchant and put
    it back to PENDING.

    updated_fields may carry any business field, evidence URL,
    id_document_type and a full replacement "operators" list (operators are
    matched by national_id).
    """
    if updated_fields is not None and not isinstance(updated_fields, dict):
        raise ValidationFailed("Corrections must be an object of fields", {"field": "updated_fields"})
    updated_fields = dict(updated_fields or {})

    def _op():
        begin_immediate()
        actor = directory_service.get_user(agent_id)
        merchant = load_merchant_for_update(merchant_id)

        _require_role(actor, REJECTED, "resubmit merchants")
        if merchant.submitted_by_id != actor.id:
            raise Forbidden(
                "Only the submitting agent can correct this merchant",
                {"merchant_id": merchant.id},
            )

        unknown = sorted(set(updated_fields) - CORRECTABLE_FIELDS)
        if unknown:
            raise ValidationFailed("Fields cannot be corrected", {"fields": unknown})

        fields = _normalize_merchant_fields(updated_fields, partial=True)
        evidence = _normalize_evidence(updated_fields, partial=True)
        doc_type = fields.get("id_document_type", merchant.id_document_type)
        merged_evidence = {field: getattr(merchant, field) for field in EVIDENCE_FIELDS}
        merged_evidence.update(evidence)
        _check_evidence(doc_type, merged_evidence)

        operator_rows = None
        if "operators" in updated_fields:
            operator_rows = _normalize_operators(updated_fields["operators"])

        _require_transition(actor, merchant, PENDING)

        if operator_rows is not None:
            _check_operator_uniqueness(operator_rows, merchant_id=merchant.id)

        now = utcnow()
        for field, value in {**fields, **evidence}.items():
            setattr(merchant, field, value)
        if operator_rows is not None:
            _replace_operators(merchant, operator_rows, now)

        corrected_reason = merchant.rejection_reason
        merchant.status = PENDING
        merchant.rejection_reason = None
        merchant.rejection_source = None
        merchant.last_modified_by_id = actor.id
        merchant.last_modified_at = now

        record_history(
            merchant, actor.id, HistoryEvent.RESUBMITTED, REJECTED, PENDING,
            reason=corrected_reason, occurred_at=now,
        )
        _commit_aggregate()
        return merchant

    merchant = _run_transition(_op)
    logger.info("Merchant %s resubmitted by user %s", merchant_id, agent_id)
    return merchant


def _replace_operators(merchant: Merchant, rows: list[dict], now) -> None:
    """
    Update operators matched by national_id, drop the rest, then add new ones.

    Phones that change are first parked on a per-row placeholder and flushed,
    so operators of the same merchant can trade phone numbers.
    """
    by_national_id = {op.national_id: op for op in merchant.operators}
    keep = {row["national_id"]: row for row in rows}

    for op in list(merchant.operators):
        if op.national_id not in keep:
            merchant.operators.remove(op)
        elif op.phone != keep[op.national_id]["phone"]:
            op.phone = f"~{op.id}"
    db.session.flush()

    ordered = []
    for position, row in enumerate(rows):
        op = by_national_id.get(row["national_id"])
        if op is None:
            op = Operator(created_at=now, **row)
        else:
            op.last_name = row["last_name"]
            op.first_name = row["first_name"]
            op.phone = row["phone"]
        op.position = position
        ordered.append(op)
    merchant.operators[:] = ordered


def admin_decide(admin_id: int, merchant_id: int, decision: str, reason: str | None = None) -> Merchant:
    """
    Final-validate or send back a SUPERVISOR_VALIDATED merchant.

    decision: "final_approve" -> FINALLY_VALIDATED with a fresh short code,
              "reject" -> back to PENDING with an admin-authored reason.
    """
    reason = _clean(reason)
    if (_clean(decision) or "").lower() == "final_approve":
        return _final_validate(admin_id, merchant_id)

    def _op():
        begin_immediate()
        actor = directory_service.get_user(admin_id)
        merchant = load_merchant_for_update(merchant_id)

        _require_role(actor, SUPERVISOR_VALIDATED, "finally validate merchants")

        _normalize_decision(decision, ADMIN_DECISIONS)
        if not reason:
            raise ValidationFailed("A reason is required to reject", {"field": "reason"})

        _require_transition(actor, merchant, PENDING)

        now = utcnow()
        merchant.status = PENDING
        merchant.rejection_reason = reason
        merchant.rejection_source = RejectionSource.ADMIN.value
        record_history(
            merchant, actor.id, HistoryEvent.SENT_BACK, SUPERVISOR_VALIDATED, PENDING,
            reason=reason, occurred_at=now,
        )
        db.session.commit()
        return merchant

    merchant = _run_transition(_op)
    logger.info("Merchant %s sent back by user %s", merchant_id, admin_id)
    return merchant


def _final_validate(admin_id: int, merchant_id: int) -> Merchant:
    """
    SUPERVISOR_VALIDATED -> FINALLY_VALIDATED with short-code allocation.

    Code allocation, merchant, operators and history commit together. A
    unique violation on short_code rolls everything back; the counter is
    resynced and the whole transition retried up to SHORT_CODE_MAX_ATTEMPTS.
    """
    max_attempts = int(current_app.config.get("SHORT_CODE_MAX_ATTEMPTS", 3))

    def _op():
        begin_immediate()
        actor = directory_service.get_user(admin_id)
        merchant = load_merchant_for_update(merchant_id)

        _require_role(actor, SUPERVISOR_VALIDATED, "finally validate merchants")
        _require_transition(actor, merchant, FINALLY_VALIDATED)

        code = short_code_service.allocate_short_code()
        now = utcnow()

        merchant.status = FINALLY_VALIDATED
        merchant.short_code = code
        merchant.rejection_reason = None
        merchant.rejection_source = None
        merchant.final_validated_by_id = actor.id
        merchant.final_validated_at = now
        for op in merchant.operators:
            op.short_code = code

        record_history(
            merchant, actor.id, HistoryEvent.FINAL_VALIDATED, SUPERVISOR_VALIDATED, FINALLY_VALIDATED,
            occurred_at=now,
        )
        db.session.commit()
        return merchant

    for attempt in range(1, max_attempts + 1):
        try:
            merchant = _run_transition(_op)
        except IntegrityError as exc:
            db.session.rollback()
            logger.warning(
                "Short-code collision for merchant %s (attempt %d/%d): %s",
                merchant_id, attempt, max_attempts, exc.orig,
            )
            _run_transition(short_code_service.resync_sequence)
            continue

        logger.info("Merchant %s finally validated with short code %s", merchant_id, merchant.short_code)
        performance_service.increment_validated(merchant.submitted_by_id)
        return merchant

    raise AllocationConflict(
        "Could not allocate a unique short code, try again",
        {"merchant_id": merchant_id, "attempts": max_attempts},
    )

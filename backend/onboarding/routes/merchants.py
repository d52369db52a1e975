# backend/onboarding/routes/merchants.py
"""
Merchant onboarding API routes

Submission and the validation transitions:
- POST /api/merchants                              - Agent submits (-> PENDING)
- POST /api/merchants/:id/supervisor-decision      - approve (-> SUPERVISOR_VALIDATED) / reject (-> REJECTED)
- POST /api/merchants/:id/resubmit                 - Agent corrects a REJECTED merchant (-> PENDING)
- POST /api/merchants/:id/admin-decision           - final_approve (-> FINALLY_VALIDATED) / reject (-> PENDING)

Provisioning hand-off:
- POST /api/merchants/:id/dispatch                 - Call-center supervisor assigns a data-entry agent
- POST /api/merchants/:id/provisioning             - Data-entry agent records CREATED / FAILED

Reads (scoped to the caller's role):
- GET /api/merchants, /pending, /dashboard-stats, /:id, /:id/history

SECURITY:
- All routes require authentication
- Actor ids are taken from the authenticated session (g.current_user), NOT
  from the request body
- Transition routes leave authorization to the lifecycle service so that
  NotFound / Forbidden / ValidationFailed / Conflict come out in that order
"""

import json

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import OnboardingError, ValidationFailed, error_response
from ..models import MerchantStatus, Role
from ..models.enums import values_of
from ..services import evidence_service
from ..services import lifecycle_service
from ..services import merchant_service
from ..services import provisioning_service
from ..decorators import require_auth, require_any_permission, require_role


merchants_bp = Blueprint("merchants", __name__, url_prefix="/api/merchants")

MERCHANT_FIELDS = (
    lifecycle_service.MERCHANT_REQUIRED_FIELDS
    + lifecycle_service.MERCHANT_OPTIONAL_FIELDS
    + lifecycle_service.COORDINATE_FIELDS
    + ("id_document_type",)
)


def _json_body() -> dict:
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        raise ValidationFailed("Request body must be a JSON object")
    return data


def _parse_operators(raw):
    if isinstance(raw, str):
        try:
            return json.loads(raw)
        except ValueError:
            raise ValidationFailed("operators must be a JSON list", {"field": "operators"})
    return raw


def _submission_from_request():
    """
    Accept either JSON (evidence given as URLs) or multipart/form-data
    (evidence given as files, operators as a JSON string).

    Returns (merchant_data, operators, evidence_urls, stored_urls).
    """
    if request.files:
        form = request.form
        merchant_data = {field: form.get(field) for field in MERCHANT_FIELDS if field in form}
        operators = _parse_operators(form.get("operators"))
        stored = evidence_service.store_evidence_files(request.files)
        evidence = {field: form.get(field) for field in lifecycle_service.EVIDENCE_FIELDS if form.get(field)}
        evidence.update(stored)
        return merchant_data, operators, evidence, list(stored.values())

    data = _json_body()
    merchant_data = {field: data.get(field) for field in MERCHANT_FIELDS if field in data}
    evidence = data.get("evidence") or {
        field: data.get(field) for field in lifecycle_service.EVIDENCE_FIELDS
    }
    return merchant_data, data.get("operators"), evidence, []


def _parse_status_filter():
    status = request.args.get("status")
    if status:
        status = status.strip().upper()
        if status not in values_of(MerchantStatus):
            raise ValidationFailed(
                f"status must be one of: {', '.join(values_of(MerchantStatus))}",
                {"field": "status"},
            )
    return status or None


# =============================================================================
# TRANSITIONS
# =============================================================================

@merchants_bp.post("")
@require_auth
def submit_merchant_route():
    """
    Submit a new merchant (-> PENDING).

    Response:
        201 {"merchant": {...}}

    Error responses:
        400: Missing fields, operators or evidence
        403: Caller is not an agent
        409: Operator national_id or phone already registered
    """
    stored_urls = []
    try:
        merchant_data, operators, evidence, stored_urls = _submission_from_request()
        merchant = lifecycle_service.submit_merchant(
            g.current_user.id, merchant_data, operators, evidence
        )
        return jsonify({"merchant": merchant.to_dict()}), 201
    except OnboardingError as e:
        for url in stored_urls:
            evidence_service.delete_evidence(url)
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to submit merchant")
        return jsonify({"error": "Internal server error"}), 500


@merchants_bp.post("/<int:merchant_id>/supervisor-decision")
@require_auth
def supervisor_decision_route(merchant_id: int):
    """
    Pre-validate or reject a PENDING merchant.

    Request body:
        {"decision": "approve" | "reject", "reason": "..."}  // reason required to reject

    Error responses:
        403: Not the submitting agent's supervisor (admins may act on any merchant)
        404: Merchant not found
        400: Unknown decision / reject without reason
        409: Merchant is not PENDING
    """
    try:
        data = _json_body()
        merchant = lifecycle_service.supervisor_decide(
            g.current_user.id, merchant_id, data.get("decision"), data.get("reason")
        )
        return jsonify({"merchant": merchant.to_dict()}), 200
    except OnboardingError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record supervisor decision")
        return jsonify({"error": "Internal server error"}), 500


@merchants_bp.post("/<int:merchant_id>/resubmit")
@require_auth
def resubmit_route(merchant_id: int):
    """
    Correct a REJECTED merchant and send it back to PENDING.

    Request body: any correctable merchant field, evidence URL or a full
    "operators" list. Multipart requests may carry replacement photo files.

    Error responses:
        403: Not the submitting agent
        404: Merchant not found
        409: Merchant is not REJECTED, or an operator is already registered
    """
    stored_urls = []
    try:
        if request.files:
            updated = {k: v for k, v in request.form.items()}
            if "operators" in updated:
                updated["operators"] = _parse_operators(updated["operators"])
            stored = evidence_service.store_evidence_files(request.files)
            stored_urls = list(stored.values())
            updated.update(stored)
        else:
            updated = _json_body()

        merchant = lifecycle_service.correct_and_resubmit(g.current_user.id, merchant_id, updated)
        return jsonify({"merchant": merchant.to_dict()}), 200
    except OnboardingError as e:
        for url in stored_urls:
            evidence_service.delete_evidence(url)
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to resubmit merchant")
        return jsonify({"error": "Internal server error"}), 500


@merchants_bp.post("/<int:merchant_id>/admin-decision")
@require_auth
def admin_decision_route(merchant_id: int):
    """
    Final-validate (allocates the short code) or send back a SUPERVISOR_VALIDATED merchant.

    Request body:
        {"decision": "final_approve" | "reject", "reason": "..."}  // reason required to reject

    Error responses:
        403: Not an admin
        404: Merchant not found
        400: Unknown decision / reject without reason
        409: Merchant is not SUPERVISOR_VALIDATED (CONFLICT) or short-code
             allocation kept colliding (ALLOCATION_CONFLICT, retryable)
        503: Store unavailable (retryable)
    """
    try:
        data = _json_body()
        merchant = lifecycle_service.admin_decide(
            g.current_user.id, merchant_id, data.get("decision"), data.get("reason")
        )
        return jsonify({"merchant": merchant.to_dict()}), 200
    except OnboardingError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record admin decision")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# PROVISIONING HAND-OFF
# =============================================================================

@merchants_bp.post("/<int:merchant_id>/dispatch")
@require_auth
def dispatch_route(merchant_id: int):
    """
    Assign a FINALLY_VALIDATED merchant to a data-entry agent.

    Request body:
        {"data_entry_agent_id": 12}
    """
    try:
        data = _json_body()
        merchant = provisioning_service.dispatch(
            g.current_user.id, merchant_id, data.get("data_entry_agent_id")
        )
        return jsonify({"merchant": merchant.to_dict()}), 200
    except OnboardingError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to dispatch merchant")
        return jsonify({"error": "Internal server error"}), 500


@merchants_bp.post("/<int:merchant_id>/provisioning")
@require_auth
def provisioning_route(merchant_id: int):
    """
    Record the provisioning outcome of a dispatched merchant.

    Request body:
        {"outcome": "CREATED" | "FAILED", "note": "..."}  // note required on FAILED
    """
    try:
        data = _json_body()
        merchant = provisioning_service.record_provisioning(
            g.current_user.id, merchant_id, data.get("outcome"), data.get("note")
        )
        return jsonify({"merchant": merchant.to_dict()}), 200
    except OnboardingError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record provisioning")
        return jsonify({"error": "Internal server error"}), 500


@merchants_bp.get("/provisioning-queue")
@require_auth
@require_role(Role.DATA_ENTRY_AGENT)
def provisioning_queue_route():
    """Merchants dispatched to the caller and not yet recorded."""
    merchants = provisioning_service.queue_for(g.current_user.id)
    return jsonify({"merchants": [m.to_dict() for m in merchants]}), 200


# =============================================================================
# READS
# =============================================================================

@merchants_bp.get("")
@require_auth
def list_merchants_route():
    """
    List merchants visible to the caller.

    Query params:
    - status: PENDING | SUPERVISOR_VALIDATED | FINALLY_VALIDATED | REJECTED
    - search: matches name, manager names or contact
    - agent_id: only merchants submitted by this agent
    - limit (default 50), offset (default 0)
    """
    try:
        merchants, total = merchant_service.list_merchants(
            g.current_user,
            status=_parse_status_filter(),
            search=request.args.get("search"),
            submitted_by_id=request.args.get("agent_id", type=int),
            limit=request.args.get("limit", 50, type=int),
            offset=request.args.get("offset", 0, type=int),
        )
        return jsonify({
            "merchants": [m.to_dict() for m in merchants],
            "total": total,
        }), 200
    except OnboardingError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list merchants")
        return jsonify({"error": "Internal server error"}), 500


@merchants_bp.get("/pending")
@require_auth
@require_any_permission("PRE_VALIDATE_MERCHANT", "FINAL_VALIDATE_MERCHANT")
def pending_route():
    """
    Decision queue: PENDING merchants of the supervisor's team, or
    SUPERVISOR_VALIDATED merchants for admins. Oldest first.
    """
    merchants = merchant_service.pending_queue(g.current_user)
    return jsonify({"merchants": [m.to_dict() for m in merchants]}), 200


@merchants_bp.get("/dashboard-stats")
@require_auth
@require_any_permission("PRE_VALIDATE_MERCHANT", "FINAL_VALIDATE_MERCHANT")
def dashboard_stats_route():
    return jsonify(merchant_service.dashboard_stats(g.current_user)), 200


@merchants_bp.get("/<int:merchant_id>")
@require_auth
def get_merchant_route(merchant_id: int):
    try:
        merchant = merchant_service.get_merchant_for(g.current_user, merchant_id)
        return jsonify({"merchant": merchant.to_dict()}), 200
    except OnboardingError as e:
        return error_response(e)


@merchants_bp.get("/<int:merchant_id>/history")
@require_auth
def merchant_history_route(merchant_id: int):
    """Audit trail of the merchant, oldest first."""
    try:
        history = merchant_service.history_of(g.current_user, merchant_id)
        return jsonify({"history": [h.to_dict() for h in history]}), 200
    except OnboardingError as e:
        return error_response(e)

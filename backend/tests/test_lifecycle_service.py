"""
Merchant validation lifecycle tests.

Verifies:
- Submission validation (fields, operators, evidence, uniqueness)
- Supervisor pre-validation / rejection and team scoping
- Correction and resubmission by the submitting agent only
- Admin final validation (short code) and send-back
- Guard order: NotFound, Forbidden, ValidationFailed, Conflict
- Failed transitions change nothing
"""

import pytest
from sqlalchemy.exc import SQLAlchemyError

from onboarding.errors import Conflict, Forbidden, NotFound, ValidationFailed
from onboarding.extensions import db
from onboarding.models import Merchant, MerchantHistory, Operator, ShortCodeSequence
from onboarding.services import lifecycle_service, performance_service

from conftest import (
    evidence_payload,
    merchant_payload,
    operator_payload,
    submit,
    to_finally_validated,
    to_supervisor_validated,
)


def _merchant(merchant_id):
    return db.session.get(Merchant, merchant_id)


def _events(merchant_id):
    rows = (
        db.session.query(MerchantHistory)
        .filter_by(merchant_id=merchant_id)
        .order_by(MerchantHistory.id.asc())
        .all()
    )
    return [row.event for row in rows]


# =============================================================================
# SUBMISSION
# =============================================================================


class TestSubmitMerchant:

    def test_creates_pending_merchant_with_operators(self, agent):
        ops = [operator_payload(), operator_payload()]
        merchant_id = submit(agent, operators=ops, name="Boutique Salam")

        merchant = _merchant(merchant_id)
        assert merchant.status == "PENDING"
        assert merchant.name == "Boutique Salam"
        assert merchant.short_code is None
        assert merchant.submitted_by_id == agent.id
        assert [op.national_id for op in merchant.operators] == [o["national_id"] for o in ops]
        assert all(op.short_code is None for op in merchant.operators)
        assert _events(merchant_id) == ["CREATED"]

    def test_bumps_enrollment_counter(self, agent):
        submit(agent)
        submit(agent)
        assert performance_service.get_performance(agent.id)["enrollments"] == 2

    def test_missing_required_field(self, agent):
        data = merchant_payload()
        del data["city"]
        data["sector"] = "   "

        with pytest.raises(ValidationFailed) as exc:
            lifecycle_service.submit_merchant(agent.id, data, [operator_payload()], evidence_payload())

        assert set(exc.value.details["missing"]) == {"city", "sector"}
        assert db.session.query(Merchant).count() == 0

    def test_requires_an_operator(self, agent):
        with pytest.raises(ValidationFailed):
            lifecycle_service.submit_merchant(agent.id, merchant_payload(), [], evidence_payload())
        assert db.session.query(Merchant).count() == 0

    def test_operator_missing_phone(self, agent):
        op = operator_payload()
        del op["phone"]
        with pytest.raises(ValidationFailed) as exc:
            lifecycle_service.submit_merchant(agent.id, merchant_payload(), [op], evidence_payload())
        assert exc.value.details["missing"] == ["phone"]

    def test_cni_requires_front_photo(self, agent):
        with pytest.raises(ValidationFailed) as exc:
            lifecycle_service.submit_merchant(
                agent.id, merchant_payload(), [operator_payload()],
                {"shop_photo_url": "/uploads/merchants/shop.jpg"},
            )
        assert exc.value.details["missing"] == ["id_front_url"]

    def test_passport_requires_passport_photo(self, agent):
        with pytest.raises(ValidationFailed) as exc:
            lifecycle_service.submit_merchant(
                agent.id, merchant_payload(id_document_type="passport"), [operator_payload()],
                evidence_payload(),
            )
        assert exc.value.details["missing"] == ["passport_url"]

        merchant = lifecycle_service.submit_merchant(
            agent.id, merchant_payload(id_document_type="passport"), [operator_payload()],
            {"passport_url": "/uploads/merchants/p.jpg", "shop_photo_url": "/uploads/merchants/s.jpg"},
        )
        assert merchant.id_document_type == "PASSPORT"

    def test_shop_photo_always_required(self, agent):
        with pytest.raises(ValidationFailed) as exc:
            lifecycle_service.submit_merchant(
                agent.id, merchant_payload(), [operator_payload()],
                {"id_front_url": "/uploads/merchants/f.jpg"},
            )
        assert exc.value.details["missing"] == ["shop_photo_url"]

    def test_unknown_document_type(self, agent):
        with pytest.raises(ValidationFailed):
            submit(agent, id_document_type="DRIVING_LICENCE")

    def test_latitude_out_of_range(self, agent):
        with pytest.raises(ValidationFailed):
            submit(agent, latitude=123.0)

    def test_coordinates_optional(self, agent):
        merchant_id = submit(agent, latitude=None, longitude="")
        merchant = _merchant(merchant_id)
        assert merchant.latitude is None
        assert merchant.longitude is None

    def test_duplicate_phone_against_store(self, agent):
        submit(agent, operators=[operator_payload(phone="22211111111")])

        with pytest.raises(Conflict) as exc:
            submit(agent, operators=[operator_payload(phone="22211111111")])

        assert exc.value.details["phone"] == ["22211111111"]
        assert db.session.query(Merchant).count() == 1
        assert db.session.query(Operator).filter_by(phone="22211111111").count() == 1

    def test_duplicate_national_id_in_payload(self, agent):
        ops = [operator_payload(national_id="NNI-DUP"), operator_payload(national_id="NNI-DUP")]
        with pytest.raises(Conflict):
            submit(agent, operators=ops)
        assert db.session.query(Merchant).count() == 0

    def test_only_agents_submit(self, supervisor, admin):
        for user in (supervisor, admin):
            with pytest.raises(Forbidden):
                submit(user)
        assert db.session.query(Merchant).count() == 0

    def test_unknown_agent(self, db_session):
        with pytest.raises(NotFound):
            lifecycle_service.submit_merchant(
                999999, merchant_payload(), [operator_payload()], evidence_payload()
            )

    def test_forbidden_before_validation(self, supervisor):
        with pytest.raises(Forbidden):
            lifecycle_service.submit_merchant(supervisor.id, {}, [], {})


# =============================================================================
# SUPERVISOR DECISION
# =============================================================================


class TestSupervisorDecision:

    def test_approve(self, agent, supervisor):
        merchant_id = submit(agent)

        merchant = lifecycle_service.supervisor_decide(supervisor.id, merchant_id, "approve")

        assert merchant.status == "SUPERVISOR_VALIDATED"
        assert merchant.supervisor_validated_by_id == supervisor.id
        assert merchant.supervisor_validated_at is not None
        assert _events(merchant_id) == ["CREATED", "PRE_VALIDATED"]

    def test_reject_with_reason(self, agent, supervisor):
        merchant_id = submit(agent)

        merchant = lifecycle_service.supervisor_decide(
            supervisor.id, merchant_id, "reject", "Photo floue"
        )

        assert merchant.status == "REJECTED"
        assert merchant.rejection_reason == "Photo floue"
        assert merchant.rejection_source == "SUPERVISOR"
        assert _events(merchant_id) == ["CREATED", "REJECTED"]
        assert performance_service.get_performance(agent.id)["rejections"] == 1

    def test_admin_rejection_is_tagged_admin(self, agent, admin):
        merchant_id = submit(agent)

        merchant = lifecycle_service.supervisor_decide(admin.id, merchant_id, "reject", "Photo floue")

        assert merchant.status == "REJECTED"
        assert merchant.rejection_source == "ADMIN"
        assert _events(merchant_id) == ["CREATED", "REJECTED"]

    def test_reject_requires_reason(self, agent, supervisor):
        merchant_id = submit(agent)

        with pytest.raises(ValidationFailed):
            lifecycle_service.supervisor_decide(supervisor.id, merchant_id, "reject", "  ")

        assert _merchant(merchant_id).status == "PENDING"
        assert _events(merchant_id) == ["CREATED"]

    def test_unknown_decision(self, agent, supervisor):
        merchant_id = submit(agent)
        with pytest.raises(ValidationFailed):
            lifecycle_service.supervisor_decide(supervisor.id, merchant_id, "maybe")

    def test_other_team_forbidden(self, agent, other_supervisor):
        merchant_id = submit(agent)

        with pytest.raises(Forbidden):
            lifecycle_service.supervisor_decide(other_supervisor.id, merchant_id, "approve")

        assert _merchant(merchant_id).status == "PENDING"

    def test_agent_cannot_decide(self, agent, supervisor):
        merchant_id = submit(agent)
        with pytest.raises(Forbidden):
            lifecycle_service.supervisor_decide(agent.id, merchant_id, "approve")

    def test_admin_can_pre_validate_any_merchant(self, agent, admin):
        merchant_id = submit(agent)
        merchant = lifecycle_service.supervisor_decide(admin.id, merchant_id, "approve")
        assert merchant.status == "SUPERVISOR_VALIDATED"

    def test_already_validated_is_conflict(self, agent, supervisor):
        merchant_id = to_supervisor_validated(agent, supervisor)

        with pytest.raises(Conflict) as exc:
            lifecycle_service.supervisor_decide(supervisor.id, merchant_id, "approve")

        assert exc.value.details["current_status"] == "SUPERVISOR_VALIDATED"
        assert exc.value.details["allowed_from"] == ["PENDING"]
        assert "terminal" not in exc.value.details
        assert _events(merchant_id) == ["CREATED", "PRE_VALIDATED"]

    def test_missing_merchant(self, supervisor):
        with pytest.raises(NotFound):
            lifecycle_service.supervisor_decide(supervisor.id, 424242, "approve")

    def test_forbidden_precedes_conflict(self, agent, supervisor, other_supervisor):
        merchant_id = to_supervisor_validated(agent, supervisor)
        with pytest.raises(Forbidden):
            lifecycle_service.supervisor_decide(other_supervisor.id, merchant_id, "approve")

    def test_validation_precedes_conflict(self, agent, supervisor):
        merchant_id = to_supervisor_validated(agent, supervisor)
        with pytest.raises(ValidationFailed):
            lifecycle_service.supervisor_decide(supervisor.id, merchant_id, "reject")


# =============================================================================
# CORRECTION AND RESUBMISSION
# =============================================================================


class TestCorrectAndResubmit:

    def _rejected(self, agent, supervisor, **overrides):
        merchant_id = submit(agent, **overrides)
        lifecycle_service.supervisor_decide(supervisor.id, merchant_id, "reject", "Adresse incomplete")
        return merchant_id

    def test_resubmit_applies_corrections(self, agent, supervisor):
        merchant_id = self._rejected(agent, supervisor)

        merchant = lifecycle_service.correct_and_resubmit(
            agent.id, merchant_id, {"address": "Ilot K, lot 12", "tax_id": "NIF-9"}
        )

        assert merchant.status == "PENDING"
        assert merchant.address == "Ilot K, lot 12"
        assert merchant.tax_id == "NIF-9"
        assert merchant.rejection_reason is None
        assert merchant.rejection_source is None
        assert merchant.last_modified_by_id == agent.id

        history = (
            db.session.query(MerchantHistory)
            .filter_by(merchant_id=merchant_id)
            .order_by(MerchantHistory.id.asc())
            .all()
        )
        assert [h.event for h in history] == ["CREATED", "REJECTED", "RESUBMITTED"]
        assert history[-1].reason == "Adresse incomplete"

    def test_resubmit_without_changes(self, agent, supervisor):
        merchant_id = self._rejected(agent, supervisor)
        merchant = lifecycle_service.correct_and_resubmit(agent.id, merchant_id, {})
        assert merchant.status == "PENDING"

    def test_replaces_operators_by_national_id(self, agent, supervisor):
        keep = operator_payload()
        drop = operator_payload()
        merchant_id = self._rejected(agent, supervisor, operators=[keep, drop])

        added = operator_payload()
        changed = dict(keep, phone="36000001")
        merchant = lifecycle_service.correct_and_resubmit(
            agent.id, merchant_id, {"operators": [changed, added]}
        )

        ops = merchant.operators
        assert [op.national_id for op in ops] == [keep["national_id"], added["national_id"]]
        assert ops[0].phone == "36000001"
        assert db.session.query(Operator).filter_by(national_id=drop["national_id"]).count() == 0

    def test_operators_can_trade_phones(self, agent, supervisor):
        first = operator_payload()
        second = operator_payload()
        merchant_id = self._rejected(agent, supervisor, operators=[first, second])

        merchant = lifecycle_service.correct_and_resubmit(
            agent.id, merchant_id,
            {"operators": [dict(first, phone=second["phone"]), dict(second, phone=first["phone"])]},
        )

        assert merchant.status == "PENDING"
        phones = {op.national_id: op.phone for op in merchant.operators}
        assert phones == {first["national_id"]: second["phone"], second["national_id"]: first["phone"]}

    def test_corrections_must_be_an_object(self, agent, supervisor):
        merchant_id = self._rejected(agent, supervisor)

        with pytest.raises(ValidationFailed):
            lifecycle_service.correct_and_resubmit(agent.id, merchant_id, ["address"])

        assert _merchant(merchant_id).status == "REJECTED"

    def test_operator_conflict_with_other_merchant(self, agent, supervisor):
        taken = operator_payload()
        submit(agent, operators=[taken])
        merchant_id = self._rejected(agent, supervisor)

        with pytest.raises(Conflict):
            lifecycle_service.correct_and_resubmit(
                agent.id, merchant_id, {"operators": [operator_payload(phone=taken["phone"])]}
            )
        assert _merchant(merchant_id).status == "REJECTED"

    def test_only_submitting_agent(self, agent, supervisor, other_agent):
        merchant_id = self._rejected(agent, supervisor)

        with pytest.raises(Forbidden):
            lifecycle_service.correct_and_resubmit(other_agent.id, merchant_id, {"address": "x"})

        merchant = _merchant(merchant_id)
        assert merchant.status == "REJECTED"
        assert merchant.address == "Rue 42-110"

    def test_supervisor_cannot_resubmit(self, agent, supervisor):
        merchant_id = self._rejected(agent, supervisor)
        with pytest.raises(Forbidden):
            lifecycle_service.correct_and_resubmit(supervisor.id, merchant_id, {})

    def test_unknown_field(self, agent, supervisor):
        merchant_id = self._rejected(agent, supervisor)
        with pytest.raises(ValidationFailed):
            lifecycle_service.correct_and_resubmit(agent.id, merchant_id, {"status": "FINALLY_VALIDATED"})
        assert _merchant(merchant_id).status == "REJECTED"

    def test_blank_required_field(self, agent, supervisor):
        merchant_id = self._rejected(agent, supervisor)
        with pytest.raises(ValidationFailed):
            lifecycle_service.correct_and_resubmit(agent.id, merchant_id, {"name": ""})

    def test_switching_to_passport_needs_passport_photo(self, agent, supervisor):
        merchant_id = self._rejected(agent, supervisor)
        with pytest.raises(ValidationFailed):
            lifecycle_service.correct_and_resubmit(agent.id, merchant_id, {"id_document_type": "PASSPORT"})

        merchant = lifecycle_service.correct_and_resubmit(
            agent.id, merchant_id,
            {"id_document_type": "PASSPORT", "passport_url": "/uploads/merchants/p.jpg"},
        )
        assert merchant.id_document_type == "PASSPORT"

    def test_pending_merchant_is_conflict(self, agent):
        merchant_id = submit(agent)
        with pytest.raises(Conflict):
            lifecycle_service.correct_and_resubmit(agent.id, merchant_id, {})


# =============================================================================
# ADMIN DECISION
# =============================================================================


class TestAdminDecision:

    def test_final_approve_assigns_first_code(self, agent, supervisor, admin):
        merchant_id = to_supervisor_validated(agent, supervisor)

        merchant = lifecycle_service.admin_decide(admin.id, merchant_id, "final_approve")

        assert merchant.status == "FINALLY_VALIDATED"
        assert merchant.short_code == "003000"
        assert merchant.final_validated_by_id == admin.id
        assert all(op.short_code == "003000" for op in merchant.operators)

        last = (
            db.session.query(MerchantHistory)
            .filter_by(merchant_id=merchant_id)
            .order_by(MerchantHistory.id.desc())
            .first()
        )
        assert last.event == "FINAL_VALIDATED"
        assert last.short_code == "003000"
        assert performance_service.get_performance(agent.id)["validations"] == 1

    def test_codes_are_consecutive(self, agent, supervisor, admin):
        first = to_finally_validated(agent, supervisor, admin)
        second = to_finally_validated(agent, supervisor, admin)
        assert _merchant(first).short_code == "003000"
        assert _merchant(second).short_code == "003001"

    def test_second_final_approve_is_conflict(self, agent, supervisor, admin):
        merchant_id = to_finally_validated(agent, supervisor, admin)

        with pytest.raises(Conflict) as exc:
            lifecycle_service.admin_decide(admin.id, merchant_id, "final_approve")

        assert _merchant(merchant_id).short_code == "003000"
        assert exc.value.details["terminal"] is True
        assert exc.value.details["allowed_from"] == ["SUPERVISOR_VALIDATED"]
        assert _events(merchant_id).count("FINAL_VALIDATED") == 1

    def test_send_back_keeps_reason(self, agent, supervisor, admin):
        merchant_id = to_supervisor_validated(agent, supervisor)

        merchant = lifecycle_service.admin_decide(admin.id, merchant_id, "reject", "NIF manquant")

        assert merchant.status == "PENDING"
        assert merchant.rejection_reason == "NIF manquant"
        assert merchant.rejection_source == "ADMIN"
        assert merchant.short_code is None
        assert _events(merchant_id)[-1] == "SENT_BACK"

    def test_send_back_then_revalidate_clears_reason(self, agent, supervisor, admin):
        merchant_id = to_supervisor_validated(agent, supervisor)
        lifecycle_service.admin_decide(admin.id, merchant_id, "reject", "NIF manquant")

        merchant = lifecycle_service.supervisor_decide(supervisor.id, merchant_id, "approve")

        assert merchant.status == "SUPERVISOR_VALIDATED"
        assert merchant.rejection_reason is None

    def test_reject_requires_reason(self, agent, supervisor, admin):
        merchant_id = to_supervisor_validated(agent, supervisor)

        with pytest.raises(ValidationFailed):
            lifecycle_service.admin_decide(admin.id, merchant_id, "reject")

        assert _merchant(merchant_id).status == "SUPERVISOR_VALIDATED"

    def test_supervisor_cannot_final_approve(self, agent, supervisor):
        merchant_id = to_supervisor_validated(agent, supervisor)

        with pytest.raises(Forbidden):
            lifecycle_service.admin_decide(supervisor.id, merchant_id, "final_approve")

        merchant = _merchant(merchant_id)
        assert merchant.status == "SUPERVISOR_VALIDATED"
        assert merchant.short_code is None

    def test_pending_merchant_is_conflict(self, agent, admin):
        merchant_id = submit(agent)
        with pytest.raises(Conflict):
            lifecycle_service.admin_decide(admin.id, merchant_id, "final_approve")
        assert _merchant(merchant_id).short_code is None

    def test_unknown_decision(self, agent, supervisor, admin):
        merchant_id = to_supervisor_validated(agent, supervisor)
        with pytest.raises(ValidationFailed):
            lifecycle_service.admin_decide(admin.id, merchant_id, "approve", "why not")

    def test_missing_merchant(self, admin):
        with pytest.raises(NotFound):
            lifecycle_service.admin_decide(admin.id, 424242, "final_approve")
        assert db.session.query(ShortCodeSequence).count() == 0

    def test_forbidden_final_approve_does_not_seed_counter(self, agent, supervisor):
        merchant_id = to_supervisor_validated(agent, supervisor)
        with pytest.raises(Forbidden):
            lifecycle_service.admin_decide(supervisor.id, merchant_id, "final_approve")
        assert db.session.query(ShortCodeSequence).count() == 0


class TestTerminalState:

    def test_finally_validated_is_final(self, agent, supervisor, admin):
        merchant_id = to_finally_validated(agent, supervisor, admin)

        with pytest.raises(Conflict):
            lifecycle_service.supervisor_decide(supervisor.id, merchant_id, "reject", "late")
        with pytest.raises(Conflict):
            lifecycle_service.correct_and_resubmit(agent.id, merchant_id, {})
        with pytest.raises(Conflict):
            lifecycle_service.admin_decide(admin.id, merchant_id, "reject", "late")

        merchant = _merchant(merchant_id)
        assert merchant.status == "FINALLY_VALIDATED"
        assert merchant.short_code == "003000"


class TestCounterIsolation:

    def test_failed_transition_leaves_counters(self, agent, supervisor, other_supervisor):
        merchant_id = submit(agent)

        with pytest.raises(Forbidden):
            lifecycle_service.supervisor_decide(other_supervisor.id, merchant_id, "reject", "x")

        assert performance_service.get_performance(agent.id)["rejections"] == 0

    def test_counter_failure_does_not_undo_transition(self, agent, supervisor, monkeypatch):
        merchant_id = submit(agent)

        def broken(user_id, column):
            raise SQLAlchemyError("counter store down")

        monkeypatch.setattr(performance_service, "_increment", broken)

        merchant = lifecycle_service.supervisor_decide(supervisor.id, merchant_id, "reject", "Photo floue")

        assert merchant.status == "REJECTED"
        assert _events(merchant_id) == ["CREATED", "REJECTED"]

    def test_history_across_cycles(self, agent, supervisor, admin):
        merchant_id = submit(agent)
        lifecycle_service.supervisor_decide(supervisor.id, merchant_id, "reject", "first")
        lifecycle_service.correct_and_resubmit(agent.id, merchant_id, {})
        lifecycle_service.supervisor_decide(supervisor.id, merchant_id, "approve")
        lifecycle_service.admin_decide(admin.id, merchant_id, "reject", "second")
        lifecycle_service.supervisor_decide(supervisor.id, merchant_id, "approve")
        lifecycle_service.admin_decide(admin.id, merchant_id, "final_approve")

        assert _events(merchant_id) == [
            "CREATED", "REJECTED", "RESUBMITTED", "PRE_VALIDATED",
            "SENT_BACK", "PRE_VALIDATED", "FINAL_VALIDATED",
        ]
        perf = performance_service.get_performance(agent.id)
        assert (perf["enrollments"], perf["rejections"], perf["validations"]) == (1, 1, 1)

"""
Provisioning hand-off and performance counter tests.

Verifies:
- Call-center supervisors dispatch finally validated merchants to data-entry agents
- Only the assigned data-entry agent records CREATED / FAILED
- Counters per outcome and per-role performance listings
"""

import pytest

from onboarding.errors import Conflict, Forbidden, ValidationFailed
from onboarding.extensions import db
from onboarding.models import Merchant, MerchantHistory, Role
from onboarding.services import performance_service, provisioning_service
from onboarding.services.auth_service import create_user

from conftest import PASSWORD, submit, to_finally_validated


@pytest.fixture
def validated(agent, supervisor, admin):
    return to_finally_validated(agent, supervisor, admin)


class TestDispatch:

    def test_dispatch(self, validated, call_center, data_entry):
        merchant = provisioning_service.dispatch(call_center.id, validated, data_entry.id)

        assert merchant.data_entry_agent_id == data_entry.id
        assert merchant.dispatched_at is not None
        assert merchant.status == "FINALLY_VALIDATED"
        last = (
            db.session.query(MerchantHistory)
            .filter_by(merchant_id=validated)
            .order_by(MerchantHistory.id.desc())
            .first()
        )
        assert last.event == "DISPATCHED"
        assert last.reason == "Assigned to DE001"

    def test_requires_dispatch_capability(self, validated, agent, data_entry):
        with pytest.raises(Forbidden):
            provisioning_service.dispatch(agent.id, validated, data_entry.id)

    def test_only_finally_validated(self, agent, call_center, data_entry):
        merchant_id = submit(agent)
        with pytest.raises(Conflict):
            provisioning_service.dispatch(call_center.id, merchant_id, data_entry.id)

    def test_target_must_be_data_entry_agent(self, validated, call_center, agent):
        with pytest.raises(ValidationFailed):
            provisioning_service.dispatch(call_center.id, validated, agent.id)
        with pytest.raises(ValidationFailed):
            provisioning_service.dispatch(call_center.id, validated, None)


class TestRecordProvisioning:

    def test_created(self, validated, call_center, data_entry):
        provisioning_service.dispatch(call_center.id, validated, data_entry.id)

        merchant = provisioning_service.record_provisioning(data_entry.id, validated, "created")

        assert merchant.provisioning_status == "CREATED"
        assert merchant.provisioned_at is not None
        assert provisioning_service.queue_for(data_entry.id) == []
        assert performance_service.get_performance(data_entry.id)["data_entry_created"] == 1

    def test_failed_needs_note(self, validated, call_center, data_entry):
        provisioning_service.dispatch(call_center.id, validated, data_entry.id)

        with pytest.raises(ValidationFailed):
            provisioning_service.record_provisioning(data_entry.id, validated, "FAILED")

        merchant = provisioning_service.record_provisioning(
            data_entry.id, validated, "FAILED", "MSISDN deja utilise"
        )
        assert merchant.provisioning_note == "MSISDN deja utilise"
        assert performance_service.get_performance(data_entry.id)["data_entry_failed"] == 1

    def test_unknown_outcome(self, validated, call_center, data_entry):
        provisioning_service.dispatch(call_center.id, validated, data_entry.id)
        with pytest.raises(ValidationFailed):
            provisioning_service.record_provisioning(data_entry.id, validated, "DONE")

    def test_only_assigned_agent(self, validated, call_center, data_entry):
        other = create_user("DE002", PASSWORD, role=Role.DATA_ENTRY_AGENT.value)
        provisioning_service.dispatch(call_center.id, validated, data_entry.id)

        with pytest.raises(Forbidden):
            provisioning_service.record_provisioning(other.id, validated, "CREATED")
        assert db.session.get(Merchant, validated).provisioning_status is None

    def test_recorded_once(self, validated, call_center, data_entry):
        provisioning_service.dispatch(call_center.id, validated, data_entry.id)
        provisioning_service.record_provisioning(data_entry.id, validated, "CREATED")

        with pytest.raises(Conflict):
            provisioning_service.record_provisioning(data_entry.id, validated, "FAILED", "oops")

    def test_failed_can_be_redispatched(self, validated, call_center, data_entry):
        other = create_user("DE002", PASSWORD, role=Role.DATA_ENTRY_AGENT.value)
        provisioning_service.dispatch(call_center.id, validated, data_entry.id)
        provisioning_service.record_provisioning(data_entry.id, validated, "FAILED", "Compte bloque")

        merchant = provisioning_service.dispatch(call_center.id, validated, other.id)

        assert merchant.data_entry_agent_id == other.id
        assert merchant.provisioning_status is None
        assert [m.id for m in provisioning_service.queue_for(other.id)] == [validated]

    def test_created_cannot_be_redispatched(self, validated, call_center, data_entry):
        provisioning_service.dispatch(call_center.id, validated, data_entry.id)
        provisioning_service.record_provisioning(data_entry.id, validated, "CREATED")

        with pytest.raises(Conflict):
            provisioning_service.dispatch(call_center.id, validated, data_entry.id)


class TestProvisioningRoutes:

    def test_dispatch_and_record(self, client, login, validated, call_center, data_entry):
        resp = client.post(
            f"/api/merchants/{validated}/dispatch",
            json={"data_entry_agent_id": data_entry.id},
            headers=login(call_center),
        )
        assert resp.status_code == 200

        de_h = login(data_entry)
        queue = client.get("/api/merchants/provisioning-queue", headers=de_h).get_json()["merchants"]
        assert [m["id"] for m in queue] == [validated]

        listed = client.get("/api/merchants", headers=de_h).get_json()["merchants"]
        assert [m["id"] for m in listed] == [validated]

        resp = client.post(
            f"/api/merchants/{validated}/provisioning",
            json={"outcome": "CREATED"},
            headers=de_h,
        )
        assert resp.status_code == 200
        assert resp.get_json()["merchant"]["provisioning_status"] == "CREATED"

    def test_dispatch_forbidden_for_admin(self, client, login, validated, admin, data_entry):
        resp = client.post(
            f"/api/merchants/{validated}/dispatch",
            json={"data_entry_agent_id": data_entry.id},
            headers=login(admin),
        )
        assert resp.status_code == 403


class TestPerformanceRoutes:

    def test_supervisor_sees_team(self, client, login, agent, other_agent, supervisor):
        submit(agent)
        submit(other_agent)

        rows = client.get("/api/agents/performance", headers=login(supervisor)).get_json()["performance"]

        assert [r["matricule"] for r in rows] == ["AG001"]
        assert rows[0]["enrollments"] == 1

    def test_admin_filters_by_role(self, client, login, agent, other_agent, admin):
        submit(agent)

        rows = client.get("/api/agents/performance?role=agent", headers=login(admin)).get_json()["performance"]

        assert {r["matricule"]: r["enrollments"] for r in rows} == {"AG001": 1, "AG002": 0}

    def test_call_center_sees_data_entry(self, client, login, call_center, data_entry, agent):
        rows = client.get("/api/agents/performance", headers=login(call_center)).get_json()["performance"]
        assert [r["matricule"] for r in rows] == ["DE001"]

    def test_own_counters_start_at_zero(self, client, login, data_entry):
        perf = client.get("/api/agents/me/performance", headers=login(data_entry)).get_json()["performance"]
        assert perf["data_entry_created"] == 0
        assert perf["updated_at"] is None

"""
Status graph and role authorization table.

Verifies:
- Only the six workflow edges exist
- FINALLY_VALIDATED is terminal
- Each role reaches exactly the targets it is granted
"""

import pytest

from onboarding.models import MerchantStatus, Role
from onboarding.permissions import (
    LEGAL_EDGES,
    TERMINAL_STATUSES,
    allowed_targets,
    is_legal_edge,
    is_transition_allowed,
    sources_for,
)

P = MerchantStatus.PENDING.value
SV = MerchantStatus.SUPERVISOR_VALIDATED.value
FV = MerchantStatus.FINALLY_VALIDATED.value
R = MerchantStatus.REJECTED.value


class TestStatusGraph:

    def test_edges(self):
        assert LEGAL_EDGES == {
            (None, P), (P, SV), (P, R), (R, P), (SV, FV), (SV, P),
        }

    @pytest.mark.parametrize("frm,to", [
        (P, FV),
        (R, SV),
        (R, FV),
        (FV, P),
        (FV, R),
        (SV, R),
        (P, P),
        (SV, SV),
    ])
    def test_illegal_edges(self, frm, to):
        assert not is_legal_edge(frm, to)

    def test_finally_validated_is_terminal(self):
        assert TERMINAL_STATUSES == {FV}
        assert not any(frm == FV for frm, _ in LEGAL_EDGES)

    def test_accepts_enum_members(self):
        assert is_legal_edge(MerchantStatus.PENDING, MerchantStatus.REJECTED)


class TestRoleAuthorization:

    def test_agent(self):
        assert allowed_targets(Role.AGENT, None) == {P}
        assert allowed_targets(Role.AGENT, R) == {P}
        assert allowed_targets(Role.AGENT, P) == set()

    def test_supervisor(self):
        assert allowed_targets(Role.SUPERVISOR, P) == {SV, R}
        assert allowed_targets(Role.SUPERVISOR, SV) == set()
        assert allowed_targets(Role.SUPERVISOR, None) == set()

    def test_admin(self):
        assert allowed_targets(Role.ADMIN, P) == {SV, R}
        assert allowed_targets(Role.ADMIN, SV) == {FV, P}
        assert allowed_targets(Role.ADMIN, None) == set()

    @pytest.mark.parametrize("role", [Role.CALL_CENTER_SUPERVISOR, Role.DATA_ENTRY_AGENT])
    def test_provisioning_roles_request_nothing(self, role):
        for status in (None, P, SV, FV, R):
            assert allowed_targets(role, status) == set()

    def test_transition_needs_edge_and_grant(self):
        assert is_transition_allowed(Role.SUPERVISOR, P, SV)
        assert not is_transition_allowed(Role.SUPERVISOR, SV, FV)
        assert not is_transition_allowed(Role.AGENT, P, SV)
        assert not is_transition_allowed(Role.ADMIN, FV, P)

    def test_sources_for(self):
        assert sources_for(Role.AGENT, P) == {None, R}
        assert sources_for(Role.ADMIN, P) == {SV}
        assert sources_for(Role.SUPERVISOR, FV) == set()
        assert sources_for(Role.ADMIN, FV) == {SV}

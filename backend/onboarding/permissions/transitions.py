# Overview: Merchant status graph and the role x status -> target authorization table.

"""
The full legal transition matrix lives here and nowhere else.

LEGAL_EDGES is the status graph itself. TRANSITION_AUTHORIZATION narrows it
per role: (role, from_status) -> targets that role may request. A from_status
of None is the creation edge.

Record-level rules (supervisor must manage the submitter, agent must be the
submitter) are applied on top of this table by the lifecycle service.
"""

from ..models.enums import MerchantStatus, Role

PENDING = MerchantStatus.PENDING.value
SUPERVISOR_VALIDATED = MerchantStatus.SUPERVISOR_VALIDATED.value
FINALLY_VALIDATED = MerchantStatus.FINALLY_VALIDATED.value
REJECTED = MerchantStatus.REJECTED.value


LEGAL_EDGES = frozenset({
    (None, PENDING),                        # submission
    (PENDING, SUPERVISOR_VALIDATED),        # supervisor pre-validation
    (PENDING, REJECTED),                    # supervisor rejection
    (REJECTED, PENDING),                    # correction and resubmission
    (SUPERVISOR_VALIDATED, FINALLY_VALIDATED),  # admin final validation
    (SUPERVISOR_VALIDATED, PENDING),        # admin send-back
})

TERMINAL_STATUSES = frozenset({FINALLY_VALIDATED})


TRANSITION_AUTHORIZATION = {
    (Role.AGENT.value, None): frozenset({PENDING}),
    (Role.AGENT.value, REJECTED): frozenset({PENDING}),
    (Role.SUPERVISOR.value, PENDING): frozenset({SUPERVISOR_VALIDATED, REJECTED}),
    (Role.ADMIN.value, PENDING): frozenset({SUPERVISOR_VALIDATED, REJECTED}),
    (Role.ADMIN.value, SUPERVISOR_VALIDATED): frozenset({FINALLY_VALIDATED, PENDING}),
}


def _value(item):
    return getattr(item, "value", item)


def is_legal_edge(from_status, to_status) -> bool:
    return (_value(from_status), _value(to_status)) in LEGAL_EDGES


def allowed_targets(role, from_status) -> frozenset:
    """Targets the role may request from from_status (empty when none)."""
    return TRANSITION_AUTHORIZATION.get((_value(role), _value(from_status)), frozenset())


def is_transition_allowed(role, from_status, to_status) -> bool:
    """Edge exists in the status graph and the role is granted it."""
    return (
        is_legal_edge(from_status, to_status)
        and _value(to_status) in allowed_targets(role, from_status)
    )


def sources_for(role, to_status) -> frozenset:
    """Statuses from which the role may reach to_status; listed in Conflict details."""
    to_status = _value(to_status)
    role = _value(role)
    return frozenset(
        frm for (r, frm), targets in TRANSITION_AUTHORIZATION.items()
        if r == role and to_status in targets
    )

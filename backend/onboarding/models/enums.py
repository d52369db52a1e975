# Overview: Closed vocabularies stored as strings on workflow models.

from enum import Enum


class Role(str, Enum):
    """Actor tiers. Stored on users.role."""
    AGENT = "AGENT"
    SUPERVISOR = "SUPERVISOR"
    ADMIN = "ADMIN"
    CALL_CENTER_SUPERVISOR = "CALL_CENTER_SUPERVISOR"
    DATA_ENTRY_AGENT = "DATA_ENTRY_AGENT"


class MerchantStatus(str, Enum):
    PENDING = "PENDING"
    SUPERVISOR_VALIDATED = "SUPERVISOR_VALIDATED"
    FINALLY_VALIDATED = "FINALLY_VALIDATED"
    REJECTED = "REJECTED"


class RejectionSource(str, Enum):
    """Who authored the open rejection reason."""
    SUPERVISOR = "SUPERVISOR"
    ADMIN = "ADMIN"


class IdDocumentType(str, Enum):
    CNI = "CNI"
    RESIDENCE_PERMIT = "RESIDENCE_PERMIT"
    PASSPORT = "PASSPORT"


class HistoryEvent(str, Enum):
    CREATED = "CREATED"
    PRE_VALIDATED = "PRE_VALIDATED"
    REJECTED = "REJECTED"
    RESUBMITTED = "RESUBMITTED"
    FINAL_VALIDATED = "FINAL_VALIDATED"
    SENT_BACK = "SENT_BACK"
    DISPATCHED = "DISPATCHED"
    PROVISIONED = "PROVISIONED"


class ProvisioningStatus(str, Enum):
    CREATED = "CREATED"
    FAILED = "FAILED"


def values_of(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]

# Overview: Default permission grants per role.

from ..models.enums import Role


DEFAULT_ROLE_PERMISSIONS = {
    Role.AGENT.value: {
        "SUBMIT_MERCHANT",
        "RESUBMIT_MERCHANT",
        "VIEW_OWN_MERCHANTS",
        "VIEW_OWN_PERFORMANCE",
    },
    Role.SUPERVISOR.value: {
        "VIEW_TEAM_MERCHANTS",
        "PRE_VALIDATE_MERCHANT",
        "VIEW_OWN_PERFORMANCE",
        "VIEW_TEAM_PERFORMANCE",
        "EXPORT_MERCHANTS",
    },
    Role.ADMIN.value: {
        "VIEW_ALL_MERCHANTS",
        "VIEW_VALIDATED_MERCHANTS",
        "PRE_VALIDATE_MERCHANT",
        "FINAL_VALIDATE_MERCHANT",
        "VIEW_OWN_PERFORMANCE",
        "VIEW_ALL_PERFORMANCE",
        "VIEW_DATA_ENTRY_PERFORMANCE",
        "EXPORT_MERCHANTS",
        "VIEW_ACTIVITY_LOG",
    },
    Role.CALL_CENTER_SUPERVISOR.value: {
        "VIEW_VALIDATED_MERCHANTS",
        "DISPATCH_PROVISIONING",
        "VIEW_DATA_ENTRY_PERFORMANCE",
        "VIEW_OWN_PERFORMANCE",
    },
    Role.DATA_ENTRY_AGENT.value: {
        "RECORD_PROVISIONING",
        "VIEW_OWN_PERFORMANCE",
    },
}

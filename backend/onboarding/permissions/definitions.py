# Overview: All permission definitions organized by category.
# Each permission is defined as: (code, name, description, category)

from .categories import PermissionCategory


# -- MERCHANTS --

MERCHANT_PERMISSIONS = [
    (
        "SUBMIT_MERCHANT",
        "Submit Merchant",
        "Register a prospective merchant with operators and evidence photos",
        PermissionCategory.MERCHANTS,
    ),
    (
        "RESUBMIT_MERCHANT",
        "Resubmit Merchant",
        "Correct and resubmit a rejected merchant (own submissions only)",
        PermissionCategory.MERCHANTS,
    ),
    (
        "VIEW_OWN_MERCHANTS",
        "View Own Merchants",
        "View merchants submitted by the current agent",
        PermissionCategory.MERCHANTS,
    ),
    (
        "VIEW_TEAM_MERCHANTS",
        "View Team Merchants",
        "View merchants submitted by agents reporting to the current supervisor",
        PermissionCategory.MERCHANTS,
    ),
    (
        "VIEW_ALL_MERCHANTS",
        "View All Merchants",
        "View every merchant regardless of reporting chain",
        PermissionCategory.MERCHANTS,
    ),
    (
        "VIEW_VALIDATED_MERCHANTS",
        "View Validated Merchants",
        "View finally validated merchants awaiting provisioning",
        PermissionCategory.MERCHANTS,
    ),
]


# -- WORKFLOW --

WORKFLOW_PERMISSIONS = [
    (
        "PRE_VALIDATE_MERCHANT",
        "Pre-validate Merchant",
        "Approve or reject PENDING merchants",
        PermissionCategory.WORKFLOW,
    ),
    (
        "FINAL_VALIDATE_MERCHANT",
        "Final-validate Merchant",
        "Final-approve SUPERVISOR_VALIDATED merchants or send them back",
        PermissionCategory.WORKFLOW,
    ),
]


# -- PERFORMANCE --

PERFORMANCE_PERMISSIONS = [
    (
        "VIEW_OWN_PERFORMANCE",
        "View Own Performance",
        "View the current user's counters",
        PermissionCategory.PERFORMANCE,
    ),
    (
        "VIEW_TEAM_PERFORMANCE",
        "View Team Performance",
        "View counters of agents reporting to the current supervisor",
        PermissionCategory.PERFORMANCE,
    ),
    (
        "VIEW_ALL_PERFORMANCE",
        "View All Performance",
        "View counters of every user",
        PermissionCategory.PERFORMANCE,
    ),
    (
        "VIEW_DATA_ENTRY_PERFORMANCE",
        "View Data Entry Performance",
        "View provisioning counters of data-entry agents",
        PermissionCategory.PERFORMANCE,
    ),
]


# -- REPORTING --

REPORTING_PERMISSIONS = [
    (
        "EXPORT_MERCHANTS",
        "Export Merchants",
        "Download finally validated merchants and operators for provisioning",
        PermissionCategory.REPORTING,
    ),
]


# -- PROVISIONING --

PROVISIONING_PERMISSIONS = [
    (
        "DISPATCH_PROVISIONING",
        "Dispatch Provisioning",
        "Assign a finally validated merchant to a data-entry agent",
        PermissionCategory.PROVISIONING,
    ),
    (
        "RECORD_PROVISIONING",
        "Record Provisioning",
        "Record the provisioning outcome of an assigned merchant",
        PermissionCategory.PROVISIONING,
    ),
]


# -- SYSTEM --

SYSTEM_PERMISSIONS = [
    (
        "VIEW_ACTIVITY_LOG",
        "View Activity Log",
        "Read the request activity log",
        PermissionCategory.SYSTEM,
    ),
]


# Combined list of all permissions (preserves original ordering)
PERMISSION_DEFINITIONS = (
    MERCHANT_PERMISSIONS
    + WORKFLOW_PERMISSIONS
    + PERFORMANCE_PERMISSIONS
    + REPORTING_PERMISSIONS
    + PROVISIONING_PERMISSIONS
    + SYSTEM_PERMISSIONS
)

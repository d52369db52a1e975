# Overview: Permission category constants for grouping related permissions.


class PermissionCategory:
    """Permission categories for organization and UI display."""
    MERCHANTS = "MERCHANTS"
    WORKFLOW = "WORKFLOW"
    PERFORMANCE = "PERFORMANCE"
    REPORTING = "REPORTING"
    PROVISIONING = "PROVISIONING"
    SYSTEM = "SYSTEM"

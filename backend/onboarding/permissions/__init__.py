# Overview: Permission system package.
# Re-exports all public APIs for convenient imports.

from .categories import PermissionCategory
from .definitions import (
    PERMISSION_DEFINITIONS,
    MERCHANT_PERMISSIONS,
    WORKFLOW_PERMISSIONS,
    PERFORMANCE_PERMISSIONS,
    REPORTING_PERMISSIONS,
    PROVISIONING_PERMISSIONS,
    SYSTEM_PERMISSIONS,
)
from .roles import DEFAULT_ROLE_PERMISSIONS
from .transitions import (
    LEGAL_EDGES,
    TERMINAL_STATUSES,
    TRANSITION_AUTHORIZATION,
    allowed_targets,
    is_legal_edge,
    is_transition_allowed,
    sources_for,
)
from .helpers import (
    get_all_permission_codes,
    get_role_permissions,
    role_has_permission,
    validate_permission_code,
)

__all__ = [
    "PermissionCategory",
    "PERMISSION_DEFINITIONS",
    "MERCHANT_PERMISSIONS",
    "WORKFLOW_PERMISSIONS",
    "PERFORMANCE_PERMISSIONS",
    "REPORTING_PERMISSIONS",
    "PROVISIONING_PERMISSIONS",
    "SYSTEM_PERMISSIONS",
    "DEFAULT_ROLE_PERMISSIONS",
    "LEGAL_EDGES",
    "TERMINAL_STATUSES",
    "TRANSITION_AUTHORIZATION",
    "allowed_targets",
    "is_legal_edge",
    "is_transition_allowed",
    "sources_for",
    "get_all_permission_codes",
    "get_role_permissions",
    "role_has_permission",
    "validate_permission_code",
]

"""
Permission codes and role mappings.

Roles are fixed (admin, sub_admin, cashier) and map to a static set of
permission codes. Routes are gated with @require_permission(<code>); a few
services consult has_permission() directly for row-level decisions
(e.g., a cashier only sees their own sales).

Admin has all permissions.
"""

from retailpos.models.auth import ROLE_ADMIN, ROLE_SUB_ADMIN, ROLE_CASHIER


# =============================================================================
# PERMISSION CATEGORIES
# =============================================================================

class PermissionCategory:
    """Permission categories for organization."""
    CATALOG = "CATALOG"
    SALES = "SALES"
    SESSIONS = "SESSIONS"
    PARTIES = "PARTIES"
    USERS = "USERS"
    REPORTS = "REPORTS"


# =============================================================================
# PERMISSION DEFINITIONS
# =============================================================================

# Each permission is defined as: (code, name, description, category)
PERMISSION_DEFINITIONS = [
    # CATALOG
    (
        "VIEW_PRODUCTS",
        "View Products",
        "View products, categories and units",
        PermissionCategory.CATALOG,
    ),
    (
        "MANAGE_PRODUCTS",
        "Manage Products",
        "Create, edit and delete products, categories and units",
        PermissionCategory.CATALOG,
    ),
    # SALES
    (
        "CREATE_SALE",
        "Create Sale",
        "Complete sales at the POS",
        PermissionCategory.SALES,
    ),
    (
        "VIEW_SALES",
        "View Sales",
        "View sales history (cashiers see only their own)",
        PermissionCategory.SALES,
    ),
    (
        "VIEW_ALL_SALES",
        "View All Sales",
        "View sales made by any user",
        PermissionCategory.SALES,
    ),
    (
        "CANCEL_SALE",
        "Cancel Sale",
        "Cancel completed sales and restore stock",
        PermissionCategory.SALES,
    ),
    # SESSIONS
    (
        "MANAGE_OWN_SESSION",
        "Manage Own Session",
        "Open and close own cash session",
        PermissionCategory.SESSIONS,
    ),
    (
        "MANAGE_ANY_SESSION",
        "Manage Any Session",
        "Close or inspect any user's cash session",
        PermissionCategory.SESSIONS,
    ),
    (
        "VIEW_SESSION_STATS",
        "View Session Stats",
        "View per-session reconciliation report",
        PermissionCategory.REPORTS,
    ),
    (
        "VIEW_DASHBOARD",
        "View Dashboard",
        "View dashboard aggregates",
        PermissionCategory.REPORTS,
    ),
    # PARTIES
    (
        "VIEW_CUSTOMERS",
        "View Customers",
        "View customer list",
        PermissionCategory.PARTIES,
    ),
    (
        "MANAGE_CUSTOMERS",
        "Manage Customers",
        "Create, edit and delete customers",
        PermissionCategory.PARTIES,
    ),
    (
        "MANAGE_SUPPLIERS",
        "Manage Suppliers",
        "View, create, edit and delete suppliers",
        PermissionCategory.PARTIES,
    ),
    # USERS
    (
        "VIEW_USERS",
        "View Users",
        "View user accounts",
        PermissionCategory.USERS,
    ),
    (
        "MANAGE_USERS",
        "Manage Users",
        "Create, edit and deactivate user accounts",
        PermissionCategory.USERS,
    ),
]

ALL_PERMISSIONS = frozenset(code for code, _, _, _ in PERMISSION_DEFINITIONS)


# =============================================================================
# DEFAULT ROLE PERMISSIONS
# =============================================================================

DEFAULT_ROLE_PERMISSIONS = {
    ROLE_ADMIN: ALL_PERMISSIONS,
    ROLE_SUB_ADMIN: frozenset({
        "VIEW_DASHBOARD",
        "VIEW_PRODUCTS",
        "MANAGE_PRODUCTS",
        "CREATE_SALE",
        "VIEW_SALES",
        "VIEW_ALL_SALES",
        "CANCEL_SALE",
        "MANAGE_OWN_SESSION",
        "MANAGE_ANY_SESSION",
        "VIEW_SESSION_STATS",
        "VIEW_CUSTOMERS",
        "MANAGE_CUSTOMERS",
        "MANAGE_SUPPLIERS",
        "VIEW_USERS",
    }),
    ROLE_CASHIER: frozenset({
        "CREATE_SALE",
        "VIEW_SALES",
        "MANAGE_OWN_SESSION",
        "VIEW_PRODUCTS",
        "VIEW_CUSTOMERS",
    }),
}


def get_role_permissions(role: str) -> frozenset:
    return DEFAULT_ROLE_PERMISSIONS.get(role, frozenset())


def has_permission(user, permission_code: str) -> bool:
    """Inactive users have no permissions."""
    if user is None or not user.is_active:
        return False
    return permission_code in get_role_permissions(user.role)

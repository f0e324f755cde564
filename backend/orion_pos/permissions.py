"""
Permission codes and role mappings.

Roles are fixed (admin, cashier); each role maps to a set of permission codes.
Categories group related permissions for UI display. Admin has all of them.
"""


class PermissionCategory:
    """Permission categories for organization."""
    INVENTORY = "INVENTORY"
    SALES = "SALES"
    CLIENTS = "CLIENTS"
    TREASURY = "TREASURY"
    USERS = "USERS"
    SYSTEM = "SYSTEM"


# Each permission is defined as: (code, description, category)
PERMISSION_DEFINITIONS = [
    ("VIEW_PRODUCTS", "View the product catalog and categories", PermissionCategory.INVENTORY),
    ("MANAGE_PRODUCTS", "Create, edit and delete products", PermissionCategory.INVENTORY),
    ("RESTOCK_PRODUCTS", "Quick-restock a product", PermissionCategory.INVENTORY),
    ("VIEW_COSTS", "See purchase prices", PermissionCategory.INVENTORY),
    ("VIEW_STOCK_MOVEMENTS", "View the stock movement log", PermissionCategory.INVENTORY),
    ("MANAGE_STOCK_MOVEMENTS", "Record and delete manual stock movements", PermissionCategory.INVENTORY),
    ("VIEW_SALES", "View sales and invoices", PermissionCategory.SALES),
    ("CREATE_SALE", "Check out a cart", PermissionCategory.SALES),
    ("DELETE_SALE", "Delete a sale and restore its stock", PermissionCategory.SALES),
    ("MANAGE_CLIENTS", "Create, view and edit clients", PermissionCategory.CLIENTS),
    ("DELETE_CLIENTS", "Delete clients", PermissionCategory.CLIENTS),
    ("VIEW_DASHBOARD", "View dashboard statistics and charts", PermissionCategory.TREASURY),
    ("MANAGE_TREASURY", "Manage expenses and financial goals", PermissionCategory.TREASURY),
    ("MANAGE_USERS", "Create, edit and delete staff accounts", PermissionCategory.USERS),
    ("MANAGE_CONFIG", "Edit company settings", PermissionCategory.SYSTEM),
]

ALL_PERMISSION_CODES = frozenset(code for code, _, _ in PERMISSION_DEFINITIONS)

DEFAULT_ROLE_PERMISSIONS = {
    "admin": ALL_PERMISSION_CODES,
    "cashier": frozenset({
        "VIEW_PRODUCTS",
        "RESTOCK_PRODUCTS",
        "MANAGE_CLIENTS",
        "VIEW_SALES",
        "CREATE_SALE",
        "VIEW_STOCK_MOVEMENTS",
    }),
}


def get_role_permissions(role: str | None) -> frozenset:
    return DEFAULT_ROLE_PERMISSIONS.get(role or "", frozenset())


def has_permission(user, permission_code: str) -> bool:
    if user is None or not user.is_active:
        return False
    return permission_code in get_role_permissions(user.role)


def validate_permission_code(code: str) -> bool:
    return code in ALL_PERMISSION_CODES

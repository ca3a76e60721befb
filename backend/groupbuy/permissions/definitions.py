# Overview: All permission definitions organized by category.
# Each permission is defined as: (code, name, description, category)

from .categories import PermissionCategory


# -- CATALOG --

CATALOG_PERMISSIONS = [
    (
        "MANAGE_PRODUCTS",
        "Manage Products",
        "Create, edit, deactivate and delete catalog products",
        PermissionCategory.CATALOG,
    ),
]


# -- BATCHES --

BATCH_PERMISSIONS = [
    (
        "MANAGE_GROUP_BUY_BATCHES",
        "Manage Group Buys",
        "Create group-buy batches, set product targets and move batch status",
        PermissionCategory.BATCHES,
    ),
    (
        "MANAGE_SUB_GROUP_BATCHES",
        "Manage Sub-Group Batches",
        "Create and run sub-group batches for hosted regions",
        PermissionCategory.BATCHES,
    ),
]


# -- ORDERS --

ORDER_PERMISSIONS = [
    (
        "VIEW_ALL_ORDERS",
        "View All Orders",
        "List and filter every order in the system",
        PermissionCategory.ORDERS,
    ),
    (
        "VIEW_HOSTED_ORDERS",
        "View Hosted Orders",
        "List orders placed against batches the user owns",
        PermissionCategory.ORDERS,
    ),
    (
        "UPDATE_ORDER_STATUS",
        "Update Order Status",
        "Advance order and payment status, including bulk updates",
        PermissionCategory.ORDERS,
    ),
    (
        "VIEW_OWN_ORDERS",
        "View Own Orders",
        "View the signed-in user's order history",
        PermissionCategory.ORDERS,
    ),
]


# -- REGIONS --

REGION_PERMISSIONS = [
    (
        "MANAGE_REGIONS",
        "Manage Regions",
        "Create regions and assign hosts",
        PermissionCategory.REGIONS,
    ),
]


# -- USERS --

USER_PERMISSIONS = [
    (
        "MANAGE_USERS",
        "Manage Users",
        "List users, change roles, activate and deactivate accounts",
        PermissionCategory.USERS,
    ),
]


# -- SYSTEM --

SYSTEM_PERMISSIONS = [
    (
        "MANAGE_SETTINGS",
        "Manage Settings",
        "Toggle site feature flags",
        PermissionCategory.SYSTEM,
    ),
    (
        "VIEW_ANALYTICS",
        "View Analytics",
        "View dashboard statistics and batch performance",
        PermissionCategory.SYSTEM,
    ),
    (
        "VIEW_INTEGRITY",
        "View Integrity",
        "Run the batch/order invariant audit",
        PermissionCategory.SYSTEM,
    ),
]


# Combined list of all permissions
PERMISSION_DEFINITIONS = (
    CATALOG_PERMISSIONS
    + BATCH_PERMISSIONS
    + ORDER_PERMISSIONS
    + REGION_PERMISSIONS
    + USER_PERMISSIONS
    + SYSTEM_PERMISSIONS
)

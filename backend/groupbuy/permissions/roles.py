# Overview: Default role -> permission mappings.

# - admin: everything
# - host: runs sub-group batches for the regions they host
# - customer: own order history only

DEFAULT_ROLE_PERMISSIONS = {
    "admin": [
        "MANAGE_PRODUCTS",
        "MANAGE_GROUP_BUY_BATCHES",
        "MANAGE_SUB_GROUP_BATCHES",
        "VIEW_ALL_ORDERS",
        "VIEW_HOSTED_ORDERS",
        "UPDATE_ORDER_STATUS",
        "VIEW_OWN_ORDERS",
        "MANAGE_REGIONS",
        "MANAGE_USERS",
        "MANAGE_SETTINGS",
        "VIEW_ANALYTICS",
        "VIEW_INTEGRITY",
    ],

    "host": [
        "MANAGE_SUB_GROUP_BATCHES",
        "VIEW_HOSTED_ORDERS",
        "UPDATE_ORDER_STATUS",
        "VIEW_OWN_ORDERS",
        "VIEW_ANALYTICS",
    ],

    "customer": [
        "VIEW_OWN_ORDERS",
    ],
}

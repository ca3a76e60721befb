# Overview: Permission category constants for grouping related permissions.


class PermissionCategory:
    """Permission categories for organization and UI display."""
    CATALOG = "CATALOG"
    BATCHES = "BATCHES"
    ORDERS = "ORDERS"
    REGIONS = "REGIONS"
    USERS = "USERS"
    SYSTEM = "SYSTEM"

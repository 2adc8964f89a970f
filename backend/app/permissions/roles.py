# Overview: Default role -> permission mapping used by the built-in permission provider.

# WHY these mappings:
# - ADMIN: Full access, including signatures and voids
# - MANAGER: Oversees requests for the whole tenant but cannot sign
# - WAREHOUSE: Handles intake, write-offs and unit scans
# - USER: Creates and follows own requests

DEFAULT_ROLE_PERMISSIONS = {
    "admin": [
        "VIEW_REQUESTS",
        "CREATE_REQUESTS",
        "MANAGE_REQUESTS",
        "APPROVE_REQUESTS",
        "SIGN_REQUESTS",
        "RECORD_PICKUP",
        "VOID_SIGNATURES",
        "VIEW_INVENTORY",
        "MANAGE_PRODUCTS",
        "RECEIVE_INVENTORY",
        "ADJUST_INVENTORY",
        "MANAGE_UNITS",
    ],

    "manager": [
        "VIEW_REQUESTS",
        "CREATE_REQUESTS",
        "MANAGE_REQUESTS",
        "VIEW_INVENTORY",
        "MANAGE_PRODUCTS",
    ],

    "warehouse": [
        "VIEW_REQUESTS",
        "CREATE_REQUESTS",
        "VIEW_INVENTORY",
        "RECEIVE_INVENTORY",
        "ADJUST_INVENTORY",
        "MANAGE_UNITS",
    ],

    "user": [
        "VIEW_REQUESTS",
        "CREATE_REQUESTS",
        "VIEW_INVENTORY",
    ],
}

# Overview: All permission definitions organized by category.
# Each permission is defined as: (code, name, description, category)

from .categories import PermissionCategory


# -- REQUESTS --

REQUEST_PERMISSIONS = [
    (
        "VIEW_REQUESTS",
        "View Requests",
        "View own requests and their line items",
        PermissionCategory.REQUESTS,
    ),
    (
        "CREATE_REQUESTS",
        "Create Requests",
        "Create, submit and edit own requests",
        PermissionCategory.REQUESTS,
    ),
    (
        "MANAGE_REQUESTS",
        "Manage Requests",
        "View and edit requests created by anyone in the tenant",
        PermissionCategory.REQUESTS,
    ),
    (
        "APPROVE_REQUESTS",
        "Approve Requests",
        "Approve or reject submitted requests",
        PermissionCategory.REQUESTS,
    ),
]


# -- SIGNATURES --

SIGNATURE_PERMISSIONS = [
    (
        "SIGN_REQUESTS",
        "Sign Requests",
        "Record the approval signature on a request",
        PermissionCategory.SIGNATURES,
    ),
    (
        "RECORD_PICKUP",
        "Record Pickup",
        "Record the pickup signature (fulfils approved requests)",
        PermissionCategory.SIGNATURES,
    ),
    (
        "VOID_SIGNATURES",
        "Void Signatures",
        "Void approval or pickup signatures (reason required)",
        PermissionCategory.SIGNATURES,
    ),
]


# -- INVENTORY --

INVENTORY_PERMISSIONS = [
    (
        "VIEW_INVENTORY",
        "View Inventory",
        "View products, units and stock movements",
        PermissionCategory.INVENTORY,
    ),
    (
        "MANAGE_PRODUCTS",
        "Manage Products",
        "Create products",
        PermissionCategory.INVENTORY,
    ),
    (
        "RECEIVE_INVENTORY",
        "Receive Inventory",
        "Register intake invoices and incoming units",
        PermissionCategory.INVENTORY,
    ),
    (
        "ADJUST_INVENTORY",
        "Adjust Inventory",
        "Write off lost or scrapped stock",
        PermissionCategory.INVENTORY,
    ),
    (
        "MANAGE_UNITS",
        "Manage Units",
        "Scan units out and back in, send them to repair",
        PermissionCategory.INVENTORY,
    ),
]


PERMISSION_DEFINITIONS = (
    REQUEST_PERMISSIONS
    + SIGNATURE_PERMISSIONS
    + INVENTORY_PERMISSIONS
)

# Overview: Lookups over permission definitions and the default role map.

from .definitions import PERMISSION_DEFINITIONS
from .roles import DEFAULT_ROLE_PERMISSIONS


def get_all_permission_codes():
    return [perm[0] for perm in PERMISSION_DEFINITIONS]


def validate_permission_code(code):
    return code in get_all_permission_codes()


def get_role_permissions(role):
    """Default permission codes for a role; unknown roles get nothing."""
    return frozenset(DEFAULT_ROLE_PERMISSIONS.get(role, ()))

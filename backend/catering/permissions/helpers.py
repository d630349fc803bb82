# Overview: Lookups over the permission catalog.

from .definitions import PERMISSION_DEFINITIONS
from .roles import DEFAULT_ROLE_PERMISSIONS


# code -> (name, description, category)
_CATALOG = {code: (name, description, category) for code, name, description, category in PERMISSION_DEFINITIONS}


def get_permission_definition(code):
    """{code, name, description, category} for a permission code, or None."""
    entry = _CATALOG.get(code)
    if entry is None:
        return None
    name, description, category = entry
    return {"code": code, "name": name, "description": description, "category": category}


def validate_permission_code(code):
    return code in _CATALOG


def unknown_permission_codes(codes):
    """Codes not in the catalog, sorted; empty when all are known."""
    return sorted({code for code in codes if not validate_permission_code(code)})


def get_role_permissions(role):
    """Permission codes granted to a role (empty for unknown roles)."""
    return set(DEFAULT_ROLE_PERMISSIONS.get(role, []))

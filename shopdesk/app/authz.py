from __future__ import annotations

from typing import get_args

from .validation import RoleCode

ROLES: tuple[str, ...] = get_args(RoleCode)

# Explicit grant per role for every action; no implicit default.
_GRANTS: dict[str, dict[str, bool]] = {
    "products:manage":       {"manager": True, "supervisor": False, "sales": False},
    "invoices:create":       {"manager": True, "supervisor": True,  "sales": True},
    "invoices:delete":       {"manager": True, "supervisor": False, "sales": False},
    "invoices:void":         {"manager": True, "supervisor": False, "sales": False},
    "invoices:edit_payment": {"manager": True, "supervisor": False, "sales": False},
    "invoices:edit_info":    {"manager": True, "supervisor": True,  "sales": False},
    "invoices:discount":     {"manager": True, "supervisor": True,  "sales": False},
    "users:manage":          {"manager": True, "supervisor": False, "sales": False},
    "manager_routes:access": {"manager": True, "supervisor": False, "sales": False},
}

for _action, _by_role in _GRANTS.items():
    if set(_by_role) != set(ROLES):
        raise RuntimeError(f"grant table for {_action} must list exactly {ROLES}, got {sorted(_by_role)}")


def is_granted(role: str, action: str) -> bool:
    if role not in ROLES:
        raise ValueError(f"unknown role: {role!r}")
    return _GRANTS[action][role]


def can_manage_products(role: str) -> bool:
    return is_granted(role, "products:manage")


def can_create_invoices(role: str) -> bool:
    return is_granted(role, "invoices:create")


def can_delete_invoices(role: str) -> bool:
    return is_granted(role, "invoices:delete")


def can_void_invoices(role: str) -> bool:
    return is_granted(role, "invoices:void")


def can_edit_invoice_payments(role: str) -> bool:
    return is_granted(role, "invoices:edit_payment")


def can_edit_invoice_info(role: str) -> bool:
    return is_granted(role, "invoices:edit_info")


def can_add_discount(role: str) -> bool:
    return is_granted(role, "invoices:discount")


def can_manage_users(role: str) -> bool:
    return is_granted(role, "users:manage")


def can_access_manager_routes(role: str) -> bool:
    return is_granted(role, "manager_routes:access")

"""
Employee permission records and the role-aware capability check.

A permission record maps a module to its capabilities::

    {"products": {"can_view": True, "can_edit": False}, ...}

``can_edit`` implies ``can_view``. Only a literal ``True`` grants access.
Admins bypass records entirely; every role other than admin and employee
is denied. That dispatch lives in ``has_capability`` and nowhere else.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Mapping
from typing import Any

from app.core.errors import PermissionRecordError
from app.core.roles import Role

logger = logging.getLogger(__name__)

PERMISSION_MODULES: tuple[str, ...] = ("products", "categories", "schedules", "socials")

CAN_VIEW = "can_view"
CAN_EDIT = "can_edit"
PERMISSION_ACTIONS: tuple[str, ...] = (CAN_VIEW, CAN_EDIT)

PermissionRecord = dict[str, dict[str, bool]]


def can_perform(record: Any, module: str, action: str) -> bool:
    if not isinstance(record, Mapping):
        return False
    capabilities = record.get(module)
    if not isinstance(capabilities, Mapping):
        return False
    if action not in PERMISSION_ACTIONS:
        return False
    if action == CAN_VIEW and capabilities.get(CAN_EDIT) is True:
        return True
    return capabilities.get(action) is True


def parse_permission_record(raw: Any) -> Mapping[str, Any] | None:
    """Accept a record as a mapping, a JSON string, or nothing at all.

    Raises ``PermissionRecordError`` only for a string that is not a JSON
    object; absence is not an error.
    """
    if raw is None or raw == "":
        return None
    if isinstance(raw, Mapping):
        return raw
    if isinstance(raw, str):
        try:
            parsed = json.loads(raw)
        except ValueError as exc:
            raise PermissionRecordError() from exc
        if parsed is None:
            return None
        if not isinstance(parsed, Mapping):
            raise PermissionRecordError()
        return parsed
    raise PermissionRecordError()


# ── Role dispatch ───────────────────────────────────────────────────
def _admin_policy(permissions: Any, module: str, action: str) -> bool:
    return True


def _employee_policy(permissions: Any, module: str, action: str) -> bool:
    return can_perform(parse_permission_record(permissions), module, action)


def _deny_policy(permissions: Any, module: str, action: str) -> bool:
    return False


_ROLE_POLICIES: dict[Role, Callable[[Any, str, str], bool]] = {
    Role.ADMIN: _admin_policy,
    Role.EMPLOYEE: _employee_policy,
}


def has_capability(role: Any, permissions: Any, module: str, action: str) -> bool:
    try:
        resolved = Role(role)
    except ValueError:
        return False
    policy = _ROLE_POLICIES.get(resolved, _deny_policy)
    return policy(permissions, module, action)


# ── Record construction / storage mapping ──────────────────────────
def default_permissions() -> PermissionRecord:
    return {module: {CAN_VIEW: False, CAN_EDIT: False} for module in PERMISSION_MODULES}


def normalize_permissions(record: Mapping[str, Any] | None) -> PermissionRecord:
    """Full record with every module present; unknown keys are dropped."""
    result = default_permissions()
    if not record:
        return result
    for module in PERMISSION_MODULES:
        capabilities = record.get(module)
        if not isinstance(capabilities, Mapping):
            continue
        for action in PERMISSION_ACTIONS:
            result[module][action] = capabilities.get(action) is True
    return result


def permissions_to_columns(record: Mapping[str, Any] | None) -> dict[str, bool]:
    normalized = normalize_permissions(record)
    return {
        f"{module}_{action}": normalized[module][action]
        for module in PERMISSION_MODULES
        for action in PERMISSION_ACTIONS
    }


def permissions_from_row(row: Any) -> PermissionRecord:
    if row is None:
        return default_permissions()
    return {
        module: {action: bool(getattr(row, f"{module}_{action}")) for action in PERMISSION_ACTIONS}
        for module in PERMISSION_MODULES
    }

from __future__ import annotations

from enum import Enum
from typing import Optional

from pantry.errors import NotPermittedError


class Role(str, Enum):
    ADMIN = "admin"
    BRANCH_MANAGER = "branchManager"
    USER = "user"

    @property
    def display(self) -> str:
        return "Kitchen Incharge" if self is Role.BRANCH_MANAGER else self.value


class Permission(str, Enum):
    VIEW = "view"
    RECORD = "record"          # add purchases / consumption
    SWITCH_BRANCH = "switch_branch"
    EDIT = "edit"              # inline edit of aggregate rows
    DELETE = "delete"
    MERGE = "merge"
    EXPORT_XLSX = "export_xlsx"


ROLE_PERMISSIONS: dict[Role, frozenset] = {
    Role.ADMIN: frozenset(Permission),
    Role.BRANCH_MANAGER: frozenset({Permission.VIEW, Permission.RECORD}),
    Role.USER: frozenset({Permission.VIEW, Permission.SWITCH_BRANCH}),
}

DENIED_MESSAGES = {
    Permission.RECORD: "You are not allowed to add entries.",
    Permission.EDIT: "Only admin can edit rows.",
    Permission.DELETE: "Only admin can delete rows.",
    Permission.MERGE: "Only admin can merge duplicates.",
    Permission.EXPORT_XLSX: "Only admin can export.",
}


def role_from_value(value: Optional[str]) -> Role:
    # Missing or unknown roles are plain users.
    try:
        return Role(str(value or "").strip())
    except ValueError:
        return Role.USER


def can(role: Role, permission: Permission) -> bool:
    return permission in ROLE_PERMISSIONS[role]


def require(role: Role, permission: Permission) -> None:
    if not can(role, permission):
        raise NotPermittedError(DENIED_MESSAGES.get(permission, "Not permitted."))


def require_branch(role: Role, assigned_branch: Optional[str], branch: str) -> None:
    """Branch managers are pinned to the branch assigned to them."""
    if role is Role.BRANCH_MANAGER and assigned_branch and branch != assigned_branch:
        raise NotPermittedError(f"Kitchen Incharge can only work on branch {assigned_branch}.")

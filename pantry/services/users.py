from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from pantry.config import BRANCHES
from pantry.errors import ValidationError
from pantry.permissions import Permission, Role, can, role_from_value
from pantry.schema import USERS
from pantry.store import DocumentStore


@dataclass(frozen=True)
class Session:
    name: str
    role: Role
    branch: Optional[str] = None   # assigned branch, if any

    @property
    def display_role(self) -> str:
        return self.role.display

    @property
    def greeting(self) -> str:
        if self.role is Role.ADMIN:
            return f"Welcome, {self.name or 'Admin'}"
        if self.role is Role.BRANCH_MANAGER:
            return "Welcome Kitchen Incharge"
        return "Welcome"

    @property
    def can_switch_branch(self) -> bool:
        return can(self.role, Permission.SWITCH_BRANCH)

    def default_branch(self) -> Optional[str]:
        return self.branch if self.branch in BRANCHES else None


def list_users(store: DocumentStore) -> list[dict]:
    users = store.find(USERS)
    return sorted(users, key=lambda u: str(u.get("name", "")).lower())


def add_user(store: DocumentStore, *, name: str, role: str, branch: Optional[str] = None) -> int:
    name = str(name or "").strip()
    if not name:
        raise ValidationError("Name is required.")
    r = role_from_value(role)
    if r.value != str(role or "").strip():
        raise ValidationError("Invalid role. Use 'admin', 'branchManager' or 'user'.")
    branch = (branch or "").strip() or None
    if branch is not None and branch not in BRANCHES:
        raise ValidationError(f"Unknown branch: {branch}")
    if r is Role.BRANCH_MANAGER and branch is None:
        raise ValidationError("Kitchen Incharge needs an assigned branch.")
    if any(str(u.get("name", "")).lower() == name.lower() for u in list_users(store)):
        raise ValidationError(f"User {name} already exists.")

    return store.insert(USERS, {"name": name, "role": r.value, "branch": branch})


def session_for(user: dict) -> Session:
    return Session(
        name=str(user.get("name") or ""),
        role=role_from_value(user.get("role")),
        branch=user.get("branch") or None,
    )

from __future__ import annotations

import pytest

from pantry.config import resolve_settings
from pantry.errors import ValidationError
from pantry.permissions import Permission, Role, can, role_from_value
from pantry.services.demo_data import load_demo_data, upsert_reference_data, wipe_all
from pantry.services.users import Session, add_user, list_users, session_for
from pantry.schema import PURCHASE_AGGREGATES, USERS


def test_role_values():
    assert role_from_value("admin") is Role.ADMIN
    assert role_from_value("branchManager") is Role.BRANCH_MANAGER
    assert role_from_value(None) is Role.USER
    assert role_from_value("superuser") is Role.USER
    assert Role.BRANCH_MANAGER.display == "Kitchen Incharge"


def test_permission_sets():
    assert all(can(Role.ADMIN, p) for p in Permission)
    assert can(Role.BRANCH_MANAGER, Permission.RECORD)
    assert not can(Role.BRANCH_MANAGER, Permission.DELETE)
    assert not can(Role.BRANCH_MANAGER, Permission.SWITCH_BRANCH)
    assert not can(Role.USER, Permission.RECORD)
    assert can(Role.USER, Permission.VIEW)


def test_greetings():
    assert Session("Asha", Role.ADMIN).greeting == "Welcome, Asha"
    assert Session("", Role.ADMIN).greeting == "Welcome, Admin"
    assert Session("Ravi", Role.BRANCH_MANAGER, "Cochin").greeting == "Welcome Kitchen Incharge"
    assert Session("Guest", Role.USER).greeting == "Welcome"


def test_add_and_list_users(store):
    add_user(store, name="Ravi", role="branchManager", branch="Cochin")
    add_user(store, name="asha", role="admin")

    users = list_users(store)
    assert [u["name"] for u in users] == ["asha", "Ravi"]

    session = session_for(users[1])
    assert session.role is Role.BRANCH_MANAGER
    assert session.default_branch() == "Cochin"
    assert not session.can_switch_branch


@pytest.mark.parametrize(
    "kwargs, message",
    [
        ({"name": "", "role": "admin"}, "Name is required"),
        ({"name": "X", "role": "owner"}, "Invalid role"),
        ({"name": "X", "role": "user", "branch": "Mars"}, "Unknown branch"),
        ({"name": "X", "role": "branchManager"}, "assigned branch"),
    ],
)
def test_add_user_validation(store, kwargs, message):
    with pytest.raises(ValidationError, match=message):
        add_user(store, **kwargs)


def test_duplicate_user_names(store):
    add_user(store, name="Ravi", role="user")
    with pytest.raises(ValidationError, match="already exists"):
        add_user(store, name="ravi", role="admin")


def test_reference_data_is_idempotent(store):
    upsert_reference_data(store)
    upsert_reference_data(store)
    roles = sorted(u["role"] for u in list_users(store))
    assert roles == ["admin", "branchManager", "branchManager", "user"]


def test_demo_data_and_wipe(store):
    load_demo_data(store, branches=["Koramangala", "Cochin"])
    assert store.count(PURCHASE_AGGREGATES) == 10

    wipe_all(store)
    assert store.count(PURCHASE_AGGREGATES) == 0
    assert store.count(USERS) == 4


def test_settings_from_environment(tmp_path):
    settings = resolve_settings({}, {"PANTRY_LEDGER_DATA_DIR": str(tmp_path / "data"), "PANTRY_LEDGER_LOG_LEVEL": "debug"})
    assert settings.data_dir == (tmp_path / "data").resolve()
    assert settings.db_path.name == "ledger.db"
    assert settings.log_level == "DEBUG"
    assert settings.data_dir.is_dir()


def test_session_state_wins_over_environment(tmp_path):
    settings = resolve_settings(
        {"pantry_ledger_data_dir": str(tmp_path / "a")},
        {"PANTRY_LEDGER_DATA_DIR": str(tmp_path / "b")},
    )
    assert settings.data_dir == (tmp_path / "a").resolve()

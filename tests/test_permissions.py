# tests/test_permissions.py

"""
Tests for permission resolution and the policy admin endpoints.
"""

import pytest
from fastapi.testclient import TestClient

from conftest import FakeSupabase, auth_headers
from core.cache import TTLCache
from core.errors import PermissionDenied
from core.permission_helpers import PermissionResolver
from core.permissions import DEFAULT_PERMISSIONS
from core.policy_store import PolicyStore
from models.enums import MODULE_ACTIONS, Role


def make_resolver(db: FakeSupabase) -> PermissionResolver:
    return PermissionResolver(PolicyStore(db, cache=TTLCache()))


# -----------------------------------------------------
# Layer precedence
# -----------------------------------------------------
def test_defaults_apply_without_site_policy(fake_db):
    resolver = make_resolver(fake_db)

    assert resolver.resolve("site-1", "u1", "BIM", "RFA", "create_shop") is True
    assert resolver.resolve("site-1", "u1", "BIM", "RFA", "approve") is False


def test_override_grants_against_role_policy():
    db = FakeSupabase()
    db.add_site("site-1", user_overrides={"u1": {"RFA": {"approve": True}}})
    resolver = make_resolver(db)

    assert resolver.resolve("site-1", "u1", "PE", "RFA", "approve") is True
    # other users with the same role are unaffected
    assert resolver.resolve("site-1", "u2", "PE", "RFA", "approve") is False


def test_override_revokes_against_role_policy():
    db = FakeSupabase()
    db.add_site(
        "site-1",
        role_settings={"RFA": {"approve": ["CM"]}},
        user_overrides={"u1": {"RFA": {"approve": False}}},
    )
    resolver = make_resolver(db)

    assert resolver.resolve("site-1", "u1", "CM", "RFA", "approve") is False
    assert resolver.explain("site-1", "u1", "CM", "RFA", "approve") == (False, "user_override")


@pytest.mark.parametrize("module,action", [
    (module, action) for module, actions in MODULE_ACTIONS.items() for action in actions
])
def test_override_value_is_returned_exactly(module, action):
    for value in (True, False):
        db = FakeSupabase()
        db.add_site(
            "site-1",
            role_settings={str(module): {action: ["PE"] if not value else []}},
            user_overrides={"u1": {str(module): {action: value}}},
        )
        assert make_resolver(db).resolve("site-1", "u1", "PE", str(module), action) is value


def test_site_role_settings_replace_defaults():
    db = FakeSupabase()
    db.add_site("site-1", role_settings={"RFA": {"approve": ["PE"]}})
    resolver = make_resolver(db)

    assert resolver.resolve("site-1", "u1", "PE", "RFA", "approve") is True
    assert resolver.resolve("site-1", "u1", "CM", "RFA", "approve") is False
    # actions without an entry keep the defaults
    assert resolver.resolve("site-1", "u1", "BIM", "RFA", "create_shop") is True


def test_admin_bypasses_revoking_override():
    db = FakeSupabase()
    db.add_site("site-1", user_overrides={"admin-1": {"RFA": {"approve": False}}})
    resolver = make_resolver(db)

    assert resolver.explain("site-1", "admin-1", "Admin", "RFA", "approve") == (True, "admin_bypass")


@pytest.mark.parametrize("module,action", [
    (module, action) for module, actions in MODULE_ACTIONS.items() for action in actions
])
def test_admin_allowed_everything(fake_db, module, action):
    assert make_resolver(fake_db).resolve("site-1", None, Role.ADMIN.value, str(module), action) is True


@pytest.mark.parametrize("module,action", [
    ("RFA", "delete_everything"),
    ("BILLING", "create"),
])
def test_unknown_module_or_action_is_denied(fake_db, module, action):
    assert make_resolver(fake_db).resolve("site-1", "u1", "PE", module, action) is False


def test_defaults_match_compiled_table(fake_db):
    resolver = make_resolver(fake_db)
    for module, actions in DEFAULT_PERMISSIONS.items():
        for action, roles in actions.items():
            for role in Role.list():
                if role == Role.ADMIN.value:
                    continue
                assert resolver.resolve("site-1", None, role, module, action) is (role in roles)


# -----------------------------------------------------
# Failure handling
# -----------------------------------------------------
def test_missing_site_is_denied(fake_db):
    resolver = make_resolver(fake_db)
    assert resolver.explain("nowhere", "u1", "BIM", "RFA", "create_shop") == (False, "site_not_found")


def test_store_error_fails_closed(fake_db):
    fake_db.fail_tables["sites"] = "connection reset"
    resolver = make_resolver(fake_db)
    assert resolver.explain("site-1", "u1", "BIM", "RFA", "create_shop") == (False, "lookup_failed")


def test_malformed_policy_data_is_ignored():
    db = FakeSupabase()
    db.add_site(
        "site-1",
        role_settings={"RFA": "not-a-map"},
        user_overrides={"u1": {"RFA": {"approve": "yes"}}},
    )
    resolver = make_resolver(db)

    assert resolver.resolve("site-1", "u1", "BIM", "RFA", "create_shop") is True
    assert resolver.resolve("site-1", "u1", "PE", "RFA", "approve") is False


def test_require_names_role_and_action(fake_db):
    resolver = make_resolver(fake_db)
    with pytest.raises(PermissionDenied) as exc:
        resolver.require("site-1", "u1", "BIM", "RFA", "approve")

    assert "BIM" in exc.value.message
    assert "RFA.approve" in exc.value.message


def test_responsible_roles_prefers_site_policy():
    db = FakeSupabase()
    db.add_site("site-1", role_settings={"RFA": {"review": ["OE"]}})
    resolver = make_resolver(db)

    assert resolver.responsible_roles("site-1", "RFA", "review") == ["OE"]
    assert resolver.responsible_roles("site-1", "RFA", "approve") == DEFAULT_PERMISSIONS["RFA"]["approve"]


# -----------------------------------------------------
# Policy store writes
# -----------------------------------------------------
def test_override_write_invalidates_cached_policy(fake_db):
    store = PolicyStore(fake_db)
    resolver = PermissionResolver(store)

    assert resolver.resolve("site-1", "u1", "PE", "RFA", "approve") is False

    store.set_user_overrides("site-1", "u1", {"RFA": {"approve": True}})
    assert resolver.resolve("site-1", "u1", "PE", "RFA", "approve") is True

    store.set_user_overrides("site-1", "u1", {})
    assert resolver.resolve("site-1", "u1", "PE", "RFA", "approve") is False
    assert "u1" not in fake_db.rows("sites")[0]["user_overrides"]


# -----------------------------------------------------
# API
# -----------------------------------------------------
def test_check_endpoint_reports_deciding_layer(client: TestClient, fake_db):
    fake_db.add_user("bim-1", "BIM")

    response = client.get(
        "/permissions/check",
        params={"site_id": "site-1", "module": "RFA", "action": "create_shop"},
        headers=auth_headers("bim-1"),
    )
    assert response.status_code == 200
    body = response.json()
    assert body["allowed"] is True
    assert body["decided_by"] == "default"


def test_check_for_other_role_requires_admin(client: TestClient, fake_db):
    fake_db.add_user("bim-1", "BIM")

    response = client.get(
        "/permissions/check",
        params={"site_id": "site-1", "module": "RFA", "action": "approve", "role": "CM"},
        headers=auth_headers("bim-1"),
    )
    assert response.status_code == 403
    assert response.json()["error"] == "PermissionDenied"


def test_my_permissions_lists_every_action(client: TestClient, fake_db):
    fake_db.add_user("cm-1", "CM")

    response = client.get("/permissions/me", params={"site_id": "site-1"}, headers=auth_headers("cm-1"))
    assert response.status_code == 200
    permissions = response.json()["permissions"]
    assert permissions["RFA"]["approve"] is True
    assert permissions["RFA"]["create_shop"] is False
    assert set(permissions["WORK_REQUEST"]) == set(MODULE_ACTIONS["WORK_REQUEST"])


def test_admin_sets_override_through_api(client: TestClient, fake_db):
    fake_db.add_user("admin-1", "Admin")
    fake_db.add_user("pe-1", "PE")

    response = client.put(
        "/sites/site-1/overrides/pe-1",
        json={"overrides": {"RFA": {"approve": True}}},
        headers=auth_headers("admin-1"),
    )
    assert response.status_code == 200

    check = client.get(
        "/permissions/check",
        params={"site_id": "site-1", "module": "RFA", "action": "approve"},
        headers=auth_headers("pe-1"),
    )
    assert check.json()["allowed"] is True
    assert check.json()["decided_by"] == "user_override"


def test_override_with_unknown_action_is_rejected(client: TestClient, fake_db):
    fake_db.add_user("admin-1", "Admin")

    response = client.put(
        "/sites/site-1/overrides/pe-1",
        json={"overrides": {"RFA": {"publish": True}}},
        headers=auth_headers("admin-1"),
    )
    assert response.status_code == 422


def test_role_settings_require_admin(client: TestClient, fake_db):
    fake_db.add_user("cm-1", "CM")

    response = client.put(
        "/sites/site-1/role-settings",
        json={"role_settings": {"RFA": {"approve": ["CM"]}}},
        headers=auth_headers("cm-1"),
    )
    assert response.status_code == 403


def test_role_settings_reject_unknown_role(client: TestClient, fake_db):
    fake_db.add_user("admin-1", "Admin")

    response = client.put(
        "/sites/site-1/role-settings",
        json={"role_settings": {"RFA": {"approve": ["FM"]}}},
        headers=auth_headers("admin-1"),
    )
    assert response.status_code == 422

from __future__ import annotations

from types import SimpleNamespace

import pytest

from exchange_admin.exceptions import Forbidden
from exchange_admin.models.permission import Permission, Resource, RolePermission, UserPermissions
from exchange_admin.services import permission_service


def make_permissions(role: str = "ADMIN", **entries: list[str]) -> UserPermissions:
    return UserPermissions(
        user_id="u-1",
        role=role,
        roles=[role],
        permissions=[RolePermission(resource=resource, permissions=actions) for resource, actions in entries.items()],
    )


def make_role(name: str, **entries: list[str]) -> SimpleNamespace:
    return SimpleNamespace(
        name=name,
        permissions=[RolePermission(resource=resource, permissions=actions) for resource, actions in entries.items()],
    )


@pytest.mark.unit
def test_missing_permissions_deny() -> None:
    assert permission_service.has_permission(None, Resource.ROLES, Permission.READ) is False


@pytest.mark.unit
def test_unknown_resource_or_action_deny() -> None:
    user_permissions = make_permissions(roles=["manage"])

    assert permission_service.has_permission(user_permissions, "bogus", "read") is False
    assert permission_service.has_permission(user_permissions, "roles", "approve") is False


@pytest.mark.unit
def test_resource_without_entry_denies() -> None:
    user_permissions = make_permissions(dashboard=["read"])

    assert permission_service.has_permission(user_permissions, Resource.WALLET, Permission.READ) is False


@pytest.mark.unit
@pytest.mark.parametrize("action", ["create", "read", "update", "delete", "manage"])
def test_manage_implies_every_action(action: str) -> None:
    user_permissions = make_permissions(customer_support=["manage"])

    assert permission_service.has_permission(user_permissions, "customer_support", action) is True


@pytest.mark.unit
def test_read_does_not_imply_update() -> None:
    user_permissions = make_permissions(settings=["read"])

    assert permission_service.has_permission(user_permissions, Resource.SETTINGS, Permission.READ) is True
    assert permission_service.has_permission(user_permissions, Resource.SETTINGS, Permission.UPDATE) is False


@pytest.mark.unit
def test_super_admin_bypasses_resource_entries() -> None:
    user_permissions = make_permissions(role="SUPER_ADMIN")

    assert permission_service.has_permission(user_permissions, Resource.WALLET, Permission.DELETE) is True


@pytest.mark.unit
def test_any_and_all_permission_helpers() -> None:
    user_permissions = make_permissions(roles=["read", "update"])

    assert permission_service.has_any_permission(user_permissions, "roles", ["delete", "read"]) is True
    assert permission_service.has_all_permissions(user_permissions, "roles", ["read", "update"]) is True
    assert permission_service.has_all_permissions(user_permissions, "roles", ["read", "delete"]) is False
    assert permission_service.has_all_permissions(user_permissions, "roles", []) is False
    assert permission_service.has_any_permission(user_permissions, "roles", []) is False


@pytest.mark.unit
def test_check_permission_raises_forbidden() -> None:
    user_permissions = make_permissions(roles=["read"])

    permission_service.check_permission(user_permissions, Resource.ROLES, Permission.READ)
    with pytest.raises(Forbidden):
        permission_service.check_permission(user_permissions, Resource.ROLES, Permission.DELETE)
    with pytest.raises(Forbidden):
        permission_service.check_any_permission(user_permissions, Resource.ROLES, [Permission.CREATE])


@pytest.mark.unit
def test_menu_access_uses_read_and_rejects_unknown_menu() -> None:
    user_permissions = make_permissions(wallet=["read"])

    assert permission_service.has_menu_access(user_permissions, "wallet") is True
    assert permission_service.has_menu_access(user_permissions, "settings") is False
    assert permission_service.has_menu_access(user_permissions, "not-a-menu") is False


@pytest.mark.unit
def test_aggregate_unions_actions_across_roles() -> None:
    support = make_role("SUPPORT", customer_support=["read"])
    auditor = make_role("AUDITOR", customer_support=["update"], wallet=["read"])

    merged = permission_service.aggregate_permissions("u-9", [auditor, support])

    assert merged.as_map() == {"customer_support": ["update", "read"], "wallet": ["read"]}
    assert merged.role == "SUPPORT"
    assert merged.roles == ["SUPPORT", "AUDITOR"]


@pytest.mark.unit
def test_aggregate_prefers_builtin_label_over_custom_role() -> None:
    custom = make_role("ops-lead", dashboard=["read"])
    moderator = make_role("MODERATOR", dashboard=["read"])

    merged = permission_service.aggregate_permissions("u-9", [custom, moderator])

    assert merged.role == "MODERATOR"
    assert merged.roles == ["MODERATOR", "ops-lead"]


@pytest.mark.unit
def test_aggregate_with_super_admin_grants_everything() -> None:
    merged = permission_service.aggregate_permissions("u-1", [make_role("SUPER_ADMIN"), make_role("AUDITOR")])

    assert merged.role == "SUPER_ADMIN"
    assert {entry.resource for entry in merged.permissions} == set(Resource)
    assert permission_service.has_permission(merged, "admin_users", "delete") is True


@pytest.mark.unit
def test_aggregate_without_roles_denies_everything() -> None:
    merged = permission_service.aggregate_permissions("u-1", [])

    assert merged.role == ""
    assert merged.permissions == []
    assert permission_service.has_permission(merged, "dashboard", "read") is False


@pytest.mark.unit
def test_permission_flags_cover_resources_and_menus() -> None:
    flags = permission_service.build_permission_flags(make_permissions(roles=["manage"], dashboard=["read"]))

    assert flags["roles"] == {"create": True, "read": True, "update": True, "delete": True, "manage": True}
    assert flags["dashboard"]["read"] is True
    assert flags["dashboard"]["update"] is False
    assert flags["menus"]["dashboard"] is True
    assert flags["menus"]["wallet"] is False

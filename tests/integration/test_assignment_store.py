from __future__ import annotations

from datetime import timedelta

import pytest

from exchange_admin.exceptions import NotFoundError, ValidationError
from exchange_admin.models import UserRoleAssignment
from exchange_admin.models.permission import Permission, Resource
from exchange_admin.services import permission_service
from exchange_admin.services.assignment_service import AssignmentStore
from exchange_admin.services.role_service import RoleStore


async def create_role(store: RoleStore, actor, name: str, resource: str, actions: list[str]):
    return await store.create_role(
        name,
        f"{name} role for tests",
        [{"resource": resource, "permissions": actions}],
        actor=actor,
    )


@pytest.mark.integration
@pytest.mark.asyncio
async def test_permissions_union_across_assignments(initialized_db, super_admin, clock) -> None:
    roles = RoleStore(clock)
    assignments = AssignmentStore(roles, clock)
    role_a = await create_role(roles, super_admin, "Role A", "dashboard", ["read"])
    role_b = await create_role(roles, super_admin, "Role B", "dashboard", ["update"])
    await assignments.assign("user-u", str(role_a.id), actor=super_admin)
    await assignments.assign("user-u", str(role_b.id), actor=super_admin)

    computed = await assignments.compute_user_permissions("user-u")

    assert computed.as_map() == {"dashboard": ["read", "update"]}
    assert sorted(computed.roles) == ["Role A", "Role B"]
    assert computed.role == "Role A"


@pytest.mark.integration
@pytest.mark.asyncio
async def test_expired_assignment_is_excluded(initialized_db, super_admin, clock) -> None:
    roles = RoleStore(clock)
    assignments = AssignmentStore(roles, clock)
    role_c = await create_role(roles, super_admin, "Role C", "settings", ["manage"])
    await assignments.assign("user-u", str(role_c.id), clock() + timedelta(hours=1), actor=super_admin)

    before = await assignments.compute_user_permissions("user-u")
    assert permission_service.has_permission(before, Resource.SETTINGS, Permission.READ) is True

    clock.advance(hours=1)
    after = await assignments.compute_user_permissions("user-u")
    assert permission_service.has_permission(after, Resource.SETTINGS, Permission.READ) is False
    assert after.roles == []


@pytest.mark.integration
@pytest.mark.asyncio
async def test_assignment_stored_with_past_expiry_is_ignored(initialized_db, super_admin, clock) -> None:
    roles = RoleStore(clock)
    assignments = AssignmentStore(roles, clock)
    role_c = await create_role(roles, super_admin, "Role C", "settings", ["manage"])
    await UserRoleAssignment(
        user_id="user-u",
        role_id=str(role_c.id),
        assigned_at=clock() - timedelta(days=2),
        expires_at=clock() - timedelta(days=1),
    ).insert()

    computed = await assignments.compute_user_permissions("user-u")

    assert permission_service.has_permission(computed, "settings", "read") is False
    assert await assignments.list_effective("user-u") == []


@pytest.mark.integration
@pytest.mark.asyncio
async def test_assign_rejects_bad_input(initialized_db, super_admin, clock) -> None:
    roles = RoleStore(clock)
    assignments = AssignmentStore(roles, clock)
    role = await create_role(roles, super_admin, "Role A", "dashboard", ["read"])

    with pytest.raises(ValidationError) as excinfo:
        await assignments.assign("", "", actor=super_admin)
    assert set(excinfo.value.errors) == {"userId", "roleId"}

    with pytest.raises(ValidationError) as excinfo:
        await assignments.assign("user-u", str(role.id), clock(), actor=super_admin)
    assert "expiresAt" in excinfo.value.errors

    with pytest.raises(NotFoundError):
        await assignments.assign("user-u", "665f1c2e9b1e8a0001a1b2c3", actor=super_admin)


@pytest.mark.integration
@pytest.mark.asyncio
async def test_reassign_same_role_reuses_assignment(initialized_db, super_admin, clock) -> None:
    roles = RoleStore(clock)
    assignments = AssignmentStore(roles, clock)
    role = await create_role(roles, super_admin, "Role A", "dashboard", ["read"])

    first = await assignments.assign("user-u", str(role.id), clock() + timedelta(hours=1), actor=super_admin)
    second = await assignments.assign("user-u", str(role.id), actor=super_admin)

    assert first.id == second.id
    assert second.expires_at is None
    assert len(await assignments.list_by_user("user-u")) == 1


@pytest.mark.integration
@pytest.mark.asyncio
async def test_revoke_is_idempotent(initialized_db, super_admin, clock) -> None:
    roles = RoleStore(clock)
    assignments = AssignmentStore(roles, clock)
    role = await create_role(roles, super_admin, "Role A", "dashboard", ["read"])
    await assignments.assign("user-u", str(role.id), actor=super_admin)

    assert await assignments.revoke("user-u", str(role.id), actor=super_admin) == 1
    assert await assignments.revoke("user-u", str(role.id), actor=super_admin) == 0
    assert await assignments.revoke("user-x", "missing-role", actor=super_admin) == 0

    history = await assignments.list_by_user("user-u")
    assert [item.is_active for item in history] == [False]
    assert history[0].revoked_by == super_admin.sub
    computed = await assignments.compute_user_permissions("user-u")
    assert computed.permissions == []


@pytest.mark.integration
@pytest.mark.asyncio
async def test_permission_changes_visible_on_next_check(initialized_db, super_admin, clock) -> None:
    roles = RoleStore(clock)
    assignments = AssignmentStore(roles, clock)
    role = await create_role(roles, super_admin, "Role A", "dashboard", ["read"])
    await assignments.assign("user-u", str(role.id), actor=super_admin)

    await roles.update_role(
        str(role.id),
        {"permissions": [{"resource": "wallet", "permissions": ["read"]}]},
        actor=super_admin,
    )
    computed = await assignments.compute_user_permissions("user-u")

    assert computed.as_map() == {"wallet": ["read"]}


@pytest.mark.integration
@pytest.mark.asyncio
async def test_super_admin_role_assignment_grants_everything(initialized_db, super_admin, clock) -> None:
    roles = RoleStore(clock)
    assignments = AssignmentStore(roles, clock)
    await roles.ensure_default_roles(actor=super_admin)
    root_role = await roles.get_role_by_name("SUPER_ADMIN")
    await assignments.assign("user-root", str(root_role.id), actor=super_admin)

    computed = await assignments.compute_user_permissions("user-root")

    assert computed.role == "SUPER_ADMIN"
    assert permission_service.has_permission(computed, Resource.ADMIN_USERS, Permission.DELETE) is True
    assert await assignments.primary_role_name("user-root") == "SUPER_ADMIN"

from __future__ import annotations

from types import SimpleNamespace

import pytest

from exchange_admin.exceptions import Forbidden, Unauthenticated
from exchange_admin.models.permission import AdminRole, Permission, Resource, RolePermission, UserPermissions
from exchange_admin.models.principal import Principal
from exchange_admin.services import guard_service
from exchange_admin.services.guard_service import AccessRequirement, AuthorizationGuard
from exchange_admin.services.revocation_service import MemoryRevocationRegistry
from exchange_admin.services.token_service import TokenService, TokenType

PRINCIPAL = Principal(sub="665f1c2e9b1e8a0001a1b2c3", email="support@example.com", role="SUPPORT")


class FakeAdmins:
    """按 id 返回账号，缺省视为存在且启用。"""

    def __init__(self) -> None:
        self.inactive: set[str] = set()
        self.deleted: set[str] = set()

    async def get_admin_by_id(self, admin_id: str | None) -> SimpleNamespace | None:
        if admin_id in self.deleted:
            return None
        return SimpleNamespace(id=admin_id, is_active=admin_id not in self.inactive)


class FakeAssignments:
    """按用户返回预置的聚合权限，并记录查询次数。"""

    def __init__(self, user_permissions: UserPermissions):
        self.user_permissions = user_permissions
        self.calls = 0

    async def compute_user_permissions(self, user_id: str) -> UserPermissions:
        self.calls += 1
        return self.user_permissions


def support_permissions() -> UserPermissions:
    return UserPermissions(
        user_id=PRINCIPAL.sub,
        role="SUPPORT",
        roles=["SUPPORT", "AUDITOR"],
        permissions=[
            RolePermission(resource=Resource.CUSTOMER_SUPPORT, permissions=[Permission.READ, Permission.UPDATE]),
            RolePermission(resource=Resource.DASHBOARD, permissions=[Permission.READ]),
        ],
    )


@pytest.fixture
def tokens(jwt_settings, clock) -> TokenService:
    return TokenService(jwt_settings, clock)


@pytest.fixture
def registry() -> MemoryRevocationRegistry:
    return MemoryRevocationRegistry()


@pytest.fixture
def assignments() -> FakeAssignments:
    return FakeAssignments(support_permissions())


@pytest.fixture
def admins() -> FakeAdmins:
    return FakeAdmins()


@pytest.fixture
def guard(tokens, registry, assignments, admins) -> AuthorizationGuard:
    return AuthorizationGuard(tokens, registry, assignments, admins)


def bearer(token: str) -> str:
    return f"Bearer {token}"


@pytest.mark.unit
@pytest.mark.parametrize(
    ("header", "expected"),
    [
        ("Bearer abc", "abc"),
        ("bearer   abc  ", "abc"),
        ("Basic abc", None),
        ("Bearer", None),
        ("", None),
        (None, None),
    ],
)
def test_extract_bearer_token(header: str | None, expected: str | None) -> None:
    assert guard_service.extract_bearer_token(header) == expected


@pytest.mark.unit
@pytest.mark.asyncio
async def test_authenticate_resolves_principal(guard, tokens) -> None:
    pair = tokens.issue(PRINCIPAL)

    context = await guard.authenticate(bearer(pair.access_token), path="/roles", method="GET")

    assert context.principal == PRINCIPAL
    assert context.token == pair.access_token
    assert context.user_permissions is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_missing_or_invalid_token_is_unauthenticated(guard, tokens, caplog) -> None:
    pair = tokens.issue(PRINCIPAL)

    for header in (None, "Token abc", bearer("broken"), bearer(pair.refresh_token)):
        with pytest.raises(Unauthenticated):
            await guard.authenticate(header, path="/roles", method="GET")

    assert "reason=missing_token" in caplog.text
    assert "reason=invalid_token" in caplog.text


@pytest.mark.unit
@pytest.mark.asyncio
async def test_revoked_token_rejected_although_signature_valid(guard, tokens, registry, clock, caplog) -> None:
    pair = tokens.issue(PRINCIPAL)
    clock.advance(minutes=5)
    await registry.revoke(pair.access_token)

    assert tokens.validate(pair.access_token, TokenType.ACCESS)["sub"] == PRINCIPAL.sub
    with pytest.raises(Unauthenticated):
        await guard.authenticate(bearer(pair.access_token), path="/roles", method="GET")
    assert "reason=revoked_token" in caplog.text
    assert pair.access_token not in caplog.text


@pytest.mark.unit
@pytest.mark.asyncio
async def test_permission_requirement_any_and_all(guard, tokens) -> None:
    header = bearer(tokens.issue(PRINCIPAL).access_token)

    await guard.check(
        header,
        AccessRequirement.permission(Resource.CUSTOMER_SUPPORT, Permission.DELETE, Permission.UPDATE),
    )
    with pytest.raises(Forbidden):
        await guard.check(
            header,
            AccessRequirement.permission(
                Resource.CUSTOMER_SUPPORT,
                Permission.DELETE,
                Permission.UPDATE,
                require_all=True,
            ),
        )


@pytest.mark.unit
@pytest.mark.asyncio
async def test_denial_is_audited_with_requirement(guard, tokens, caplog) -> None:
    header = bearer(tokens.issue(PRINCIPAL).access_token)

    with pytest.raises(Forbidden):
        await guard.check(header, AccessRequirement.permission(Resource.WALLET, Permission.READ), path="/wallet")

    assert "reason=forbidden" in caplog.text
    assert "email=support@example.com" in caplog.text
    assert "wallet:read" in caplog.text


@pytest.mark.unit
@pytest.mark.asyncio
async def test_role_set_uses_all_effective_roles(guard, tokens) -> None:
    header = bearer(tokens.issue(PRINCIPAL).access_token)

    await guard.check(header, AccessRequirement.role_set([AdminRole.AUDITOR, AdminRole.ADMIN]))
    with pytest.raises(Forbidden):
        await guard.check(header, AccessRequirement.role_set([AdminRole.SUPER_ADMIN]))


@pytest.mark.unit
@pytest.mark.asyncio
async def test_permissions_loaded_once_per_request(guard, tokens, assignments) -> None:
    context = await guard.authenticate(bearer(tokens.issue(PRINCIPAL).access_token))

    await guard.authorize(context, AccessRequirement.permission(Resource.DASHBOARD, Permission.READ))
    await guard.authorize(context, AccessRequirement.permission(Resource.CUSTOMER_SUPPORT, Permission.READ))

    assert assignments.calls == 1
    assert context.user_permissions is not None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_stale_role_claim_does_not_grant_access(tokens, registry, admins) -> None:
    # 令牌里仍写着 SUPER_ADMIN，但当前已无任何生效角色
    stale = Principal(sub=PRINCIPAL.sub, email=PRINCIPAL.email, role="SUPER_ADMIN")
    guard = AuthorizationGuard(tokens, registry, FakeAssignments(UserPermissions(user_id=stale.sub, role="")), admins)
    header = bearer(tokens.issue(stale).access_token)

    with pytest.raises(Forbidden):
        await guard.check(header, AccessRequirement.permission(Resource.SETTINGS, Permission.READ))
    with pytest.raises(Forbidden):
        await guard.check(header, AccessRequirement.role_set([AdminRole.SUPER_ADMIN]))

    context = await guard.authenticate(header)
    await guard.load_permissions(context)
    assert context.principal.is_super_admin is False


@pytest.mark.unit
def test_requirement_describe() -> None:
    requirement = AccessRequirement.permission(Resource.ROLES, Permission.READ, Permission.UPDATE, require_all=True)

    assert requirement.describe() == "roles:read&update"
    assert AccessRequirement.role_set(["ADMIN"]).describe() == "roles=['ADMIN']"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_disabled_or_deleted_account_loses_access(guard, tokens, admins, assignments, caplog) -> None:
    header = bearer(tokens.issue(PRINCIPAL).access_token)
    requirement = AccessRequirement.permission(Resource.CUSTOMER_SUPPORT, Permission.UPDATE)
    await guard.check(header, requirement)

    admins.inactive.add(PRINCIPAL.sub)
    with pytest.raises(Unauthenticated):
        await guard.check(header, requirement)

    admins.inactive.clear()
    admins.deleted.add(PRINCIPAL.sub)
    with pytest.raises(Unauthenticated):
        await guard.authenticate(header, path="/tickets", method="PATCH")

    assert caplog.text.count("reason=inactive_principal") == 2
    assert assignments.calls == 1

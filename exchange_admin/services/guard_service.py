"""请求级鉴权：组合令牌校验、黑名单、权限聚合与权限判定。"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Protocol

from exchange_admin.exceptions import Forbidden, Unauthenticated
from exchange_admin.models import AdminUser
from exchange_admin.models.permission import Permission, Resource, UserPermissions
from exchange_admin.models.principal import Principal
from exchange_admin.services import audit_service, permission_service
from exchange_admin.services.assignment_service import AssignmentStore
from exchange_admin.services.revocation_service import RevocationRegistry
from exchange_admin.services.token_service import TokenService, TokenType, token_fingerprint


@dataclass(frozen=True, slots=True)
class AccessRequirement:
    """路由声明的访问要求：角色集合，或资源上的动作集合。"""

    resource: Resource | None = None
    permissions: tuple[Permission, ...] = ()
    require_all: bool = False
    roles: frozenset[str] = frozenset()

    @classmethod
    def permission(cls, resource: Resource, *permissions: Permission, require_all: bool = False) -> "AccessRequirement":
        return cls(resource=resource, permissions=tuple(permissions), require_all=require_all)

    @classmethod
    def role_set(cls, roles: Iterable[Any]) -> "AccessRequirement":
        return cls(roles=frozenset(str(getattr(role, "value", role)) for role in roles))

    def describe(self) -> str:
        parts: list[str] = []
        if self.roles:
            parts.append(f"roles={sorted(self.roles)}")
        if self.resource is not None:
            joiner = "&" if self.require_all else "|"
            actions = joiner.join(item.value for item in self.permissions)
            parts.append(f"{self.resource.value}:{actions}")
        return " ".join(parts)


@dataclass(slots=True)
class AuthContext:
    """鉴权通过后挂到请求上的上下文。"""

    principal: Principal
    token: str
    claims: dict[str, Any]
    user_permissions: UserPermissions | None = field(default=None)


class AdminLookup(Protocol):
    """按令牌主体读取管理员账号，AuthService 即满足该接口。"""

    async def get_admin_by_id(self, admin_id: str | None) -> AdminUser | None: ...


def extract_bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, credentials = authorization.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    credentials = credentials.strip()
    return credentials or None


class AuthorizationGuard:
    """每个受保护请求的鉴权入口。"""

    def __init__(
        self,
        tokens: TokenService,
        revocations: RevocationRegistry,
        assignments: AssignmentStore,
        admins: AdminLookup,
    ):
        self._tokens = tokens
        self._revocations = revocations
        self._assignments = assignments
        self._admins = admins

    async def authenticate(self, authorization: str | None, *, path: str = "", method: str = "") -> AuthContext:
        """步骤 1-3：提取令牌、校验、检查黑名单，并确认账号仍然可用。"""

        token = extract_bearer_token(authorization)
        if token is None:
            audit_service.record_denial(reason="missing_token", path=path, method=method)
            raise Unauthenticated()

        try:
            claims = self._tokens.validate(token, TokenType.ACCESS)
        except Unauthenticated:
            audit_service.record_denial(
                reason="invalid_token",
                path=path,
                method=method,
                detail=f"fingerprint={token_fingerprint(token)}",
            )
            raise

        principal = self._tokens.principal_from_claims(claims)
        # 签名与有效期通过也不代表可用，已吊销的令牌同样拒绝
        if await self._revocations.is_revoked(token):
            audit_service.record_denial(
                reason="revoked_token",
                path=path,
                method=method,
                principal_id=principal.sub,
                principal_email=principal.email,
                detail=f"fingerprint={token_fingerprint(token)}",
            )
            raise Unauthenticated()

        # 账号被删除或禁用后，未过期的令牌也立即失效
        admin = await self._admins.get_admin_by_id(principal.sub)
        if admin is None or not admin.is_active:
            audit_service.record_denial(
                reason="inactive_principal",
                path=path,
                method=method,
                principal_id=principal.sub,
                principal_email=principal.email,
            )
            raise Unauthenticated()

        return AuthContext(principal=principal, token=token, claims=claims)

    async def load_permissions(self, context: AuthContext) -> UserPermissions:
        """按请求读取一次最新的聚合权限。"""

        if context.user_permissions is None:
            user_permissions = await self._assignments.compute_user_permissions(context.principal.sub)
            context.user_permissions = user_permissions
            # 令牌里的角色可能已过时，后续业务判断以当前角色为准
            context.principal = Principal(
                sub=context.principal.sub,
                email=context.principal.email,
                role=user_permissions.role,
            )
        return context.user_permissions

    async def authorize(
        self,
        context: AuthContext,
        requirement: AccessRequirement,
        *,
        path: str = "",
        method: str = "",
    ) -> AuthContext:
        """步骤 4-7：角色集合与资源权限判定。"""

        user_permissions = await self.load_permissions(context)

        if requirement.roles and not requirement.roles.intersection(user_permissions.roles):
            self._deny(context, requirement, path=path, method=method, detail=f"roles={user_permissions.roles}")

        if requirement.resource is not None:
            if requirement.require_all:
                allowed = permission_service.has_all_permissions(
                    user_permissions, requirement.resource, requirement.permissions
                )
            else:
                allowed = permission_service.has_any_permission(
                    user_permissions, requirement.resource, requirement.permissions
                )
            if not allowed:
                self._deny(context, requirement, path=path, method=method, detail=f"role={user_permissions.role}")

        return context

    async def check(
        self,
        authorization: str | None,
        requirement: AccessRequirement,
        *,
        path: str = "",
        method: str = "",
    ) -> AuthContext:
        context = await self.authenticate(authorization, path=path, method=method)
        return await self.authorize(context, requirement, path=path, method=method)

    def _deny(
        self,
        context: AuthContext,
        requirement: AccessRequirement,
        *,
        path: str,
        method: str,
        detail: str,
    ) -> None:
        audit_service.record_denial(
            reason="forbidden",
            path=path,
            method=method,
            principal_id=context.principal.sub,
            principal_email=context.principal.email,
            required=requirement.describe(),
            detail=detail,
        )
        raise Forbidden()

"""登录、刷新令牌、退出登录与超级管理员播种。"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

import bcrypt

from exchange_admin.exceptions import Unauthenticated
from exchange_admin.models import AdminUser
from exchange_admin.models.admin_user import utc_now
from exchange_admin.models.permission import AdminRole, UserPermissions
from exchange_admin.models.principal import Principal
from exchange_admin.services import audit_service
from exchange_admin.services.assignment_service import AssignmentStore
from exchange_admin.services.guard_service import AuthContext
from exchange_admin.services.revocation_service import DEFAULT_REVOCATION_TTL_SECONDS, RevocationRegistry
from exchange_admin.services.role_service import RoleStore, parse_object_id
from exchange_admin.services.token_service import TokenPair, TokenService, TokenType, token_fingerprint

logger = logging.getLogger(__name__)


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        return False


class AuthService:
    """令牌生命周期的服务端部分。"""

    def __init__(
        self,
        tokens: TokenService,
        revocations: RevocationRegistry,
        roles: RoleStore,
        assignments: AssignmentStore,
        clock: Callable[[], datetime] = utc_now,
        revocation_ttl_seconds: int = DEFAULT_REVOCATION_TTL_SECONDS,
    ):
        self._tokens = tokens
        self._revocations = revocations
        self._roles = roles
        self._assignments = assignments
        self._clock = clock
        self._revocation_ttl = revocation_ttl_seconds

    async def get_admin_by_id(self, admin_id: str | None) -> AdminUser | None:
        object_id = parse_object_id(admin_id)
        if object_id is None:
            return None
        return await AdminUser.get(object_id)

    async def get_admin_by_email(self, email: str) -> AdminUser | None:
        return await AdminUser.find_one(AdminUser.email == email.strip().lower())

    async def authenticate(self, email: str, password: str) -> AdminUser | None:
        admin = await self.get_admin_by_email(email or "")
        if not admin or not admin.is_active:
            return None
        if not verify_password(password or "", admin.password_hash):
            return None
        return admin

    async def _issue_for(self, admin: AdminUser) -> tuple[TokenPair, UserPermissions]:
        user_permissions = await self._assignments.compute_user_permissions(str(admin.id))
        principal = Principal(sub=str(admin.id), email=admin.email, role=user_permissions.role)
        return self._tokens.issue(principal), user_permissions

    async def login(self, email: str, password: str) -> tuple[TokenPair, AdminUser, UserPermissions]:
        """校验账号密码并签发令牌对；失败原因不对外区分。"""

        admin = await self.authenticate(email, password)
        if admin is None:
            audit_service.record_action(
                action="login_failed",
                module="auth",
                operator=(email or "").strip() or "anonymous",
                detail="账号或密码错误，或账号已被禁用",
            )
            raise Unauthenticated()

        pair, user_permissions = await self._issue_for(admin)
        admin.role = user_permissions.role
        admin.last_login_at = self._clock()
        await admin.save()
        audit_service.record_action(
            action="login",
            module="auth",
            operator=admin.email,
            target_id=str(admin.id),
            detail=f"role={user_permissions.role or '-'}",
        )
        return pair, admin, user_permissions

    async def refresh(self, refresh_token: str) -> TokenPair:
        """用刷新令牌换取新的令牌对，旧刷新令牌随即作废（一次性）。"""

        claims = self._tokens.validate(refresh_token, TokenType.REFRESH)

        consumed = await self._revocations.revoke_once(
            refresh_token,
            ttl_seconds=self._tokens.remaining_lifetime(refresh_token),
        )
        if not consumed:
            audit_service.record_denial(
                reason="refresh_token_replayed",
                path="/auth/refresh",
                method="POST",
                principal_id=str(claims.get("sub") or ""),
                principal_email=str(claims.get("email") or ""),
                detail=f"fingerprint={token_fingerprint(refresh_token)}",
            )
            raise Unauthenticated()

        admin = await self.get_admin_by_id(str(claims["sub"]))
        if admin is None or not admin.is_active:
            raise Unauthenticated()

        pair, _ = await self._issue_for(admin)
        logger.info("令牌已轮换 user=%s old=%s", admin.id, token_fingerprint(refresh_token))
        return pair

    async def logout(self, context: AuthContext, refresh_token: str | None = None) -> None:
        """吊销当前访问令牌；附带的刷新令牌属于同一主体时一并吊销。"""

        # 黑名单条目不能早于令牌本身过期
        await self._revocations.revoke(
            context.token,
            ttl_seconds=max(self._tokens.remaining_lifetime(context.token), self._revocation_ttl),
        )
        if refresh_token:
            try:
                claims = self._tokens.validate(refresh_token, TokenType.REFRESH)
            except Unauthenticated:
                claims = None
            if claims is not None and str(claims["sub"]) == context.principal.sub:
                await self._revocations.revoke(
                    refresh_token,
                    ttl_seconds=self._tokens.remaining_lifetime(refresh_token),
                )

        audit_service.record_action(
            action="logout",
            module="auth",
            operator=context.principal.email or context.principal.sub,
            target_id=context.principal.sub,
            detail=f"fingerprint={token_fingerprint(context.token)}",
        )

    async def ensure_super_admin(self, email: str, password: str, *, actor: Principal) -> AdminUser:
        """确保存在超级管理员账号，并持有 SUPER_ADMIN 角色。"""

        normalized_email = email.strip().lower()
        admin = await self.get_admin_by_email(normalized_email)
        if admin is None:
            admin = AdminUser(
                email=normalized_email,
                username=normalized_email.split("@")[0] or "admin",
                password_hash=hash_password(password),
                role=AdminRole.SUPER_ADMIN.value,
                is_active=True,
            )
            await admin.insert()
            logger.info("已创建超级管理员账号 %s", normalized_email)

        role = await self._roles.get_role_by_name(AdminRole.SUPER_ADMIN.value)
        if role is not None:
            current = await self._assignments.list_effective(str(admin.id))
            if not any(item.role_id == str(role.id) for item in current):
                await self._assignments.assign(str(admin.id), str(role.id), actor=actor)
        return admin

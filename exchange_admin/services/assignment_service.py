"""用户角色分配服务层，以及权限聚合读路径。"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from exchange_admin.exceptions import ValidationError
from exchange_admin.models import UserRoleAssignment
from exchange_admin.models.permission import UserPermissions
from exchange_admin.models.principal import Principal
from exchange_admin.models.role_assignment import as_utc, utc_now
from exchange_admin.services import audit_service, permission_service
from exchange_admin.services.role_service import RoleStore

logger = logging.getLogger(__name__)


class AssignmentStore:
    """管理 UserRoleAssignment，并计算用户的聚合权限。"""

    def __init__(self, roles: RoleStore, clock: Callable[[], datetime] = utc_now):
        self._roles = roles
        self._clock = clock

    async def list_by_user(self, user_id: str) -> list[UserRoleAssignment]:
        return await UserRoleAssignment.find(UserRoleAssignment.user_id == user_id).sort("assigned_at").to_list()

    async def list_effective(self, user_id: str) -> list[UserRoleAssignment]:
        now = self._clock()
        return [item for item in await self.list_by_user(user_id) if item.is_effective(now)]

    async def assign(
        self,
        user_id: str,
        role_id: str,
        expires_at: datetime | None = None,
        *,
        actor: Principal,
    ) -> UserRoleAssignment:
        """为用户分配角色；同一角色已有生效分配时刷新其到期时间。"""

        errors: dict[str, str] = {}
        user_id = (user_id or "").strip()
        role_id = (role_id or "").strip()
        if not user_id:
            errors["userId"] = "用户 ID 不能为空"
        if not role_id:
            errors["roleId"] = "角色 ID 不能为空"

        now = self._clock()
        if expires_at is not None and as_utc(expires_at) <= as_utc(now):
            errors["expiresAt"] = "到期时间必须晚于当前时间"
        if errors:
            raise ValidationError("角色分配数据不合法", errors)

        role = await self._roles.get_role(role_id)

        existing = next(
            (item for item in await self.list_effective(user_id) if item.role_id == str(role.id)),
            None,
        )
        if existing is not None:
            existing.expires_at = expires_at
            existing.assigned_by = actor.sub
            await existing.save()
            assignment = existing
        else:
            assignment = UserRoleAssignment(
                user_id=user_id,
                role_id=str(role.id),
                assigned_by=actor.sub,
                assigned_at=now,
                expires_at=expires_at,
                is_active=True,
            )
            await assignment.insert()

        audit_service.record_action(
            action="assign",
            module="role_assignments",
            operator=actor.email or actor.sub,
            target=f"{user_id} <- {role.name}",
            target_id=str(assignment.id),
            detail=f"expires_at={expires_at.isoformat() if expires_at else 'never'}",
        )
        return assignment

    async def revoke(self, user_id: str, role_id: str, *, actor: Principal) -> int:
        """撤销用户的某个角色；重复撤销或分配不存在都不是错误。

        只处理仍处于启用状态的分配，已过期的记录保持原样，不会被重新激活。
        返回本次实际撤销的条数。
        """

        now = self._clock()
        revoked = 0
        for item in await self.list_by_user((user_id or "").strip()):
            if item.role_id != str(role_id) or not item.is_active:
                continue
            item.is_active = False
            item.revoked_at = now
            item.revoked_by = actor.sub
            await item.save()
            revoked += 1

        if revoked:
            audit_service.record_action(
                action="revoke",
                module="role_assignments",
                operator=actor.email or actor.sub,
                target=f"{user_id} -/- {role_id}",
                detail=f"revoked={revoked}",
            )
        return revoked

    async def compute_user_permissions(self, user_id: str) -> UserPermissions:
        """实时读取生效中的分配并合并角色权限，不使用缓存。"""

        assignments = await self.list_effective(user_id)
        roles = await self._roles.get_roles_by_ids(item.role_id for item in assignments)
        if len(roles) < len({item.role_id for item in assignments}):
            logger.warning("用户 %s 的部分角色分配指向已删除的角色", user_id)
        return permission_service.aggregate_permissions(user_id, roles)

    async def primary_role_name(self, user_id: str) -> str:
        return (await self.compute_user_permissions(user_id)).role


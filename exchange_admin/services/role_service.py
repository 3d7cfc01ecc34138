"""角色服务层。"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Iterable

from beanie import PydanticObjectId
from bson import ObjectId
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from pymongo.errors import DuplicateKeyError

from exchange_admin.exceptions import ConflictError, Forbidden, NotFoundError, ValidationError
from exchange_admin.models import Role, UserRoleAssignment
from exchange_admin.models.permission import (
    AdminRole,
    Permission,
    Resource,
    RolePermission,
)
from exchange_admin.models.principal import Principal
from exchange_admin.models.role import utc_now
from exchange_admin.services import audit_service

logger = logging.getLogger(__name__)

NAME_MIN, NAME_MAX = 2, 50
DESCRIPTION_MIN, DESCRIPTION_MAX = 5, 200

_ROLE_PERMISSIONS_ADAPTER = TypeAdapter(list[RolePermission])


def duplicate_name_message(name: str) -> str:
    return f"角色名称 '{name}' 已存在。"


DEFAULT_ROLES: list[dict[str, Any]] = [
    {
        "name": AdminRole.SUPER_ADMIN.value,
        "description": "超级管理员，拥有全部资源的管理权限",
        "permissions": {resource: [Permission.MANAGE] for resource in Resource},
    },
    {
        "name": AdminRole.ADMIN.value,
        "description": "管理员，可查看仪表盘、系统设置与权限配置",
        "permissions": {
            Resource.DASHBOARD: [Permission.READ],
            Resource.SETTINGS: [Permission.READ],
            Resource.PERMISSIONS: [Permission.READ],
            Resource.ROLES: [Permission.READ],
        },
    },
    {
        "name": AdminRole.MODERATOR.value,
        "description": "运营审核，负责客服工单处理",
        "permissions": {
            Resource.DASHBOARD: [Permission.READ],
            Resource.CUSTOMER_SUPPORT: [Permission.MANAGE],
        },
    },
    {
        "name": AdminRole.SUPPORT.value,
        "description": "客服专员，可查看与更新工单",
        "permissions": {
            Resource.DASHBOARD: [Permission.READ],
            Resource.CUSTOMER_SUPPORT: [Permission.READ, Permission.UPDATE],
        },
    },
    {
        "name": AdminRole.AUDITOR.value,
        "description": "审计员，对全部资源只读",
        "permissions": {resource: [Permission.READ] for resource in Resource},
    },
]


def build_default_role_permissions(role_name: str) -> list[RolePermission]:
    """根据内置角色构建权限集。"""

    for item in DEFAULT_ROLES:
        if item["name"] == role_name:
            return [
                RolePermission(resource=resource, permissions=list(actions))
                for resource, actions in item["permissions"].items()
            ]
    return []


def is_system_role(name: str) -> bool:
    return name in {item["name"] for item in DEFAULT_ROLES}


def parse_object_id(value: Any) -> PydanticObjectId | None:
    raw = str(value or "").strip()
    if not ObjectId.is_valid(raw):
        return None
    return PydanticObjectId(raw)


def parse_role_permissions(raw: Iterable[Any] | None) -> list[RolePermission]:
    """在边界处校验权限项，同一资源的多个条目合并为一条。

    Raises:
        ValidationError: 结构不合法、资源或动作未登记、动作集合为空。
    """

    try:
        entries = _ROLE_PERMISSIONS_ADAPTER.validate_python(list(raw or []))
    except (PydanticValidationError, TypeError) as exc:
        raise ValidationError("权限配置不合法", {"permissions": "权限项包含未知资源、未知动作或空动作集合"}) from exc

    merged: dict[Resource, list[Permission]] = {}
    for entry in entries:
        actions = merged.setdefault(entry.resource, [])
        actions.extend(action for action in entry.permissions if action not in actions)
    return [RolePermission(resource=resource, permissions=actions) for resource, actions in merged.items()]


def role_errors(values: dict[str, Any], *, partial: bool = False) -> dict[str, str]:
    """字段级校验，partial=True 时只校验出现的字段。"""

    errors: dict[str, str] = {}
    if not partial or "name" in values:
        name = str(values.get("name") or "")
        if not NAME_MIN <= len(name) <= NAME_MAX:
            errors["name"] = f"角色名称长度需在 {NAME_MIN}-{NAME_MAX} 个字符之间"
    if not partial or "description" in values:
        description = str(values.get("description") or "")
        if not DESCRIPTION_MIN <= len(description) <= DESCRIPTION_MAX:
            errors["description"] = f"角色描述长度需在 {DESCRIPTION_MIN}-{DESCRIPTION_MAX} 个字符之间"
    if not partial or "permissions" in values:
        if not values.get("permissions"):
            errors["permissions"] = "至少需要配置一项资源权限"
    return errors


class RoleStore:
    """角色的增删改查与业务规则。"""

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self._clock = clock

    async def list_roles(self) -> list[Role]:
        return await Role.find_all().sort("name").to_list()

    async def get_role(self, role_id: str) -> Role:
        object_id = parse_object_id(role_id)
        role = await Role.get(object_id) if object_id is not None else None
        if role is None:
            raise NotFoundError("角色不存在")
        return role

    async def get_role_by_name(self, name: str) -> Role | None:
        return await Role.find_one(Role.name == name)

    async def get_roles_by_ids(self, role_ids: Iterable[str]) -> list[Role]:
        object_ids = [oid for oid in (parse_object_id(item) for item in set(role_ids)) if oid is not None]
        if not object_ids:
            return []
        return await Role.find({"_id": {"$in": object_ids}}).to_list()

    async def create_role(
        self,
        name: str,
        description: str,
        permissions: Iterable[Any],
        *,
        actor: Principal,
        is_system: bool = False,
    ) -> Role:
        values = {
            "name": (name or "").strip(),
            "description": (description or "").strip(),
            "permissions": list(permissions or []),
        }
        errors = role_errors(values)
        if errors:
            raise ValidationError("角色数据不合法", errors)
        parsed_permissions = parse_role_permissions(values["permissions"])

        # 名称唯一：大小写敏感的精确匹配
        if await self.get_role_by_name(values["name"]):
            raise ConflictError(duplicate_name_message(values["name"]))

        now = self._clock()
        role = Role(
            name=values["name"],
            description=values["description"],
            permissions=parsed_permissions,
            is_system=is_system,
            created_at=now,
            updated_at=now,
        )
        try:
            await role.insert()
        except DuplicateKeyError as exc:
            raise ConflictError(duplicate_name_message(values["name"])) from exc

        audit_service.record_action(
            action="create",
            module="roles",
            operator=actor.email or actor.sub,
            target=role.name,
            target_id=str(role.id),
            detail=f"resources={[entry.resource.value for entry in parsed_permissions]}",
        )
        return role

    async def update_role(self, role_id: str, payload: dict[str, Any], *, actor: Principal) -> Role:
        """更新角色；权限列表整体替换，不做字段级合并。"""

        role = await self.get_role(role_id)
        if role.is_system and not actor.is_super_admin:
            raise Forbidden(f"system role '{role.name}' is immutable for role {actor.role}")

        values = {key: payload[key] for key in ("name", "description", "permissions") if key in payload}
        if isinstance(values.get("name"), str):
            values["name"] = values["name"].strip()
        if isinstance(values.get("description"), str):
            values["description"] = values["description"].strip()
        if role.is_system and "name" in values and values["name"] != role.name:
            # 超级管理员判定依赖角色名称，系统角色一律不可改名
            raise ValidationError("角色数据不合法", {"name": "系统角色名称不可修改"})
        errors = role_errors(values, partial=True)
        if errors:
            raise ValidationError("角色数据不合法", errors)

        parsed_permissions = parse_role_permissions(values["permissions"]) if "permissions" in values else None

        if "name" in values and values["name"] != role.name:
            existing = await self.get_role_by_name(values["name"])
            if existing and existing.id != role.id:
                raise ConflictError(duplicate_name_message(values["name"]))
            role.name = values["name"]
        if "description" in values:
            role.description = values["description"]
        if parsed_permissions is not None:
            role.permissions = parsed_permissions
        role.updated_at = self._clock()

        try:
            await role.save()
        except DuplicateKeyError as exc:
            raise ConflictError(duplicate_name_message(role.name)) from exc

        audit_service.record_action(
            action="update",
            module="roles",
            operator=actor.email or actor.sub,
            target=role.name,
            target_id=str(role.id),
            detail=f"fields={sorted(values)}",
        )
        return role

    async def role_in_use(self, role_id: str) -> bool:
        """存在任一生效中的分配即视为使用中。"""

        now = self._clock()
        assignments = await UserRoleAssignment.find(
            UserRoleAssignment.role_id == str(role_id),
            UserRoleAssignment.is_active == True,  # noqa: E712
        ).to_list()
        return any(item.is_effective(now) for item in assignments)

    async def delete_role(self, role_id: str, *, actor: Principal) -> None:
        role = await self.get_role(role_id)
        if role.is_system and not actor.is_super_admin:
            raise Forbidden(f"system role '{role.name}' is immutable for role {actor.role}")
        if await self.role_in_use(str(role.id)):
            raise ConflictError(f"角色 '{role.name}' 仍分配给用户，无法删除。")

        await role.delete()
        audit_service.record_action(
            action="delete",
            module="roles",
            operator=actor.email or actor.sub,
            target=role.name,
            target_id=str(role.id),
        )

    async def ensure_default_roles(self, *, actor: Principal) -> list[Role]:
        """补齐内置角色；已存在的角色只在权限为空时回填。"""

        roles: list[Role] = []
        for item in DEFAULT_ROLES:
            default_permissions = build_default_role_permissions(item["name"])
            role = await self.get_role_by_name(item["name"])
            if not role:
                role = await self.create_role(
                    item["name"],
                    item["description"],
                    [entry.model_dump() for entry in default_permissions],
                    actor=actor,
                    is_system=True,
                )
                roles.append(role)
                continue

            if not role.permissions:
                role.permissions = default_permissions
                role.updated_at = self._clock()
                await role.save()
            roles.append(role)
        logger.info("内置角色已就绪: %s", ", ".join(role.name for role in roles))
        return roles

    async def reset_default_roles(self, *, actor: Principal) -> list[Role]:
        """把内置角色的权限恢复为默认值（仅超级管理员）。"""

        if not actor.is_super_admin:
            raise Forbidden(f"reset of default roles requires SUPER_ADMIN, got {actor.role}")

        roles = await self.ensure_default_roles(actor=actor)
        for role in roles:
            role.permissions = build_default_role_permissions(role.name)
            role.is_system = True
            role.updated_at = self._clock()
            await role.save()
        audit_service.record_action(
            action="reset",
            module="roles",
            operator=actor.email or actor.sub,
            target="default roles",
        )
        return roles


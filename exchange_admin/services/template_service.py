"""权限模板服务层。"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Iterable

from pymongo.errors import DuplicateKeyError

from exchange_admin.exceptions import ConflictError, NotFoundError, ValidationError
from exchange_admin.models import PermissionTemplate, Role
from exchange_admin.models.permission import Permission, Resource, RolePermission
from exchange_admin.models.permission_template import utc_now
from exchange_admin.models.principal import Principal
from exchange_admin.services import audit_service
from exchange_admin.services.role_service import RoleStore, parse_object_id, parse_role_permissions

DEFAULT_TEMPLATES: list[dict[str, Any]] = [
    {
        "name": "只读",
        "description": "全部资源只读",
        "permissions": [RolePermission(resource=resource, permissions=[Permission.READ]) for resource in Resource],
    },
]


class TemplateStore:
    """权限模板的增删查，以及从模板创建角色。"""

    def __init__(self, roles: RoleStore, clock: Callable[[], datetime] = utc_now):
        self._roles = roles
        self._clock = clock

    async def list_templates(self) -> list[PermissionTemplate]:
        return await PermissionTemplate.find_all().sort("name").to_list()

    async def get_template(self, template_id: str) -> PermissionTemplate:
        object_id = parse_object_id(template_id)
        template = await PermissionTemplate.get(object_id) if object_id is not None else None
        if template is None:
            raise NotFoundError("权限模板不存在")
        return template

    async def create_template(
        self,
        name: str,
        description: str,
        permissions: Iterable[Any],
        *,
        actor: Principal,
        is_default: bool = False,
    ) -> PermissionTemplate:
        name = (name or "").strip()
        errors: dict[str, str] = {}
        if not 2 <= len(name) <= 50:
            errors["name"] = "模板名称长度需在 2-50 个字符之间"
        raw_permissions = list(permissions or [])
        if not raw_permissions:
            errors["permissions"] = "至少需要配置一项资源权限"
        if errors:
            raise ValidationError("模板数据不合法", errors)

        if await PermissionTemplate.find_one(PermissionTemplate.name == name):
            raise ConflictError(f"模板名称 '{name}' 已存在。")

        now = self._clock()
        template = PermissionTemplate(
            name=name,
            description=(description or "").strip(),
            permissions=parse_role_permissions(raw_permissions),
            is_default=is_default,
            created_at=now,
            updated_at=now,
        )
        try:
            await template.insert()
        except DuplicateKeyError as exc:
            raise ConflictError(f"模板名称 '{name}' 已存在。") from exc

        audit_service.record_action(
            action="create",
            module="permission_templates",
            operator=actor.email or actor.sub,
            target=template.name,
            target_id=str(template.id),
        )
        return template

    async def delete_template(self, template_id: str, *, actor: Principal) -> None:
        template = await self.get_template(template_id)
        await template.delete()
        audit_service.record_action(
            action="delete",
            module="permission_templates",
            operator=actor.email or actor.sub,
            target=template.name,
            target_id=str(template.id),
        )

    async def create_role_from_template(
        self,
        template_id: str,
        name: str,
        description: str,
        *,
        actor: Principal,
    ) -> Role:
        """以模板的权限包为种子创建角色，校验规则与普通创建一致。"""

        template = await self.get_template(template_id)
        return await self._roles.create_role(
            name,
            description,
            [entry.model_dump() for entry in template.permissions],
            actor=actor,
        )

    async def ensure_default_templates(self, *, actor: Principal) -> None:
        for item in DEFAULT_TEMPLATES:
            if await PermissionTemplate.find_one(PermissionTemplate.name == item["name"]):
                continue
            await self.create_template(
                item["name"],
                item["description"],
                [entry.model_dump() for entry in item["permissions"]],
                actor=actor,
                is_default=True,
            )

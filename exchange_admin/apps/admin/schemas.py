"""接口请求体与响应序列化。"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from exchange_admin.models import PermissionTemplate, Role, UserRoleAssignment
from exchange_admin.models.permission import RolePermission, UserPermissions


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class LoginPayload(CamelModel):
    email: str = Field(..., min_length=1, max_length=120)
    password: str = Field(..., min_length=1, max_length=128)


class RefreshPayload(CamelModel):
    refresh_token: str = Field(..., alias="refreshToken", min_length=1)


class LogoutPayload(CamelModel):
    refresh_token: str | None = Field(default=None, alias="refreshToken")


class PermissionCheckPayload(CamelModel):
    # 不在此处限定枚举，未知值由判定逻辑按拒绝处理
    resource: str = ""
    permission: str = ""


class RoleCreatePayload(CamelModel):
    name: str
    description: str
    permissions: list[RolePermission] = Field(default_factory=list)


class RoleUpdatePayload(CamelModel):
    name: str | None = None
    description: str | None = None
    permissions: list[RolePermission] | None = None


class TemplateCreatePayload(CamelModel):
    name: str
    description: str = ""
    permissions: list[RolePermission] = Field(default_factory=list)


class RoleFromTemplatePayload(CamelModel):
    name: str
    description: str


class AssignRolePayload(CamelModel):
    role_id: str = Field(..., alias="roleId")
    expires_at: datetime | None = Field(default=None, alias="expiresAt")


def dump_permissions(entries: list[RolePermission]) -> list[dict[str, Any]]:
    return [
        {"resource": entry.resource.value, "permissions": [item.value for item in entry.permissions]}
        for entry in entries
    ]


def role_to_dict(role: Role) -> dict[str, Any]:
    return {
        "id": str(role.id),
        "name": role.name,
        "description": role.description,
        "permissions": dump_permissions(role.permissions),
        "isSystem": role.is_system,
        "createdAt": role.created_at.isoformat(),
        "updatedAt": role.updated_at.isoformat(),
    }


def template_to_dict(template: PermissionTemplate) -> dict[str, Any]:
    return {
        "id": str(template.id),
        "name": template.name,
        "description": template.description,
        "permissions": dump_permissions(template.permissions),
        "isDefault": template.is_default,
        "createdAt": template.created_at.isoformat(),
        "updatedAt": template.updated_at.isoformat(),
    }


def assignment_to_dict(assignment: UserRoleAssignment) -> dict[str, Any]:
    return {
        "id": str(assignment.id),
        "userId": assignment.user_id,
        "roleId": assignment.role_id,
        "assignedBy": assignment.assigned_by,
        "assignedAt": assignment.assigned_at.isoformat(),
        "expiresAt": assignment.expires_at.isoformat() if assignment.expires_at else None,
        "isActive": assignment.is_active,
        "isEffective": assignment.is_effective(),
    }


def user_permissions_to_dict(user_permissions: UserPermissions) -> dict[str, Any]:
    return {
        "userId": user_permissions.user_id,
        "role": user_permissions.role,
        "roles": list(user_permissions.roles),
        "permissions": dump_permissions(user_permissions.permissions),
    }

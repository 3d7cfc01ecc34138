"""权限词汇：资源、动作、管理员角色与角色权限项。"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Resource(str, Enum):
    """受保护的资源（封闭集合，新增需改代码）。"""

    DASHBOARD = "dashboard"
    SETTINGS = "settings"
    PERMISSIONS = "permissions"
    USERS = "users"
    ROLES = "roles"
    WALLET = "wallet"
    WALLET_TRANSACTIONS = "wallet_transactions"
    CUSTOMER_SUPPORT = "customer_support"
    ADMIN_USERS = "admin_users"


class Permission(str, Enum):
    """动作类别，MANAGE 隐含其余全部动作。"""

    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    MANAGE = "manage"


CRUD_PERMISSIONS: tuple[Permission, ...] = (
    Permission.CREATE,
    Permission.READ,
    Permission.UPDATE,
    Permission.DELETE,
)


class AdminRole(str, Enum):
    """内置管理员角色。"""

    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    MODERATOR = "MODERATOR"
    SUPPORT = "SUPPORT"
    AUDITOR = "AUDITOR"


# 仅用于展示标签的优先级，数值越小越靠前。
ROLE_PRECEDENCE: dict[str, int] = {
    AdminRole.SUPER_ADMIN.value: 0,
    AdminRole.ADMIN.value: 1,
    AdminRole.MODERATOR.value: 2,
    AdminRole.SUPPORT.value: 3,
    AdminRole.AUDITOR.value: 4,
}


class RolePermission(BaseModel):
    """某个资源上的动作集合。"""

    model_config = ConfigDict(use_enum_values=False)

    resource: Resource
    permissions: list[Permission] = Field(..., min_length=1)

    @field_validator("permissions")
    @classmethod
    def _dedupe_permissions(cls, value: list[Permission]) -> list[Permission]:
        # 保持首次出现顺序
        return list(dict.fromkeys(value))

    def grants(self, permission: Permission) -> bool:
        return permission in self.permissions or Permission.MANAGE in self.permissions


class UserPermissions(BaseModel):
    """聚合后的用户权限（计算结果，不落库）。"""

    user_id: str
    role: str
    roles: list[str] = Field(default_factory=list)
    permissions: list[RolePermission] = Field(default_factory=list)

    def entry_for(self, resource: Resource) -> RolePermission | None:
        for entry in self.permissions:
            if entry.resource == resource:
                return entry
        return None

    def as_map(self) -> dict[str, list[str]]:
        return {
            entry.resource.value: [item.value for item in entry.permissions]
            for entry in self.permissions
        }


def role_precedence(role_name: str) -> tuple[int, str]:
    """角色标签排序键：内置角色按固定优先级，自定义角色按名称。"""

    return (ROLE_PRECEDENCE.get(role_name, len(ROLE_PRECEDENCE)), role_name)

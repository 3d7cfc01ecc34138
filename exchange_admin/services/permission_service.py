"""权限判定（纯计算，不做 I/O，不记录日志）。"""

from __future__ import annotations

from typing import Any, Iterable

from exchange_admin.exceptions import Forbidden
from exchange_admin.models.permission import (
    AdminRole,
    CRUD_PERMISSIONS,
    Permission,
    Resource,
    RolePermission,
    UserPermissions,
    role_precedence,
)

SUPER_ADMIN = AdminRole.SUPER_ADMIN.value

# 菜单键 -> 打开该菜单所需的 (资源, 动作)
MENU_PERMISSIONS: dict[str, tuple[Resource, Permission]] = {
    "dashboard": (Resource.DASHBOARD, Permission.READ),
    "settings": (Resource.SETTINGS, Permission.READ),
    "permissions": (Resource.PERMISSIONS, Permission.READ),
    "roles": (Resource.ROLES, Permission.READ),
    "users": (Resource.USERS, Permission.READ),
    "wallet": (Resource.WALLET, Permission.READ),
    "customer_support": (Resource.CUSTOMER_SUPPORT, Permission.READ),
    "admin_users": (Resource.ADMIN_USERS, Permission.READ),
}


def _coerce_resource(value: Resource | str) -> Resource | None:
    try:
        return Resource(value)
    except ValueError:
        return None


def _coerce_permission(value: Permission | str) -> Permission | None:
    try:
        return Permission(value)
    except ValueError:
        return None


def has_permission(
    user_permissions: UserPermissions | None,
    resource: Resource | str,
    permission: Permission | str,
) -> bool:
    """判断是否允许；任何缺失或无法识别的数据一律拒绝。"""

    if user_permissions is None:
        return False
    if user_permissions.role == SUPER_ADMIN:
        return True

    target_resource = _coerce_resource(resource)
    target_permission = _coerce_permission(permission)
    if target_resource is None or target_permission is None:
        return False

    entry = user_permissions.entry_for(target_resource)
    if entry is None:
        return False
    return entry.grants(target_permission)


def has_any_permission(
    user_permissions: UserPermissions | None,
    resource: Resource | str,
    permissions: Iterable[Permission | str],
) -> bool:
    return any(has_permission(user_permissions, resource, item) for item in permissions)


def has_all_permissions(
    user_permissions: UserPermissions | None,
    resource: Resource | str,
    permissions: Iterable[Permission | str],
) -> bool:
    required = list(permissions)
    # 空要求不构成授权依据
    if not required:
        return False
    return all(has_permission(user_permissions, resource, item) for item in required)


def check_permission(
    user_permissions: UserPermissions | None,
    resource: Resource | str,
    permission: Permission | str,
) -> None:
    """不满足时抛出 Forbidden，消息只用于内部审计。"""

    if not has_permission(user_permissions, resource, permission):
        raise Forbidden(
            f"Required: {getattr(permission, 'value', permission)} on {getattr(resource, 'value', resource)}"
        )


def check_any_permission(
    user_permissions: UserPermissions | None,
    resource: Resource | str,
    permissions: Iterable[Permission | str],
) -> None:
    required = list(permissions)
    if not has_any_permission(user_permissions, resource, required):
        labels = ", ".join(str(getattr(item, "value", item)) for item in required)
        raise Forbidden(f"Required one of: {labels} on {getattr(resource, 'value', resource)}")


def has_menu_access(user_permissions: UserPermissions | None, menu_key: str) -> bool:
    """未登记的菜单键直接拒绝。"""

    required = MENU_PERMISSIONS.get(menu_key)
    if required is None:
        return False
    return has_permission(user_permissions, required[0], required[1])


def super_admin_permissions(user_id: str, roles: Iterable[str] | None = None) -> UserPermissions:
    """超级管理员：所有资源授予 MANAGE。"""

    return UserPermissions(
        user_id=user_id,
        role=SUPER_ADMIN,
        roles=list(roles or [SUPER_ADMIN]),
        permissions=[
            RolePermission(resource=resource, permissions=[Permission.MANAGE])
            for resource in Resource
        ],
    )


def aggregate_permissions(user_id: str, roles: Iterable[Any]) -> UserPermissions:
    """合并多个角色的权限：同一资源的动作取并集，不覆盖。

    `roles` 只需具备 `name` 与 `permissions` 属性。角色列表为空时返回
    空权限集，由调用方按拒绝处理。
    """

    role_list = list(roles)
    names = sorted({role.name for role in role_list}, key=role_precedence)
    if SUPER_ADMIN in names:
        return super_admin_permissions(user_id, names)

    merged: dict[Resource, list[Permission]] = {}
    for role in role_list:
        for entry in role.permissions or []:
            actions = merged.setdefault(entry.resource, [])
            for action in entry.permissions:
                if action not in actions:
                    actions.append(action)

    return UserPermissions(
        user_id=user_id,
        role=names[0] if names else "",
        roles=names,
        permissions=[
            RolePermission(resource=resource, permissions=actions)
            for resource, actions in sorted(merged.items(), key=lambda item: item[0].value)
            if actions
        ],
    )


def build_resource_flags(user_permissions: UserPermissions | None, resource: Resource) -> dict[str, bool]:
    flags = {action.value: has_permission(user_permissions, resource, action) for action in CRUD_PERMISSIONS}
    flags[Permission.MANAGE.value] = has_permission(user_permissions, resource, Permission.MANAGE)
    return flags


def build_permission_flags(user_permissions: UserPermissions | None) -> dict[str, Any]:
    """构建前端按钮/菜单显隐使用的权限开关。"""

    flags: dict[str, Any] = {
        resource.value: build_resource_flags(user_permissions, resource)
        for resource in Resource
    }
    flags["menus"] = {key: has_menu_access(user_permissions, key) for key in MENU_PERMISSIONS}
    return flags

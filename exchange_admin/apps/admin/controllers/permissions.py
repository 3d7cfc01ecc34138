"""权限查询与初始化接口。"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends

from exchange_admin.apps.admin.dependencies import (
    RequirePermission,
    RequireRoles,
    get_auth_context,
    get_services,
)
from exchange_admin.apps.admin.schemas import PermissionCheckPayload, role_to_dict, user_permissions_to_dict
from exchange_admin.models.permission import AdminRole, Permission, Resource
from exchange_admin.services import permission_service
from exchange_admin.services.container import ServiceContainer
from exchange_admin.services.guard_service import AuthContext

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/permissions", tags=["permissions"])


@router.get("/me")
async def my_permissions(
    context: AuthContext = Depends(get_auth_context),
    services: ServiceContainer = Depends(get_services),
) -> dict[str, Any]:
    user_permissions = await services.guard.load_permissions(context)
    return {
        **user_permissions_to_dict(user_permissions),
        "flags": permission_service.build_permission_flags(user_permissions),
    }


@router.post("/check")
async def check_permission(
    payload: PermissionCheckPayload,
    context: AuthContext = Depends(get_auth_context),
    services: ServiceContainer = Depends(get_services),
) -> dict[str, bool]:
    try:
        user_permissions = await services.guard.load_permissions(context)
        allowed = permission_service.has_permission(user_permissions, payload.resource, payload.permission)
    except Exception:
        # 查询失败按无权限返回
        logger.exception("权限检查失败 user=%s", context.principal.sub)
        allowed = False
    return {"hasPermission": allowed}


@router.get("/menu-access/{menu_key}")
async def menu_access(
    menu_key: str,
    context: AuthContext = Depends(get_auth_context),
    services: ServiceContainer = Depends(get_services),
) -> dict[str, Any]:
    user_permissions = await services.guard.load_permissions(context)
    return {"menu": menu_key, "hasAccess": permission_service.has_menu_access(user_permissions, menu_key)}


@router.get("/users/{user_id}")
async def get_user_permissions(
    user_id: str,
    _: AuthContext = Depends(RequirePermission(Resource.SETTINGS, Permission.READ)),
    services: ServiceContainer = Depends(get_services),
) -> dict[str, Any]:
    computed = await services.assignments.compute_user_permissions(user_id)
    return user_permissions_to_dict(computed)


@router.post("/initialize")
async def initialize_defaults(
    context: AuthContext = Depends(RequireRoles(AdminRole.SUPER_ADMIN)),
    services: ServiceContainer = Depends(get_services),
) -> dict[str, Any]:
    roles = await services.roles.reset_default_roles(actor=context.principal)
    await services.templates.ensure_default_templates(actor=context.principal)
    return {"success": True, "roles": [role_to_dict(role) for role in roles]}

"""角色管理接口。"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from exchange_admin.apps.admin.dependencies import RequirePermission, get_services
from exchange_admin.apps.admin.schemas import RoleCreatePayload, RoleUpdatePayload, role_to_dict
from exchange_admin.models.permission import Permission, Resource
from exchange_admin.services.container import ServiceContainer
from exchange_admin.services.guard_service import AuthContext

router = APIRouter(prefix="/roles", tags=["roles"])


@router.get("")
async def list_roles(
    _: AuthContext = Depends(RequirePermission(Resource.ROLES, Permission.READ)),
    services: ServiceContainer = Depends(get_services),
) -> dict[str, Any]:
    roles = await services.roles.list_roles()
    return {"items": [role_to_dict(role) for role in roles], "total": len(roles)}


@router.post("", status_code=201)
async def create_role(
    payload: RoleCreatePayload,
    context: AuthContext = Depends(RequirePermission(Resource.ROLES, Permission.CREATE)),
    services: ServiceContainer = Depends(get_services),
) -> dict[str, Any]:
    role = await services.roles.create_role(
        payload.name,
        payload.description,
        [entry.model_dump() for entry in payload.permissions],
        actor=context.principal,
    )
    return role_to_dict(role)


@router.get("/{role_id}")
async def get_role(
    role_id: str,
    _: AuthContext = Depends(RequirePermission(Resource.ROLES, Permission.READ)),
    services: ServiceContainer = Depends(get_services),
) -> dict[str, Any]:
    return role_to_dict(await services.roles.get_role(role_id))


@router.put("/{role_id}")
async def update_role(
    role_id: str,
    payload: RoleUpdatePayload,
    context: AuthContext = Depends(RequirePermission(Resource.ROLES, Permission.UPDATE)),
    services: ServiceContainer = Depends(get_services),
) -> dict[str, Any]:
    values = payload.model_dump(exclude_unset=True)
    role = await services.roles.update_role(role_id, values, actor=context.principal)
    return role_to_dict(role)


@router.delete("/{role_id}")
async def delete_role(
    role_id: str,
    context: AuthContext = Depends(RequirePermission(Resource.ROLES, Permission.DELETE)),
    services: ServiceContainer = Depends(get_services),
) -> dict[str, Any]:
    await services.roles.delete_role(role_id, actor=context.principal)
    return {"success": True}

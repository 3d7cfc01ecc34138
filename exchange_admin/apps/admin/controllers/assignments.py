"""管理员角色分配接口。"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from exchange_admin.apps.admin.dependencies import RequirePermission, get_services
from exchange_admin.apps.admin.schemas import AssignRolePayload, assignment_to_dict
from exchange_admin.models.permission import Permission, Resource
from exchange_admin.services.container import ServiceContainer
from exchange_admin.services.guard_service import AuthContext

router = APIRouter(prefix="/users", tags=["assignments"])


@router.get("/{user_id}/roles")
async def list_user_roles(
    user_id: str,
    _: AuthContext = Depends(RequirePermission(Resource.ADMIN_USERS, Permission.READ)),
    services: ServiceContainer = Depends(get_services),
) -> dict[str, Any]:
    assignments = await services.assignments.list_by_user(user_id)
    return {"items": [assignment_to_dict(item) for item in assignments], "total": len(assignments)}


@router.post("/{user_id}/roles", status_code=201)
async def assign_role(
    user_id: str,
    payload: AssignRolePayload,
    context: AuthContext = Depends(RequirePermission(Resource.ADMIN_USERS, Permission.UPDATE)),
    services: ServiceContainer = Depends(get_services),
) -> dict[str, Any]:
    assignment = await services.assignments.assign(
        user_id,
        payload.role_id,
        payload.expires_at,
        actor=context.principal,
    )
    return assignment_to_dict(assignment)


@router.delete("/{user_id}/roles/{role_id}")
async def revoke_role(
    user_id: str,
    role_id: str,
    context: AuthContext = Depends(RequirePermission(Resource.ADMIN_USERS, Permission.UPDATE)),
    services: ServiceContainer = Depends(get_services),
) -> dict[str, Any]:
    revoked = await services.assignments.revoke(user_id, role_id, actor=context.principal)
    return {"success": True, "revoked": revoked}

"""权限模板接口。"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from exchange_admin.apps.admin.dependencies import RequirePermission, get_services
from exchange_admin.apps.admin.schemas import (
    RoleFromTemplatePayload,
    TemplateCreatePayload,
    role_to_dict,
    template_to_dict,
)
from exchange_admin.models.permission import Permission, Resource
from exchange_admin.services.container import ServiceContainer
from exchange_admin.services.guard_service import AuthContext

router = APIRouter(prefix="/permission-templates", tags=["permission-templates"])


@router.get("")
async def list_templates(
    _: AuthContext = Depends(RequirePermission(Resource.PERMISSIONS, Permission.READ)),
    services: ServiceContainer = Depends(get_services),
) -> dict[str, Any]:
    templates = await services.templates.list_templates()
    return {"items": [template_to_dict(item) for item in templates], "total": len(templates)}


@router.post("", status_code=201)
async def create_template(
    payload: TemplateCreatePayload,
    context: AuthContext = Depends(RequirePermission(Resource.PERMISSIONS, Permission.CREATE)),
    services: ServiceContainer = Depends(get_services),
) -> dict[str, Any]:
    template = await services.templates.create_template(
        payload.name,
        payload.description,
        [entry.model_dump() for entry in payload.permissions],
        actor=context.principal,
    )
    return template_to_dict(template)


@router.delete("/{template_id}")
async def delete_template(
    template_id: str,
    context: AuthContext = Depends(RequirePermission(Resource.PERMISSIONS, Permission.DELETE)),
    services: ServiceContainer = Depends(get_services),
) -> dict[str, Any]:
    await services.templates.delete_template(template_id, actor=context.principal)
    return {"success": True}


@router.post("/{template_id}/roles", status_code=201)
async def create_role_from_template(
    template_id: str,
    payload: RoleFromTemplatePayload,
    context: AuthContext = Depends(RequirePermission(Resource.ROLES, Permission.CREATE)),
    services: ServiceContainer = Depends(get_services),
) -> dict[str, Any]:
    role = await services.templates.create_role_from_template(
        template_id,
        payload.name,
        payload.description,
        actor=context.principal,
    )
    return role_to_dict(role)

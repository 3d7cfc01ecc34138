"""登录、刷新、退出与当前身份。"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from exchange_admin.apps.admin.dependencies import get_auth_context, get_services
from exchange_admin.apps.admin.schemas import (
    LoginPayload,
    LogoutPayload,
    RefreshPayload,
    user_permissions_to_dict,
)
from exchange_admin.services.container import ServiceContainer
from exchange_admin.services.guard_service import AuthContext

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login")
async def login(payload: LoginPayload, services: ServiceContainer = Depends(get_services)) -> dict[str, Any]:
    pair, admin, user_permissions = await services.auth.login(payload.email, payload.password)
    return {
        **pair.as_response(),
        "user": {
            "id": str(admin.id),
            "email": admin.email,
            "username": admin.username,
            "role": user_permissions.role,
        },
        "permissions": user_permissions_to_dict(user_permissions),
    }


@router.post("/refresh")
async def refresh(payload: RefreshPayload, services: ServiceContainer = Depends(get_services)) -> dict[str, Any]:
    pair = await services.auth.refresh(payload.refresh_token)
    return pair.as_response()


@router.post("/logout")
async def logout(
    payload: LogoutPayload | None = None,
    context: AuthContext = Depends(get_auth_context),
    services: ServiceContainer = Depends(get_services),
) -> dict[str, Any]:
    await services.auth.logout(context, payload.refresh_token if payload else None)
    return {"success": True}


@router.get("/me")
async def me(
    context: AuthContext = Depends(get_auth_context),
    services: ServiceContainer = Depends(get_services),
) -> dict[str, Any]:
    user_permissions = await services.guard.load_permissions(context)
    return {
        "id": context.principal.sub,
        "email": context.principal.email,
        "role": user_permissions.role,
        "roles": list(user_permissions.roles),
        "remainingSeconds": services.tokens.remaining_lifetime(context.token),
    }

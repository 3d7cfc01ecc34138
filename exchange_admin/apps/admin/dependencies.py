"""路由级鉴权依赖：声明角色集合或资源权限要求。"""

from __future__ import annotations

from typing import Any

from fastapi import Request

from exchange_admin.exceptions import Unauthenticated
from exchange_admin.models.permission import Permission, Resource
from exchange_admin.services.container import ServiceContainer
from exchange_admin.services.guard_service import AccessRequirement, AuthContext


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services


def get_auth_context(request: Request) -> AuthContext:
    """读取中间件写入的鉴权上下文，缺失时按未登录处理。"""

    context = getattr(request.state, "auth", None)
    if context is None:
        raise Unauthenticated()
    return context


class RequirePermission:
    """要求在某资源上具备任一（或全部）动作。"""

    def __init__(self, resource: Resource, *permissions: Permission, require_all: bool = False):
        self.requirement = AccessRequirement.permission(resource, *permissions, require_all=require_all)

    async def __call__(self, request: Request) -> AuthContext:
        context = get_auth_context(request)
        return await get_services(request).guard.authorize(
            context,
            self.requirement,
            path=request.url.path,
            method=request.method,
        )


class RequireRoles:
    """要求持有指定角色之一。"""

    def __init__(self, *roles: Any):
        self.requirement = AccessRequirement.role_set(roles)

    async def __call__(self, request: Request) -> AuthContext:
        context = get_auth_context(request)
        return await get_services(request).guard.authorize(
            context,
            self.requirement,
            path=request.url.path,
            method=request.method,
        )

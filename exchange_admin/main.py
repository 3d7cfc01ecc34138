"""FastAPI 应用入口。"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .apps.admin.controllers.assignments import router as assignments_router
from .apps.admin.controllers.auth import router as auth_router
from .apps.admin.controllers.permissions import router as permissions_router
from .apps.admin.controllers.roles import router as roles_router
from .apps.admin.controllers.templates import router as templates_router
from .config import (
    APP_ENV,
    APP_NAME,
    REDIS_URL,
    REVOCATION_BACKEND,
    REVOCATION_TTL_SECONDS,
    SUPER_ADMIN_EMAIL,
    SUPER_ADMIN_PASSWORD,
    load_jwt_settings,
)
from .db import close_db, init_db
from .exceptions import UNAUTHENTICATED_MESSAGE, AuthorizationSystemError, Forbidden, Unauthenticated, ValidationError
from .middleware.auth import BearerAuthMiddleware
from .models.principal import SYSTEM_PRINCIPAL
from .services.container import ServiceContainer, build_services
from .services.redis_service import close_redis, create_redis
from .services.revocation_service import create_revocation_registry
from .services.token_service import ensure_secure_config

logger = logging.getLogger(__name__)

EXEMPT_PATHS = {"/auth/login", "/auth/refresh", "/docs", "/openapi.json", "/healthz"}
EXEMPT_PREFIXES = ("/docs/",)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """应用生命周期：校验配置、连接存储、装配服务并播种内置数据。"""

    settings = load_jwt_settings()
    ensure_secure_config(settings, APP_ENV)

    await init_db()
    redis_client = create_redis(REDIS_URL) if REVOCATION_BACKEND == "redis" else None
    registry = create_revocation_registry(
        REVOCATION_BACKEND,
        default_ttl_seconds=REVOCATION_TTL_SECONDS,
        redis_client=redis_client,
    )
    services = build_services(settings, registry, revocation_ttl_seconds=REVOCATION_TTL_SECONDS)
    app.state.services = services

    await services.roles.ensure_default_roles(actor=SYSTEM_PRINCIPAL)
    await services.templates.ensure_default_templates(actor=SYSTEM_PRINCIPAL)
    await services.auth.ensure_super_admin(SUPER_ADMIN_EMAIL, SUPER_ADMIN_PASSWORD, actor=SYSTEM_PRINCIPAL)
    try:
        yield
    finally:
        await close_redis(redis_client)
        await close_db()


def error_body(error: str, message: str, errors: dict[str, str] | None = None) -> dict[str, object]:
    return {"error": error, "message": message, "errors": errors or {}}


async def handle_system_error(_request: Request, exc: AuthorizationSystemError) -> JSONResponse:
    headers: dict[str, str] = {}
    message = exc.message
    if isinstance(exc, Unauthenticated):
        headers["WWW-Authenticate"] = "Bearer"
        message = UNAUTHENTICATED_MESSAGE
    elif isinstance(exc, Forbidden):
        # 拒绝原因只进日志，响应统一
        logger.info("请求被拒绝: %s", exc.message)
        message = Forbidden().message
    errors = exc.errors if isinstance(exc, ValidationError) else {}
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(type(exc).__name__, message, errors),
        headers=headers or None,
    )


async def handle_request_validation(_request: Request, exc: RequestValidationError) -> JSONResponse:
    errors: dict[str, str] = {}
    for item in exc.errors():
        location = [str(part) for part in item.get("loc", ()) if part not in ("body", "query", "path")]
        errors[".".join(location) or "body"] = str(item.get("msg", "invalid"))
    return JSONResponse(status_code=400, content=error_body("ValidationError", "请求数据不合法", errors))


def create_app(services: ServiceContainer | None = None) -> FastAPI:
    """构造应用；传入 services 时跳过生命周期内的存储初始化。"""

    app = FastAPI(title=APP_NAME, lifespan=None if services is not None else lifespan)
    if services is not None:
        app.state.services = services

    app.add_middleware(BearerAuthMiddleware, exempt_paths=EXEMPT_PATHS, exempt_prefixes=EXEMPT_PREFIXES)
    app.add_exception_handler(AuthorizationSystemError, handle_system_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation)

    app.include_router(auth_router)
    app.include_router(permissions_router)
    app.include_router(roles_router)
    app.include_router(templates_router)
    app.include_router(assignments_router)

    @app.get("/healthz")
    async def healthz() -> dict[str, str]:
        return {"status": "ok"}

    return app

"""Bearer 令牌鉴权中间件。"""

from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from exchange_admin.exceptions import UNAUTHENTICATED_MESSAGE, Unauthenticated


def unauthenticated_response() -> Response:
    """返回统一的 401 响应，不区分资源是否存在。"""

    return JSONResponse(
        status_code=Unauthenticated.status_code,
        content={"error": "Unauthenticated", "message": UNAUTHENTICATED_MESSAGE, "errors": {}},
        headers={"WWW-Authenticate": "Bearer"},
    )


class BearerAuthMiddleware(BaseHTTPMiddleware):
    """在路由之前完成令牌校验与黑名单检查，结果挂到 request.state.auth。"""

    def __init__(self, app, exempt_paths: set[str] | None = None, exempt_prefixes: tuple[str, ...] = ()):
        super().__init__(app)
        self.exempt_paths = exempt_paths or set()
        self.exempt_prefixes = exempt_prefixes

    async def dispatch(self, request: Request, call_next) -> Response:
        path = request.url.path
        request.state.auth = None

        if request.method == "OPTIONS":
            return await call_next(request)
        if path in self.exempt_paths or path.startswith(self.exempt_prefixes):
            return await call_next(request)

        guard = request.app.state.services.guard
        try:
            request.state.auth = await guard.authenticate(
                request.headers.get("Authorization"),
                path=path,
                method=request.method,
            )
        except Unauthenticated:
            return unauthenticated_response()

        return await call_next(request)

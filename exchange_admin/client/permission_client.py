"""客户端权限查询，任何异常都按无权限处理。"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from exchange_admin.exceptions import Unauthenticated

from .refresh_coordinator import SessionRefreshCoordinator

logger = logging.getLogger(__name__)


class PermissionClient:
    def __init__(self, session: SessionRefreshCoordinator):
        self._session = session
        self._cache: dict[str, Any] | None = None
        session.add_logout_listener(self.clear_cache)

    def clear_cache(self) -> None:
        self._cache = None

    async def my_permissions(self, *, refresh: bool = False) -> dict[str, Any] | None:
        """当前账号的聚合权限，结果缓存到会话结束。"""

        if self._cache is not None and not refresh:
            return self._cache
        try:
            response = await self._session.get("/permissions/me")
            if response.status_code != 200:
                return None
            self._cache = response.json()
        except (httpx.HTTPError, Unauthenticated, ValueError) as exc:
            logger.warning("获取权限失败: %s", exc)
            return None
        return self._cache

    async def check(self, resource: str, permission: str) -> bool:
        try:
            response = await self._session.post(
                "/permissions/check",
                json={"resource": resource, "permission": permission},
            )
            if response.status_code != 200:
                return False
            return response.json().get("hasPermission") is True
        except (httpx.HTTPError, Unauthenticated, ValueError, AttributeError) as exc:
            logger.warning("权限检查失败 %s:%s: %s", resource, permission, exc)
            return False

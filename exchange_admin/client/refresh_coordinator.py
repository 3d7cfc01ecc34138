"""401 自动刷新：同一凭据同一时刻只允许一个刷新请求，其余调用方等待其结果。"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Callable

import httpx

from exchange_admin.exceptions import Unauthenticated

from .credentials import CredentialStore, MemoryCredentialStore, TokenCredentials

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    AUTHENTICATED = "authenticated"
    REFRESHING = "refreshing"
    UNAUTHENTICATED = "unauthenticated"


class SessionExpired(Unauthenticated):
    """刷新失败或已退出登录，调用方应回到登录入口。"""


class SessionRefreshCoordinator:
    """包装 httpx.AsyncClient：附带 Bearer 令牌，遇到 401 时刷新并重放一次。

    刷新失败是终态：清空本地凭据，不再自动重试，直到重新登录。
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        store: CredentialStore | None = None,
        *,
        login_path: str = "/auth/login",
        refresh_path: str = "/auth/refresh",
        logout_path: str = "/auth/logout",
    ):
        self._client = client
        self._store = store if store is not None else MemoryCredentialStore()
        self._login_path = login_path
        self._refresh_path = refresh_path
        self._logout_path = logout_path
        self._lock = asyncio.Lock()
        self._inflight: asyncio.Future[TokenCredentials] | None = None
        # 每次退出登录加一，用于识别退出前发起的刷新
        self._epoch = 0
        self._listeners: list[Callable[[], None]] = []
        self._state = (
            SessionState.AUTHENTICATED if self._store.load() is not None else SessionState.UNAUTHENTICATED
        )

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def credentials(self) -> TokenCredentials | None:
        return self._store.load()

    def add_logout_listener(self, listener: Callable[[], None]) -> None:
        """会话结束（退出或刷新失败）时回调，用于清理权限缓存等。"""

        self._listeners.append(listener)

    def _end_session(self) -> None:
        self._store.clear()
        self._state = SessionState.UNAUTHENTICATED
        for listener in self._listeners:
            listener()

    async def login(self, email: str, password: str) -> dict[str, Any]:
        response = await self._client.post(self._login_path, json={"email": email, "password": password})
        if response.status_code != 200:
            raise Unauthenticated(_error_message(response))
        data = response.json()
        self._store.save(TokenCredentials.from_dict(data))
        self._state = SessionState.AUTHENTICATED
        return data

    async def _send(self, method: str, url: str, access_token: str, kwargs: dict[str, Any]) -> httpx.Response:
        headers = dict(kwargs.get("headers") or {})
        headers["Authorization"] = f"Bearer {access_token}"
        options = {key: value for key, value in kwargs.items() if key != "headers"}
        return await self._client.request(method, url, headers=headers, **options)

    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        credentials = self._store.load()
        if self._state is SessionState.UNAUTHENTICATED or credentials is None:
            raise SessionExpired()

        response = await self._send(method, url, credentials.access_token, kwargs)
        if response.status_code != 401:
            return response

        # 同一请求只刷新一次，重放后仍是 401 则原样返回
        refreshed = await self.refresh(stale_access_token=credentials.access_token)
        return await self._send(method, url, refreshed.access_token, kwargs)

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def refresh(self, stale_access_token: str | None = None) -> TokenCredentials:
        """换取新的令牌对；并发调用共享同一次刷新。"""

        async with self._lock:
            if self._state is SessionState.UNAUTHENTICATED:
                raise SessionExpired()
            if self._inflight is None:
                current = self._store.load()
                # 其他调用方已经完成刷新，直接使用新令牌
                if current is not None and stale_access_token and current.access_token != stale_access_token:
                    return current
                self._state = SessionState.REFRESHING
                self._inflight = asyncio.ensure_future(self._exchange(current, self._epoch))
            inflight = self._inflight

        try:
            return await asyncio.shield(inflight)
        finally:
            async with self._lock:
                if self._inflight is inflight and inflight.done():
                    self._inflight = None

    async def _exchange(self, credentials: TokenCredentials | None, epoch: int) -> TokenCredentials:
        if credentials is None or not credentials.refresh_token:
            self._end_session()
            raise SessionExpired()

        try:
            response = await self._client.post(
                self._refresh_path,
                json={"refreshToken": credentials.refresh_token},
            )
        except httpx.HTTPError:
            # 网络故障不代表刷新令牌失效，保留凭据交给调用方处理
            if epoch == self._epoch:
                self._state = SessionState.AUTHENTICATED
            raise

        if epoch != self._epoch:
            # 刷新途中已退出登录：丢弃结果，新签发的令牌对同样通知服务端吊销
            if response.status_code == 200:
                orphaned = _parse_credentials(response)
                if orphaned is not None:
                    await self._revoke_remote(orphaned)
            raise SessionExpired()

        if response.status_code != 200:
            logger.info("刷新令牌被拒绝 status=%s，会话结束", response.status_code)
            self._end_session()
            raise SessionExpired()

        refreshed = _parse_credentials(response)
        if refreshed is None:
            self._end_session()
            raise SessionExpired()

        self._store.save(refreshed)
        self._state = SessionState.AUTHENTICATED
        return refreshed

    async def logout(self) -> None:
        """本地凭据立即清除，进行中的刷新结果作废；服务端吊销尽力而为。"""

        async with self._lock:
            self._epoch += 1
            self._inflight = None
            credentials = self._store.load()
            self._end_session()
        if credentials is not None:
            await self._revoke_remote(credentials)

    async def _revoke_remote(self, credentials: TokenCredentials) -> None:
        try:
            await self._client.post(
                self._logout_path,
                json={"refreshToken": credentials.refresh_token},
                headers={"Authorization": f"Bearer {credentials.access_token}"},
            )
        except httpx.HTTPError as exc:
            logger.warning("服务端退出登录失败，本地凭据已清除: %s", exc)


def _parse_credentials(response: httpx.Response) -> TokenCredentials | None:
    try:
        return TokenCredentials.from_dict(response.json())
    except (ValueError, KeyError, TypeError):
        logger.warning("刷新响应无法解析")
        return None


def _error_message(response: httpx.Response) -> str:
    try:
        return str(response.json().get("message") or "")
    except ValueError:
        return ""

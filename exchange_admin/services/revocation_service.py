"""令牌吊销登记（黑名单）。

默认实现是进程内存，重启即清空，且不会在多实例之间共享；多实例部署需
切换到 Redis 实现（REVOCATION_BACKEND=redis）。
"""

from __future__ import annotations

import hashlib
import heapq
import logging
import threading
import time
from typing import Any, Callable, Protocol

logger = logging.getLogger(__name__)

DEFAULT_REVOCATION_TTL_SECONDS = 24 * 60 * 60


def revocation_key(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class RevocationRegistry(Protocol):
    async def revoke(self, token: str, ttl_seconds: int | None = None) -> None: ...

    async def revoke_once(self, token: str, ttl_seconds: int | None = None) -> bool: ...

    async def is_revoked(self, token: str) -> bool: ...


class MemoryRevocationRegistry:
    """线程安全的内存黑名单，条目到期自动移除。

    每次读写都会先清理已到期的条目（最小堆按到期时间排序），因此内存占用
    受条目 TTL 约束；过期清理与成员检查在同一把锁内完成，不会互相竞争。
    """

    def __init__(
        self,
        default_ttl_seconds: int = DEFAULT_REVOCATION_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._default_ttl = default_ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, float] = {}
        self._expiry_heap: list[tuple[float, str]] = []

    def _purge_locked(self, now: float) -> None:
        while self._expiry_heap and self._expiry_heap[0][0] <= now:
            deadline, key = heapq.heappop(self._expiry_heap)
            # 同一个 key 可能被重新登记过，只删除与堆记录一致的条目
            if self._entries.get(key) == deadline:
                del self._entries[key]

    def _insert_locked(self, key: str, ttl_seconds: int | None, now: float) -> None:
        deadline = now + max(int(ttl_seconds or self._default_ttl), 1)
        if self._entries.get(key, 0.0) >= deadline:
            return
        self._entries[key] = deadline
        heapq.heappush(self._expiry_heap, (deadline, key))

    async def revoke(self, token: str, ttl_seconds: int | None = None) -> None:
        key = revocation_key(token)
        with self._lock:
            now = self._clock()
            self._purge_locked(now)
            self._insert_locked(key, ttl_seconds, now)

    async def revoke_once(self, token: str, ttl_seconds: int | None = None) -> bool:
        """原子地检查并登记；令牌此前已登记时返回 False。"""

        key = revocation_key(token)
        with self._lock:
            now = self._clock()
            self._purge_locked(now)
            if key in self._entries:
                return False
            self._insert_locked(key, ttl_seconds, now)
            return True

    async def is_revoked(self, token: str) -> bool:
        key = revocation_key(token)
        with self._lock:
            self._purge_locked(self._clock())
            return key in self._entries

    def purge_expired(self) -> None:
        with self._lock:
            self._purge_locked(self._clock())

    def __len__(self) -> int:
        with self._lock:
            self._purge_locked(self._clock())
            return len(self._entries)


class RedisRevocationRegistry:
    """基于 Redis TTL 的共享黑名单，多实例部署时使用。"""

    def __init__(
        self,
        client: Any,
        default_ttl_seconds: int = DEFAULT_REVOCATION_TTL_SECONDS,
        prefix: str = "exchange_admin:revoked:",
    ):
        self._client = client
        self._default_ttl = default_ttl_seconds
        self._prefix = prefix

    def _key(self, token: str) -> str:
        return f"{self._prefix}{revocation_key(token)}"

    async def revoke(self, token: str, ttl_seconds: int | None = None) -> None:
        await self._client.set(self._key(token), "1", ex=max(int(ttl_seconds or self._default_ttl), 1))

    async def revoke_once(self, token: str, ttl_seconds: int | None = None) -> bool:
        created = await self._client.set(
            self._key(token),
            "1",
            ex=max(int(ttl_seconds or self._default_ttl), 1),
            nx=True,
        )
        return bool(created)

    async def is_revoked(self, token: str) -> bool:
        return bool(await self._client.exists(self._key(token)))


def create_revocation_registry(
    backend: str,
    *,
    default_ttl_seconds: int = DEFAULT_REVOCATION_TTL_SECONDS,
    redis_client: Any = None,
) -> RevocationRegistry:
    if backend == "redis":
        if redis_client is None:
            raise ValueError("redis 黑名单需要提供 redis_client")
        logger.info("令牌黑名单使用 Redis 共享存储")
        return RedisRevocationRegistry(redis_client, default_ttl_seconds)
    if backend != "memory":
        logger.warning("未知的 REVOCATION_BACKEND=%s，回退为进程内存黑名单", backend)
    return MemoryRevocationRegistry(default_ttl_seconds)

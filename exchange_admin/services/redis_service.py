"""Redis 连接服务。"""

from __future__ import annotations

from typing import Any

from redis.asyncio import Redis

from exchange_admin.config import REDIS_URL


def create_redis(url: str = REDIS_URL) -> Any:
    """创建 Redis 客户端，由应用生命周期持有并负责关闭。"""

    return Redis.from_url(url, encoding="utf-8", decode_responses=True)


async def close_redis(client: Any) -> None:
    """关闭 Redis 客户端连接。"""

    if client is not None:
        await client.aclose()

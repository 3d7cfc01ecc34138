from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator

import pytest
from beanie import init_beanie
from mongomock_motor import AsyncMongoMockClient

from exchange_admin.config import JwtSettings
from exchange_admin.models import DOCUMENT_MODELS
from exchange_admin.models.principal import Principal

TEST_SECRET = "unit-test-secret-0123456789abcdefghijklmnop"


class MutableClock:
    """可手动拨动的时钟，用于过期相关测试。"""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 1, 1, 8, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: Any) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
async def initialized_db() -> AsyncIterator[None]:
    """每个用例使用独立的内存 Mongo。"""

    client = AsyncMongoMockClient(tz_aware=True)
    await init_beanie(database=client["exchange_admin_test"], document_models=DOCUMENT_MODELS)
    yield


@pytest.fixture
def jwt_settings() -> JwtSettings:
    return JwtSettings(secret=TEST_SECRET, algorithm="HS256", expires_in="15m", refresh_expires_in="7d")


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock()


@pytest.fixture
def super_admin() -> Principal:
    return Principal(sub="super-1", email="root@example.com", role="SUPER_ADMIN")


@pytest.fixture
def plain_admin() -> Principal:
    return Principal(sub="admin-2", email="ops@example.com", role="ADMIN")


"""角色模型。"""

from __future__ import annotations

from datetime import datetime, timezone

from beanie import Document
from pydantic import Field
from pymongo import IndexModel

from .permission import RolePermission


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Role(Document):
    """角色：一组资源权限的命名集合。"""

    name: str = Field(..., min_length=2, max_length=50)
    description: str = Field(..., min_length=5, max_length=200)
    permissions: list[RolePermission] = Field(default_factory=list)
    is_system: bool = False
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    class Settings:
        name = "roles"
        indexes = [
            IndexModel([("name", 1)], name="uniq_role_name", unique=True),
        ]

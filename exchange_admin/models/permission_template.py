"""权限模板模型。"""

from __future__ import annotations

from datetime import datetime, timezone

from beanie import Document
from pydantic import Field
from pymongo import IndexModel

from .permission import RolePermission


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PermissionTemplate(Document):
    """可复用的权限包，用于快速创建角色，本身不参与鉴权。"""

    name: str = Field(..., min_length=2, max_length=50)
    description: str = Field(default="", max_length=200)
    permissions: list[RolePermission] = Field(default_factory=list)
    is_default: bool = False
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    class Settings:
        name = "permission_templates"
        indexes = [
            IndexModel([("name", 1)], name="uniq_template_name", unique=True),
        ]

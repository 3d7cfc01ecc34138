"""管理员账号模型。"""

from __future__ import annotations

from datetime import datetime, timezone

from beanie import Document
from pydantic import Field
from pymongo import IndexModel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AdminUser(Document):
    """后台管理员。"""

    email: str = Field(..., min_length=3, max_length=120)
    username: str = Field(..., min_length=2, max_length=64)
    password_hash: str
    role: str = ""
    is_active: bool = True
    last_login_at: datetime | None = None
    created_at: datetime = Field(default_factory=utc_now)

    class Settings:
        name = "admin_users"
        indexes = [
            IndexModel([("email", 1)], name="uniq_admin_email", unique=True),
        ]

"""用户角色分配模型。"""

from __future__ import annotations

from datetime import datetime, timezone

from beanie import Document
from pydantic import Field, model_validator
from pymongo import IndexModel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Mongo 读回的时间默认不带时区，统一按 UTC 处理。"""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class UserRoleAssignment(Document):
    """谁在何时被授予了哪个角色，以及到何时为止。"""

    user_id: str = Field(..., min_length=1)
    role_id: str = Field(..., min_length=1)
    assigned_by: str = ""
    assigned_at: datetime = Field(default_factory=utc_now)
    expires_at: datetime | None = None
    is_active: bool = True
    revoked_at: datetime | None = None
    revoked_by: str = ""

    class Settings:
        name = "user_role_assignments"
        indexes = [
            IndexModel([("user_id", 1)], name="idx_assignment_user"),
            IndexModel([("role_id", 1)], name="idx_assignment_role"),
        ]

    @model_validator(mode="after")
    def _check_expiry_after_assignment(self) -> "UserRoleAssignment":
        if self.expires_at is not None and as_utc(self.expires_at) <= as_utc(self.assigned_at):
            raise ValueError("expires_at 必须晚于 assigned_at")
        return self

    def is_effective(self, now: datetime | None = None) -> bool:
        """启用且未过期才算生效。"""

        if not self.is_active:
            return False
        if self.expires_at is None:
            return True
        current = as_utc(now or utc_now())
        return current < as_utc(self.expires_at)

"""请求主体（由已校验的访问令牌解析而来）。"""

from __future__ import annotations

from dataclasses import dataclass

from .permission import AdminRole


@dataclass(frozen=True, slots=True)
class Principal:
    """已认证的管理员。"""

    sub: str
    email: str
    role: str

    @property
    def is_super_admin(self) -> bool:
        return self.role == AdminRole.SUPER_ADMIN.value


# 启动播种等后台任务使用的系统身份
SYSTEM_PRINCIPAL = Principal(sub="system", email="", role=AdminRole.SUPER_ADMIN.value)

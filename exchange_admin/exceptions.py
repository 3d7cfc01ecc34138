"""鉴权子系统异常分类。"""

from __future__ import annotations

UNAUTHENTICATED_MESSAGE = "登录状态已失效，请重新登录。"


class AuthorizationSystemError(Exception):
    """鉴权子系统异常基类。"""

    status_code = 500

    def __init__(self, message: str = "系统异常"):
        self.message = message
        super().__init__(self.message)


class Unauthenticated(AuthorizationSystemError):
    """令牌缺失、非法、过期或已被吊销。"""

    status_code = 401

    def __init__(self, message: str = UNAUTHENTICATED_MESSAGE):
        super().__init__(message)


class Forbidden(AuthorizationSystemError):
    """已登录但角色或权限不足。"""

    status_code = 403

    def __init__(self, message: str = "当前账号没有执行该操作的权限。"):
        super().__init__(message)


class ValidationError(AuthorizationSystemError):
    """角色或分配的输入不合法，携带字段级错误。"""

    status_code = 400

    def __init__(self, message: str = "输入数据不合法", errors: dict[str, str] | None = None):
        super().__init__(message)
        self.errors = dict(errors or {})


class ConflictError(AuthorizationSystemError):
    """资源冲突（角色名称重复、角色仍在使用）。"""

    status_code = 409


class NotFoundError(AuthorizationSystemError):
    """目标资源不存在。"""

    status_code = 404


class ConfigurationError(AuthorizationSystemError):
    """启动配置不安全，仅在进程启动时抛出。"""

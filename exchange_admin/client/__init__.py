"""管理后台 API 的客户端会话工具。"""

from .credentials import CredentialStore, FileCredentialStore, MemoryCredentialStore, TokenCredentials
from .permission_client import PermissionClient
from .refresh_coordinator import SessionExpired, SessionRefreshCoordinator, SessionState

__all__ = [
    "CredentialStore",
    "FileCredentialStore",
    "MemoryCredentialStore",
    "PermissionClient",
    "SessionExpired",
    "SessionRefreshCoordinator",
    "SessionState",
    "TokenCredentials",
]

"""客户端凭据存储。"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TokenCredentials:
    access_token: str
    refresh_token: str

    def to_dict(self) -> dict[str, str]:
        return {"accessToken": self.access_token, "refreshToken": self.refresh_token}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TokenCredentials":
        return cls(access_token=str(data["accessToken"]), refresh_token=str(data["refreshToken"]))


class CredentialStore(Protocol):
    def load(self) -> TokenCredentials | None: ...

    def save(self, credentials: TokenCredentials) -> None: ...

    def clear(self) -> None: ...


class MemoryCredentialStore:
    def __init__(self, credentials: TokenCredentials | None = None):
        self._credentials = credentials

    def load(self) -> TokenCredentials | None:
        return self._credentials

    def save(self, credentials: TokenCredentials) -> None:
        self._credentials = credentials

    def clear(self) -> None:
        self._credentials = None


class FileCredentialStore:
    """把凭据以 JSON 写入本地文件，供命令行工具跨进程复用。"""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def load(self) -> TokenCredentials | None:
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return TokenCredentials.from_dict(data)
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.warning("凭据文件无法读取，按未登录处理: %s (%s)", self.path, exc)
            return None

    def save(self, credentials: TokenCredentials) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(credentials.to_dict(), ensure_ascii=False), encoding="utf-8")
        try:
            self.path.chmod(0o600)
        except OSError:
            logger.debug("无法收紧凭据文件权限: %s", self.path)

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)

"""应用配置（通过 .env 覆盖）。"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# 优先加载项目根目录下的 .env
BASE_DIR = Path(__file__).resolve().parents[1]
load_dotenv(BASE_DIR / ".env")

_DURATION_PATTERN = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$")
_DURATION_UNITS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400}

DEFAULT_JWT_SECRET = "your-super-secret-jwt-key-change-in-production"
DEFAULT_JWT_EXPIRES_IN = "24h"


def _to_int(value: str | None, default: int, *, minimum: int = 0) -> int:
    """安全解析整数环境变量。"""

    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        return default
    return parsed if parsed >= minimum else default


def _to_bool(value: str | None, default: bool = False) -> bool:
    """安全解析布尔环境变量。"""

    if value is None:
        return default
    return str(value).strip().lower() in {"1", "true", "on", "yes"}


def _to_duration(value: str | None, default: int) -> int:
    """解析 `15m` / `24h` / `7d` / 纯秒数形式的时长，返回秒。"""

    if value is None:
        return default
    matched = _DURATION_PATTERN.match(str(value).lower())
    if not matched:
        return default
    seconds = int(matched.group(1)) * _DURATION_UNITS[matched.group(2)]
    return seconds if seconds > 0 else default


def is_production(env: str) -> bool:
    return env.strip().lower() in {"prod", "production"}


APP_NAME = os.getenv("APP_NAME", "Exchange Admin")
APP_ENV = os.getenv("APP_ENV", "dev")

MONGO_URL = os.getenv("MONGO_URL", "mongodb://localhost:27017")
MONGO_DB = os.getenv("MONGO_DB", "exchange_admin")

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
REVOCATION_BACKEND = os.getenv("REVOCATION_BACKEND", "memory").strip().lower()
REVOCATION_TTL_SECONDS = _to_int(os.getenv("REVOCATION_TTL_SECONDS"), 86400, minimum=60)

JWT_SECRET = os.getenv("JWT_SECRET", DEFAULT_JWT_SECRET)
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_IN = os.getenv("JWT_EXPIRES_IN", DEFAULT_JWT_EXPIRES_IN)
JWT_REFRESH_EXPIRES_IN = os.getenv("JWT_REFRESH_EXPIRES_IN", "7d")

SUPER_ADMIN_EMAIL = os.getenv("SUPER_ADMIN_EMAIL", "admin@exchange.local")
SUPER_ADMIN_PASSWORD = os.getenv("SUPER_ADMIN_PASSWORD", "admin12345")

APP_PORT = _to_int(os.getenv("APP_PORT"), 8000, minimum=1)
UVICORN_HOST = os.getenv("UVICORN_HOST", "0.0.0.0")
UVICORN_LOG_LEVEL = os.getenv("UVICORN_LOG_LEVEL", "info")
UVICORN_RELOAD = _to_bool(os.getenv("UVICORN_RELOAD"), default=False)


@dataclass(frozen=True, slots=True)
class JwtSettings:
    """令牌签发所需的全部配置。"""

    secret: str
    algorithm: str = "HS256"
    expires_in: str = DEFAULT_JWT_EXPIRES_IN
    refresh_expires_in: str = "7d"

    @property
    def access_ttl_seconds(self) -> int:
        return _to_duration(self.expires_in, 86400)

    @property
    def refresh_ttl_seconds(self) -> int:
        return _to_duration(self.refresh_expires_in, 7 * 86400)


def load_jwt_settings() -> JwtSettings:
    """从环境变量读取 JWT 配置。"""

    return JwtSettings(
        secret=JWT_SECRET,
        algorithm=JWT_ALGORITHM,
        expires_in=JWT_EXPIRES_IN,
        refresh_expires_in=JWT_REFRESH_EXPIRES_IN,
    )

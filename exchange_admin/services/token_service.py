"""JWT 访问令牌 / 刷新令牌的签发与校验。"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable
from uuid import uuid4

from jose import JWTError, jwt

from exchange_admin.config import DEFAULT_JWT_EXPIRES_IN, DEFAULT_JWT_SECRET, JwtSettings, is_production
from exchange_admin.exceptions import ConfigurationError, Unauthenticated
from exchange_admin.models.principal import Principal

logger = logging.getLogger(__name__)

MIN_SECRET_LENGTH = 32
_REQUIRED_CLAIMS = ("sub", "type", "iat", "exp")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TokenType(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


@dataclass(frozen=True, slots=True)
class TokenPair:
    """一次签发得到的访问令牌与刷新令牌。"""

    access_token: str
    refresh_token: str
    expires_in: int

    def as_response(self) -> dict[str, Any]:
        return {
            "accessToken": self.access_token,
            "refreshToken": self.refresh_token,
            "tokenType": "bearer",
            "expiresIn": self.expires_in,
        }


def token_fingerprint(token: str) -> str:
    """令牌 SHA-256 摘要前 16 位，用于日志关联，不泄露令牌本身。"""

    return hashlib.sha256(token.encode("utf-8")).hexdigest()[:16]


def check_secret_strength(secret: str | None, expires_in: str | None) -> bool:
    """启动期配置检查：拒绝占位密钥、过短密钥与默认有效期。"""

    if secret == DEFAULT_JWT_SECRET:
        return False
    if not secret or len(secret) < MIN_SECRET_LENGTH:
        return False
    if not expires_in or expires_in == DEFAULT_JWT_EXPIRES_IN:
        return False
    return True


def ensure_secure_config(settings: JwtSettings, app_env: str) -> None:
    """生产环境配置不安全时终止启动，其余环境只告警。"""

    if check_secret_strength(settings.secret, settings.expires_in):
        return
    message = "JWT 配置不安全：请设置至少 32 位的 JWT_SECRET，并显式配置 JWT_EXPIRES_IN"
    if is_production(app_env):
        raise ConfigurationError(message)
    logger.warning("%s（当前环境 %s，仅告警）", message, app_env)


class TokenService:
    """令牌签发、校验与剩余时间查询。"""

    def __init__(self, settings: JwtSettings, clock: Callable[[], datetime] = utc_now):
        self._settings = settings
        self._clock = clock

    @property
    def access_ttl_seconds(self) -> int:
        return self._settings.access_ttl_seconds

    @property
    def refresh_ttl_seconds(self) -> int:
        return self._settings.refresh_ttl_seconds

    def _now_ts(self) -> int:
        return int(self._clock().timestamp())

    def _encode(self, principal: Principal, token_type: TokenType, ttl_seconds: int) -> str:
        issued_at = self._now_ts()
        claims = {
            "sub": principal.sub,
            "email": principal.email,
            "role": principal.role,
            "type": token_type.value,
            "iat": issued_at,
            "exp": issued_at + ttl_seconds,
            "jti": uuid4().hex,
        }
        return jwt.encode(claims, self._settings.secret, algorithm=self._settings.algorithm)

    def issue(self, principal: Principal) -> TokenPair:
        return TokenPair(
            access_token=self._encode(principal, TokenType.ACCESS, self.access_ttl_seconds),
            refresh_token=self._encode(principal, TokenType.REFRESH, self.refresh_ttl_seconds),
            expires_in=self.access_ttl_seconds,
        )

    def validate(self, token: str | None, expected_type: TokenType) -> dict[str, Any]:
        """校验签名、有效期与令牌类型，任一失败都抛 Unauthenticated。"""

        if not token:
            raise Unauthenticated()
        try:
            # 过期时间由注入的时钟判断
            claims = jwt.decode(
                token,
                self._settings.secret,
                algorithms=[self._settings.algorithm],
                options={"verify_exp": False, "verify_aud": False},
            )
        except JWTError as exc:
            logger.debug("令牌解码失败 fingerprint=%s: %s", token_fingerprint(token), exc)
            raise Unauthenticated() from exc

        if any(claims.get(key) in (None, "") for key in _REQUIRED_CLAIMS):
            raise Unauthenticated()
        if claims.get("type") != expected_type.value:
            raise Unauthenticated()

        try:
            expires_at = int(claims["exp"])
        except (TypeError, ValueError) as exc:
            raise Unauthenticated() from exc
        if self._now_ts() >= expires_at:
            raise Unauthenticated()
        return claims

    def principal_from_claims(self, claims: dict[str, Any]) -> Principal:
        return Principal(
            sub=str(claims["sub"]),
            email=str(claims.get("email") or ""),
            role=str(claims.get("role") or ""),
        )

    def remaining_lifetime(self, token: str | None) -> int:
        """仅供界面展示的剩余秒数，解析失败返回 0，不能作为鉴权依据。"""

        if not token:
            return 0
        try:
            claims = jwt.get_unverified_claims(token)
            return max(0, int(claims["exp"]) - self._now_ts())
        except (JWTError, KeyError, TypeError, ValueError):
            return 0

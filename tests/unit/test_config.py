from __future__ import annotations

import pytest

from exchange_admin import config


@pytest.mark.unit
@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("15m", 900),
        ("24h", 86400),
        ("7d", 604800),
        ("30s", 30),
        ("120", 120),
        (" 2H ", 7200),
        ("0m", 42),
        ("soon", 42),
        (None, 42),
    ],
)
def test_to_duration(raw: str | None, expected: int) -> None:
    assert config._to_duration(raw, 42) == expected


@pytest.mark.unit
def test_to_int_and_to_bool() -> None:
    assert config._to_int("8", 1) == 8
    assert config._to_int("x", 1) == 1
    assert config._to_int("10", 1, minimum=60) == 1
    assert config._to_bool("yes") is True
    assert config._to_bool("off", default=True) is False
    assert config._to_bool(None, default=True) is True


@pytest.mark.unit
def test_jwt_settings_ttls() -> None:
    settings = config.JwtSettings(secret="s", expires_in="15m", refresh_expires_in="7d")

    assert settings.access_ttl_seconds == 900
    assert settings.refresh_ttl_seconds == 7 * 86400


@pytest.mark.unit
def test_is_production() -> None:
    assert config.is_production("prod") is True
    assert config.is_production(" Production ") is True
    assert config.is_production("dev") is False

"""审计日志：记录鉴权拒绝与权限数据变更。"""

from __future__ import annotations

import logging
from typing import Any

audit_logger = logging.getLogger("exchange_admin.audit")


def _format_fields(fields: dict[str, Any]) -> str:
    return " ".join(f"{key}={value}" for key, value in fields.items() if value not in (None, ""))


def record_action(
    *,
    action: str,
    module: str,
    operator: str,
    target: str = "",
    target_id: str = "",
    detail: str = "",
) -> None:
    """记录一次权限数据变更。"""

    audit_logger.info(
        "%s.%s %s",
        module,
        action,
        _format_fields(
            {
                "operator": operator or "anonymous",
                "target": target,
                "target_id": target_id,
                "detail": detail,
            }
        ),
    )


def record_denial(
    *,
    reason: str,
    path: str,
    method: str,
    principal_id: str = "",
    principal_email: str = "",
    required: str = "",
    detail: str = "",
) -> None:
    """记录一次鉴权拒绝；详细原因只进入日志，不返回给调用方。"""

    audit_logger.warning(
        "guard.deny %s",
        _format_fields(
            {
                "reason": reason,
                "method": method,
                "path": path,
                "principal": principal_id or "anonymous",
                "email": principal_email,
                "required": required,
                "detail": detail,
            }
        ),
    )

"""HTTP 服务启动入口。"""

from __future__ import annotations

import logging

import uvicorn

from exchange_admin.config import APP_ENV, APP_PORT, UVICORN_HOST, UVICORN_LOG_LEVEL, UVICORN_RELOAD

logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
logger = logging.getLogger(__name__)


def main() -> int:
    logger.info("启动参数: env=%s host=%s port=%d reload=%s", APP_ENV, UVICORN_HOST, APP_PORT, UVICORN_RELOAD)
    uvicorn.run(
        "exchange_admin.main:create_app",
        factory=True,
        host=UVICORN_HOST,
        port=APP_PORT,
        log_level=UVICORN_LOG_LEVEL,
        reload=UVICORN_RELOAD,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

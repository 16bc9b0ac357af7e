# mediavault/core/logger.py
from __future__ import annotations

"""
MediaVault — Logging (Loguru)
-----------------------------
One console sink, pretty or JSON, plus an intercept that routes stdlib
`logging` records (our `mediavault.*` module loggers, uvicorn, botocore)
into Loguru. Every line carries the `request_id` bound by
`RequestIDMiddleware` ("N/A" outside a request).

`configure_logging()` is called by the app factory; calling it again
replaces the sink, so tests and CLI tools can pick their own level.

Env
---
LOG_LEVEL=INFO|DEBUG|WARNING|ERROR (default: INFO)
LOG_JSON=1 (JSON lines on stdout; pretty console logs otherwise)
APP_DEBUG=1 (backtrace/diagnose on the console sink)
"""

import json
import logging
import os
import sys
from typing import Any, Dict, Optional

from loguru import logger

from mediavault.core.config import settings

_TRUTHY = {"1", "true", "yes"}

# stdlib loggers forwarded to Loguru, with their floor level (None = LOG_LEVEL)
_INTERCEPTED: Dict[str, Optional[int]] = {
    "mediavault": None,
    "uvicorn": None,
    "uvicorn.error": None,
    "fastapi": None,
    "starlette": None,
    "botocore": logging.WARNING,  # credential lookups and retries are noisy
    "boto3": logging.WARNING,
}


def _env_flag(name: str) -> bool:
    return os.getenv(name, "0").lower() in _TRUTHY


def _fmt_pretty(record) -> str:
    record["extra"].setdefault("request_id", "N/A")
    name = record["name"].replace("<", "[").replace(">", "]")
    func = record["function"].replace("<", "[").replace(">", "]")
    return (
        f"<green>{record['time']:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
        f"<level>{record['level']:<8}</level> | "
        f"<cyan>{name}</cyan>:<cyan>{func}</cyan>:<cyan>{record['line']}</cyan> - "
        "<level>{message}</level> | request_id={extra[request_id]}\n{exception}"
    )


def _json_sink(message) -> None:
    """JSON lines for log shippers; extras (request_id, bound fields) are flattened in."""
    record = message.record
    payload: Dict[str, Any] = {
        "time": record["time"].strftime("%Y-%m-%dT%H:%M:%S.%f%z"),
        "level": record["level"].name,
        "service": settings.PROJECT_NAME,
        "env": settings.ENV,
        "logger": record["name"],
        "line": record["line"],
        "message": record["message"],
        "request_id": record["extra"].get("request_id", "N/A"),
    }
    for k, v in record["extra"].items():
        payload.setdefault(k, v)
    if record["exception"] is not None:
        payload["exception"] = repr(record["exception"].value)
    sys.stdout.write(json.dumps(payload, ensure_ascii=False, default=str) + "\n")


class InterceptHandler(logging.Handler):
    """Forward stdlib records to Loguru; the contextualized request_id rides along."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        logger.opt(depth=6, exception=record.exc_info).log(level, record.getMessage())


def configure_logging(level: Optional[str] = None, *, json_logs: Optional[bool] = None) -> None:
    level = (level or settings.LOG_LEVEL).upper()
    json_logs = _env_flag("LOG_JSON") if json_logs is None else json_logs
    debug = _env_flag("APP_DEBUG")

    logger.remove()
    if json_logs:
        logger.add(_json_sink, level=level, backtrace=False, diagnose=False)
    else:
        logger.add(sys.stdout, level=level, format=_fmt_pretty, backtrace=debug, diagnose=debug)

    for name, floor in _INTERCEPTED.items():
        std_logger = logging.getLogger(name)
        std_logger.handlers = [InterceptHandler()]
        std_logger.setLevel(floor if floor is not None else level)
        std_logger.propagate = False


__all__ = ["configure_logging", "InterceptHandler"]

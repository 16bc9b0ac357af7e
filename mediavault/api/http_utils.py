from __future__ import annotations

"""
MediaVault · HTTP Utilities
===========================

Shared helpers for API routers:

- Success envelope `{statusCode, message, data}` with camelCase payloads
- No-store caching headers (responses embed presigned URLs)
"""

from typing import Any, Dict

from fastapi import status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

NO_STORE_HEADERS = {"Cache-Control": "no-store", "Pragma": "no-cache"}


def json_no_store(message: str, data: BaseModel, status_code: int = status.HTTP_200_OK) -> JSONResponse:
    body: Dict[str, Any] = {
        "statusCode": status_code,
        "message": message,
        "data": data.model_dump(by_alias=True, mode="json"),
    }
    return JSONResponse(body, status_code=status_code, headers=dict(NO_STORE_HEADERS))


__all__ = ["json_no_store", "NO_STORE_HEADERS"]

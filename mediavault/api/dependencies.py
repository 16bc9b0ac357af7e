# mediavault/api/dependencies.py
from __future__ import annotations

"""
Request-scoped dependencies for the v1 routers.

- `get_store()` builds the S3 adapter once per process; tests replace it via
  `app.dependency_overrides[get_store]`.
- `get_current_user_id()` reads the user id injected by the upstream
  authorizer (header name from `AUTH_USER_ID_HEADER`). Token validation is
  not done here.
"""

from functools import lru_cache

from fastapi import Depends, Request

from mediavault.core.config import settings
from mediavault.core.exceptions import AuthenticationError, ValidationError
from mediavault.core.storage import ObjectStore
from mediavault.services import CatalogService, MutationService, UploadService
from mediavault.utils.aws import S3Client
from mediavault.utils.sanitize import sanitize_user_id


@lru_cache(maxsize=1)
def _s3_store() -> S3Client:
    return S3Client()


def get_store() -> ObjectStore:
    """Shared object store (503 `StoreError` when S3 is not configured)."""
    return _s3_store()


def get_current_user_id(request: Request) -> str:
    raw = request.headers.get(settings.AUTH_USER_ID_HEADER)
    if not raw or not raw.strip():
        raise AuthenticationError("User authentication required")
    try:
        return sanitize_user_id(raw)
    except ValidationError:
        raise AuthenticationError("Invalid authenticated user id") from None


def get_upload_service(store: ObjectStore = Depends(get_store)) -> UploadService:
    return UploadService(store)


def get_catalog_service(store: ObjectStore = Depends(get_store)) -> CatalogService:
    return CatalogService(store)


def get_mutation_service(store: ObjectStore = Depends(get_store)) -> MutationService:
    return MutationService(store)


__all__ = [
    "get_store",
    "get_current_user_id",
    "get_upload_service",
    "get_catalog_service",
    "get_mutation_service",
]

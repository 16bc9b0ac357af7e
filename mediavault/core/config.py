# mediavault/core/config.py
from __future__ import annotations

"""
# MediaVault — Centralized Configuration (Pydantic v2)

Single `settings` object with strongly-typed, environment-driven config.

## Goals
- Safe defaults for local/dev; the bucket is only enforced when the S3
  adapter is actually constructed, so imports never crash in tests.
- Bounds enforced at load time (part size floor, presign TTL window,
  per-request file cap) instead of scattered runtime checks.
- Allow/deny lists are configuration data (CSV → normalized collections).

## Usage
    from mediavault.core.config import settings
"""

import logging
from typing import FrozenSet, List, Literal, Optional

from dotenv import load_dotenv
from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

log = logging.getLogger(__name__)
load_dotenv()  # harmless in prod; convenient in dev

MIB = 1024 * 1024
GIB = 1024 * MIB

# S3 rejects non-final parts smaller than this.
MIN_PART_SIZE = 5 * MIB

DEFAULT_ALLOWED_MIME_TYPES = (
    "image/jpeg,image/png,image/gif,image/webp,"
    "video/mp4,video/quicktime,video/x-msvideo,"
    "audio/mpeg,audio/wav"
)

DEFAULT_DANGEROUS_EXTENSIONS = (
    "exe,bat,cmd,com,pif,scr,vbs,js,jse,wsf,wsh,msi,msp,hta,cpl,jar,app,"
    "deb,rpm,sh,bash,ps1,html,htm,php,asp,aspx,jsp"
)


# ─────────────────────────────────────────────────────────────
# Small helpers
# ─────────────────────────────────────────────────────────────
def _split_csv(v: str | None) -> list[str]:
    """Split a comma-separated string into a trimmed list (empty-safe)."""
    if not v:
        return []
    return [s.strip() for s in str(v).split(",") if s and s.strip()]


# ─────────────────────────────────────────────────────────────
# Settings
# ─────────────────────────────────────────────────────────────
class Settings(BaseSettings):
    """
    Global application settings sourced from environment.

    Storage:
        - `S3_BUCKET_NAME` is required by the S3 adapter.
        - `AWS_S3_ENDPOINT_URL` points at MinIO/LocalStack in dev.

    Uploads:
        - Part size has a hard 5 MiB floor (S3 multipart minimum).
        - Presigned URL TTL must stay within [60s, 7 days] (SigV4 limit).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # don't crash on unknown keys
    )

    # ── App meta ──────────────────────────────────────────────
    PROJECT_NAME: str = "MediaVault API"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    ENV: Literal["development", "staging", "production"] = "development"
    ENABLE_DOCS: bool = True
    LOG_LEVEL: str = "INFO"

    # ── Auth boundary ─────────────────────────────────────────
    # The upstream authorizer injects the verified user id in this header.
    AUTH_USER_ID_HEADER: str = "X-Authenticated-User-Id"

    # ── Object store ──────────────────────────────────────────
    S3_BUCKET_NAME: Optional[str] = None
    AWS_REGION: str = "us-east-1"
    AWS_S3_ENDPOINT_URL: Optional[str] = None
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[SecretStr] = None
    AWS_SESSION_TOKEN: Optional[SecretStr] = None
    AWS_SSE_MODE: Optional[Literal["AES256", "aws:kms"]] = "AES256"
    AWS_KMS_KEY_ID: Optional[str] = None

    # ── Key layout & multipart ────────────────────────────────
    S3_KEY_PREFIX: str = "uploads"
    S3_PART_SIZE: int = Field(10 * MIB, ge=MIN_PART_SIZE)
    PRESIGNED_URL_EXPIRY: int = Field(3600, ge=60, le=604800)

    # ── Validation limits ─────────────────────────────────────
    MAX_FILE_SIZE: int = Field(5 * GIB, ge=1)
    MIN_FILE_SIZE: int = Field(1, ge=0)
    MAX_FILES_PER_REQUEST: int = Field(10, ge=1, le=100)
    MAX_FILENAME_LENGTH: int = Field(255, ge=1, le=1024)
    MAX_DELETE_KEYS: int = Field(100, ge=1, le=1000)
    SEARCH_MAX_SCAN_KEYS: int = Field(10_000, ge=1)
    ALLOWED_MIME_TYPES: str = DEFAULT_ALLOWED_MIME_TYPES  # CSV
    DANGEROUS_EXTENSIONS: str = DEFAULT_DANGEROUS_EXTENSIONS  # CSV

    # ── Validators / normalizers ──────────────────────────────
    @field_validator("S3_KEY_PREFIX", mode="before")
    @classmethod
    def _normalize_prefix(cls, v: str | None) -> str:
        s = str(v or "").strip().strip("/")
        if not s or ".." in s:
            raise ValueError("S3_KEY_PREFIX must be a non-empty relative path")
        return s

    @field_validator("ALLOWED_MIME_TYPES", mode="before")
    @classmethod
    def _require_mime_types(cls, v: str | None) -> str:
        items = [s.lower() for s in _split_csv(v)]
        if not items:
            raise ValueError("ALLOWED_MIME_TYPES must contain at least one MIME type")
        return ",".join(items)

    @field_validator("DANGEROUS_EXTENSIONS", mode="before")
    @classmethod
    def _normalize_extensions(cls, v: str | None) -> str:
        return ",".join(s.lower().lstrip(".") for s in _split_csv(v))

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def _upper_level(cls, v: str | None) -> str:
        return str(v or "INFO").upper()

    @model_validator(mode="after")
    def _check_size_window(self) -> "Settings":
        if self.MAX_FILE_SIZE < self.MIN_FILE_SIZE:
            raise ValueError("MAX_FILE_SIZE must be greater than MIN_FILE_SIZE")
        return self

    # ── Derived / convenience properties ─────────────────────
    @property
    def allowed_mime_types(self) -> List[str]:
        return _split_csv(self.ALLOWED_MIME_TYPES)

    @property
    def dangerous_extensions(self) -> FrozenSet[str]:
        return frozenset(_split_csv(self.DANGEROUS_EXTENSIONS))

    @property
    def is_production(self) -> bool:
        return self.ENV.lower() == "production"


settings = Settings()

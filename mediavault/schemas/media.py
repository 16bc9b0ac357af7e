from __future__ import annotations

"""
MediaVault • Media Schemas & Enums
==================================

Purpose
-------
- Request/response models for the upload, catalog and mutation operations.
- Wire format is camelCase (`fileId`, `storageKey`, `thumbnailUrl`...);
  Python attributes stay snake_case (`populate_by_name=True`).

Design
------
- Request fields that the services validate themselves (and report
  together, per file) are Optional here, so a missing `fileSize` becomes a
  per-file validation message instead of a framework-level 422.
- Only string-backed enums (safe JSON serialization). Do not rename enum
  values once deployed: they are embedded in object keys.
"""

from enum import Enum as PyEnum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# === Enums ================================================================

class MediaCategory(str, PyEnum):
    """Top-level media bucket encoded in every key."""
    VISUAL = "visual"   # video + image
    AUDIO = "audio"

    @classmethod
    def for_mime(cls, mime_type: str) -> "MediaCategory":
        """`audio/*` → audio; everything else (video/*, image/*) → visual."""
        return cls.AUDIO if (mime_type or "").strip().lower().startswith("audio/") else cls.VISUAL


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# === Upload initiation =====================================================

class FileDescriptor(_WireModel):
    """A file the client intends to upload."""
    filename: Optional[str] = None
    file_type: Optional[str] = None
    file_size: Optional[int] = None


class MediaFileGroup(_WireModel):
    """Primary asset plus optional JPEG thumbnail (visual media only)."""
    main: Optional[FileDescriptor] = None
    thumbnail: Optional[FileDescriptor] = None


class InitiateUploadRequest(_WireModel):
    files: Optional[List[MediaFileGroup]] = None


class PresignedPart(_WireModel):
    part_number: int
    upload_url: str


class UploadConfiguration(_WireModel):
    """Everything the client needs to PUT parts and later complete the upload."""
    file_id: str
    storage_key: str
    bucket: str
    session_id: str
    part_size: int  # bytes per part; only the last part may be smaller
    part_count: int
    parts: List[PresignedPart]
    filename: str
    file_type: str
    expires_at: str


class UploadGroupConfiguration(_WireModel):
    main: UploadConfiguration
    thumbnail: Optional[UploadConfiguration] = None


class InitiateUploadResult(_WireModel):
    uploads: List[UploadGroupConfiguration]
    total_files: int


# === Upload completion =====================================================

class PartDescriptor(_WireModel):
    part_number: Optional[int] = None
    etag: Optional[str] = None


class CompleteUploadRequest(_WireModel):
    file_id: Optional[str] = None
    storage_key: Optional[str] = None
    session_id: Optional[str] = None
    parts: Optional[List[PartDescriptor]] = None


class CompletedMetadata(_WireModel):
    filename: str
    file_type: str
    uploaded_at: str


class CompletedUpload(_WireModel):
    file_id: str
    storage_key: str
    bucket: str
    location: str
    metadata: CompletedMetadata


# === Catalog (list/search) =================================================

class MediaFileInfo(_WireModel):
    """Read-side projection of one primary asset."""
    file_key: str
    filename: str
    media_type: MediaCategory
    size: int
    uploaded_at: str
    url: str
    thumbnail_url: Optional[str] = None


class MediaPage(_WireModel):
    files: List[MediaFileInfo]
    count: int
    has_more: bool
    next_token: Optional[str] = None


class SearchResult(MediaPage):
    query: str
    media_type: Optional[MediaCategory] = None


# === Mutations ============================================================

class DeleteMediaRequest(_WireModel):
    file_keys: Optional[List[str]] = None


class DeleteFailure(_WireModel):
    file_key: str
    error: str
    primary_deleted: bool = False


class DeleteMediaResult(_WireModel):
    deleted: List[str] = Field(default_factory=list)
    failed: List[DeleteFailure] = Field(default_factory=list)
    total_requested: int
    success_count: int
    failure_count: int


class RenameMediaRequest(_WireModel):
    file_key: Optional[str] = None
    new_filename: Optional[str] = None


class RenameMediaResult(_WireModel):
    old_key: str
    new_key: str
    filename: str
    url: str
    thumbnail_url: Optional[str] = None

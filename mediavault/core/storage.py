from __future__ import annotations

"""
MediaVault • Object Key Layout & Store Contract
===============================================

Documented key layout (single private bucket):

    s3://{bucket}/
      {prefix}/{user_id}/{category}/{YYYY}/{MM}/{DD}/{group_id}/{filename.ext}
      {prefix}/{user_id}/{category}/{YYYY}/{MM}/{DD}/{group_id}/thumbnail/{stem}.jpg

- `category` is `visual` (video/image) or `audio`.
- `group_id` is minted at upload initiation and shared by a primary asset
  and its (optional, visual-only) JPEG thumbnail, so a group directory
  holds at most two objects.
- Keys are immutable: a rename always produces a new key.

Security
--------
- The user id is positional (second segment after the prefix); every read or
  mutation on a caller-supplied key is gated on it.
- All objects private; access only via presigned URLs.
- Default encryption SSE-S3 (AES256).

Store contract
--------------
`ObjectStore` is the capability services receive at construction. The S3
implementation lives in `mediavault.utils.aws.S3Client`; tests substitute an
in-memory fake.
"""

import posixpath
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from mediavault.schemas.media import MediaCategory

THUMBNAIL_SEGMENT = "thumbnail"
THUMBNAIL_EXTENSION = "jpg"


# ─────────────────────────────────────────────────────────────────────────────
# 🗝️ Keys
# ─────────────────────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class StorageKey:
    """Structured form of an object key. `str(key)` yields the wire path."""

    prefix: str
    user_id: str
    category: MediaCategory
    year: int
    month: int
    day: int
    group_id: str
    filename: str
    is_thumbnail: bool = False

    @property
    def directory(self) -> str:
        return (
            f"{self.prefix}/{self.user_id}/{self.category.value}/"
            f"{self.year:04d}/{self.month:02d}/{self.day:02d}/{self.group_id}"
        )

    @property
    def group(self) -> "MediaGroup":
        return MediaGroup(
            prefix=self.prefix,
            user_id=self.user_id,
            category=self.category,
            created=date(self.year, self.month, self.day),
            group_id=self.group_id,
        )

    def build(self) -> str:
        middle = f"{THUMBNAIL_SEGMENT}/" if self.is_thumbnail else ""
        return f"{self.directory}/{middle}{self.filename}"

    def __str__(self) -> str:
        return self.build()

    def with_filename(self, filename: str) -> "StorageKey":
        """Same directory, new final segment (rename target)."""
        return replace(self, filename=filename)

    def thumbnail(self) -> "StorageKey":
        """The companion thumbnail key of a primary key."""
        return self.group.thumbnail_key(self.filename)

    @classmethod
    def parse(cls, key: str, prefix: str) -> Optional["StorageKey"]:
        """
        Parse a wire key back into its parts; returns None when the key does
        not follow the layout. Shape validation (charset, traversal) lives in
        `mediavault.utils.sanitize.validate_storage_key`.
        """
        head = f"{prefix.strip('/')}/"
        if not key or not key.startswith(head):
            return None
        parts = key[len(head):].split("/")
        is_thumb = len(parts) == 8 and parts[6] == THUMBNAIL_SEGMENT
        if len(parts) != 7 and not is_thumb:
            return None
        user_id, category, year, month, day, group_id = parts[:6]
        try:
            cat = MediaCategory(category)
            y, m, d = int(year), int(month), int(day)
        except ValueError:
            return None
        return cls(
            prefix=prefix.strip("/"),
            user_id=user_id,
            category=cat,
            year=y,
            month=m,
            day=d,
            group_id=group_id,
            filename=parts[-1],
            is_thumbnail=is_thumb,
        )


@dataclass(frozen=True)
class MediaGroup:
    """
    The `{primary, thumbnail?}` unit sharing one group id and directory.

    Both keys derive from the same `(prefix, user, category, date, group)`
    tuple; the thumbnail name is always the primary's stem with `.jpg`.
    """

    prefix: str
    user_id: str
    category: MediaCategory
    group_id: str
    created: date = field(default_factory=lambda: datetime.now(timezone.utc).date())

    def primary_key(self, filename: str) -> StorageKey:
        return StorageKey(
            prefix=self.prefix,
            user_id=self.user_id,
            category=self.category,
            year=self.created.year,
            month=self.created.month,
            day=self.created.day,
            group_id=self.group_id,
            filename=filename,
        )

    def thumbnail_key(self, primary_filename: str) -> StorageKey:
        if self.category is not MediaCategory.VISUAL:
            raise ValueError("Only visual media groups carry thumbnails")
        return replace(
            self.primary_key(thumbnail_filename_for(primary_filename)),
            is_thumbnail=True,
        )


def thumbnail_filename_for(primary_filename: str) -> str:
    """`clip.final.mp4` → `clip.final.jpg` (thumbnails are always JPEG)."""
    stem, _ext = posixpath.splitext(primary_filename)
    return f"{stem or primary_filename}.{THUMBNAIL_EXTENSION}"


def user_prefix(prefix: str, user_id: str, category: Optional[MediaCategory] = None) -> str:
    """Listing prefix for a user's media, optionally narrowed to one category."""
    base = f"{prefix.strip('/')}/{user_id}/"
    return f"{base}{category.value}/" if category else base


# ─────────────────────────────────────────────────────────────────────────────
# 🔌 Store contract
# ─────────────────────────────────────────────────────────────────────────────
@dataclass
class ObjectEntry:
    """One listed object."""

    key: str
    size: int
    last_modified: datetime


@dataclass
class ListPage:
    entries: List[ObjectEntry]
    truncated: bool = False
    next_token: Optional[str] = None


@runtime_checkable
class ObjectStore(Protocol):
    """Synchronous store capability; services call it through `asyncio.to_thread`."""

    bucket: str

    def open_multipart_session(self, key: str, content_type: str, metadata: Dict[str, str]) -> str: ...

    def presign_part_upload(self, key: str, session_id: str, part_number: int, ttl_seconds: int) -> str: ...

    def presign_read(self, key: str, ttl_seconds: int) -> str: ...

    def assemble_multipart(self, key: str, session_id: str, parts: List[Dict[str, Any]]) -> Dict[str, Any]: ...

    def abort_multipart_session(self, key: str, session_id: str) -> None: ...

    def head_object(self, key: str) -> Optional[Dict[str, Any]]:
        """`{size, content_type, last_modified, metadata}` or None when missing."""
        ...

    def list_objects(self, prefix: str, max_keys: int, continuation_token: Optional[str] = None) -> ListPage: ...

    def copy_object(
        self,
        src_key: str,
        dst_key: str,
        metadata: Optional[Dict[str, str]] = None,
        content_type: Optional[str] = None,
    ) -> None: ...

    def delete_object(self, key: str) -> None: ...

    def ping(self) -> bool: ...


__all__ = [
    "THUMBNAIL_SEGMENT",
    "THUMBNAIL_EXTENSION",
    "StorageKey",
    "MediaGroup",
    "thumbnail_filename_for",
    "user_prefix",
    "ObjectEntry",
    "ListPage",
    "ObjectStore",
]

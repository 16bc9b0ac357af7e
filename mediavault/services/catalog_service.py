# mediavault/services/catalog_service.py
from __future__ import annotations

"""
MediaVault — Media Catalog (list & search)
==========================================

Read-side projection of a user's objects. Thumbnails are never listed on
their own: each primary asset carries its `thumbnailUrl` (visual only),
derived from the group layout and probed with a HEAD.

- `list_media` passes the store's pagination straight through.
- `search_media` scans the category prefix (or both), filters by filename,
  orders every result set most-recent-first, and paginates with an opaque
  offset token. Only the returned page is presigned.
"""

import asyncio
import base64
import binascii
import logging
from typing import List, Optional, Tuple

from mediavault.core.config import Settings, settings as default_settings
from mediavault.core.exceptions import StoreError, ValidationError
from mediavault.core.storage import ObjectEntry, ObjectStore, StorageKey, user_prefix
from mediavault.schemas.media import MediaCategory, MediaFileInfo, MediaPage, SearchResult
from mediavault.services.validation_service import ValidationService
from mediavault.utils.sanitize import sanitize_user_id

logger = logging.getLogger(__name__)

LIST_PAGE_SIZE = 1000
_TOKEN_PREFIX = "offset:"


def encode_offset_token(offset: int) -> str:
    return base64.urlsafe_b64encode(f"{_TOKEN_PREFIX}{offset}".encode()).decode()


def decode_offset_token(token: Optional[str]) -> int:
    """0 for no token; `ValidationError` for anything we did not issue."""
    if not token:
        return 0
    try:
        raw = base64.urlsafe_b64decode(token.encode()).decode()
    except (binascii.Error, UnicodeDecodeError, ValueError):
        raw = ""
    if raw.startswith(_TOKEN_PREFIX) and raw[len(_TOKEN_PREFIX):].isdigit():
        return int(raw[len(_TOKEN_PREFIX):])
    raise ValidationError("Invalid continuation token", details={"field": "continuationToken"})


class CatalogService:
    def __init__(
        self,
        store: ObjectStore,
        *,
        config: Optional[Settings] = None,
        validator: Optional[ValidationService] = None,
    ) -> None:
        self.store = store
        self.settings = config or default_settings
        self.validator = validator or ValidationService(self.settings)

    # ─────────────────────────────────────────────────────────────
    # 📃 List
    # ─────────────────────────────────────────────────────────────
    async def list_media(
        self,
        user_id: str,
        *,
        media_type: Optional[MediaCategory] = None,
        limit: Optional[int] = None,
        continuation_token: Optional[str] = None,
    ) -> MediaPage:
        uid = sanitize_user_id(user_id)
        max_keys = self.validator.validate_limit(limit)
        prefix = user_prefix(self.settings.S3_KEY_PREFIX, uid, media_type)

        page = await asyncio.to_thread(self.store.list_objects, prefix, max_keys, continuation_token)
        primaries: List[Tuple[ObjectEntry, StorageKey]] = []
        for entry in page.entries:
            parsed = self._primary_key(entry)
            if parsed is not None:
                primaries.append((entry, parsed))
        files = await self._describe(primaries)

        return MediaPage(
            files=files,
            count=len(files),
            has_more=page.truncated,
            next_token=page.next_token if page.truncated else None,
        )

    # ─────────────────────────────────────────────────────────────
    # 🔎 Search
    # ─────────────────────────────────────────────────────────────
    async def search_media(
        self,
        user_id: str,
        query: Optional[str],
        *,
        media_type: Optional[MediaCategory] = None,
        limit: Optional[int] = None,
        continuation_token: Optional[str] = None,
    ) -> SearchResult:
        uid = sanitize_user_id(user_id)
        q = self.validator.validate_query(query)
        size = self.validator.validate_limit(limit)
        offset = decode_offset_token(continuation_token)

        categories = [media_type] if media_type else list(MediaCategory)
        scans = await asyncio.gather(
            *(self._scan(user_prefix(self.settings.S3_KEY_PREFIX, uid, c)) for c in categories)
        )

        needle = q.lower()
        matches: List[Tuple[ObjectEntry, StorageKey]] = []
        for entries in scans:
            for entry in entries:
                parsed = self._primary_key(entry)
                if parsed is not None and needle in parsed.filename.lower():
                    matches.append((entry, parsed))

        # Most recent first on every path; key breaks ties deterministically.
        matches.sort(key=lambda m: (m[0].last_modified, m[0].key), reverse=True)

        window = matches[offset:offset + size]
        has_more = offset + size < len(matches)
        files = await self._describe(window)
        return SearchResult(
            files=files,
            count=len(files),
            has_more=has_more,
            next_token=encode_offset_token(offset + size) if has_more else None,
            query=q,
            media_type=media_type,
        )

    async def _scan(self, prefix: str) -> List[ObjectEntry]:
        """Collect every entry under `prefix`, bounded by `SEARCH_MAX_SCAN_KEYS`."""
        cap = self.settings.SEARCH_MAX_SCAN_KEYS
        out: List[ObjectEntry] = []
        token: Optional[str] = None
        while True:
            page = await asyncio.to_thread(
                self.store.list_objects, prefix, min(LIST_PAGE_SIZE, cap - len(out)), token
            )
            out.extend(page.entries)
            if not page.truncated or not page.next_token:
                break
            if len(out) >= cap:
                logger.warning("Search scan of %s stopped at %d keys", prefix, cap)
                break
            token = page.next_token
        return out[:cap]

    # ─────────────────────────────────────────────────────────────
    # 🧱 Projection
    # ─────────────────────────────────────────────────────────────
    def _primary_key(self, entry: ObjectEntry) -> Optional[StorageKey]:
        parsed = StorageKey.parse(entry.key, self.settings.S3_KEY_PREFIX)
        if parsed is None:
            logger.debug("Skipping object outside the key layout: %s", entry.key)
            return None
        return None if parsed.is_thumbnail else parsed

    async def _describe(self, items: List[Tuple[ObjectEntry, StorageKey]]) -> List[MediaFileInfo]:
        return list(await asyncio.gather(*(self._describe_one(e, k) for e, k in items)))

    async def _describe_one(self, entry: ObjectEntry, key: StorageKey) -> MediaFileInfo:
        ttl = self.settings.PRESIGNED_URL_EXPIRY

        url = await asyncio.to_thread(self.store.presign_read, entry.key, ttl)
        thumbnail_url: Optional[str] = None
        if key.category is MediaCategory.VISUAL:
            thumbnail_url = await self._thumbnail_url(str(key.thumbnail()), ttl)

        return MediaFileInfo(
            file_key=entry.key,
            filename=key.filename,
            media_type=key.category,
            size=entry.size,
            uploaded_at=entry.last_modified.isoformat(),
            url=url,
            thumbnail_url=thumbnail_url,
        )

    async def _thumbnail_url(self, thumb_key: str, ttl: int) -> Optional[str]:
        try:
            head = await asyncio.to_thread(self.store.head_object, thumb_key)
        except StoreError as e:
            # A failed probe degrades to "no thumbnail" rather than failing the page.
            logger.warning("Thumbnail probe failed key=%s: %s", thumb_key, e)
            return None
        if head is None:
            return None
        return await asyncio.to_thread(self.store.presign_read, thumb_key, ttl)


__all__ = ["CatalogService", "encode_offset_token", "decode_offset_token"]

# mediavault/services/mutation_service.py
from __future__ import annotations

"""
MediaVault — Media Mutations (delete & rename)
==============================================

Both operations move a primary asset and its thumbnail as one unit.

Delete
------
Every key is validated and ownership-gated before anything is removed.
Keys then run concurrently: primary first, then the derived thumbnail
(visual only). A thumbnail failure never rolls back the primary; it is
reported on that key's failure entry with `primaryDeleted=True`.

Rename (copy → copy → delete → delete)
--------------------------------------
1. validate key, ownership, new name, unchanged extension
2. conflict check on the new key, existence check on the old key
3. copy primary (metadata `originalfilename` replaced)
4. copy thumbnail when the old one exists
5. delete old primary, then old thumbnail

The original stays in place until both copies succeed, so an interruption
after step 3 or 4 leaves a duplicate and never a loss. Failures in step 5
are logged and the rename still succeeds.
"""

import asyncio
import logging
from typing import Optional, Tuple

from mediavault.core.config import Settings, settings as default_settings
from mediavault.core.exceptions import (
    AppException,
    ConflictError,
    ErrorCode,
    NotFoundError,
    StoreError,
    ValidationError,
)
from mediavault.core.storage import ObjectStore, StorageKey
from mediavault.schemas.media import (
    DeleteFailure,
    DeleteMediaRequest,
    DeleteMediaResult,
    MediaCategory,
    RenameMediaRequest,
    RenameMediaResult,
)
from mediavault.services.validation_service import ValidationService
from mediavault.utils.sanitize import ensure_extension_match, sanitize_user_id

logger = logging.getLogger(__name__)


def _reason(exc: Exception) -> str:
    return exc.message if isinstance(exc, AppException) else "Unexpected error while deleting"


class MutationService:
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

    def _parse(self, key: str) -> StorageKey:
        parsed = StorageKey.parse(key, self.settings.S3_KEY_PREFIX)
        if parsed is None:
            raise ValidationError("File key does not match expected format", code=ErrorCode.INVALID_KEY)
        return parsed

    # ─────────────────────────────────────────────────────────────
    # 🗑️ Delete
    # ─────────────────────────────────────────────────────────────
    async def delete_media(self, request: DeleteMediaRequest, user_id: str) -> DeleteMediaResult:
        uid = sanitize_user_id(user_id)
        keys = self.validator.validate_delete_keys(request.file_keys, uid)

        outcomes = await asyncio.gather(*(self._delete_one(k) for k in keys))

        deleted = [key for key, failure in outcomes if failure is None]
        failed = [failure for _, failure in outcomes if failure is not None]
        logger.info("Delete for user=%s: %d ok, %d failed", uid, len(deleted), len(failed))
        return DeleteMediaResult(
            deleted=deleted,
            failed=failed,
            total_requested=len(keys),
            success_count=len(deleted),
            failure_count=len(failed),
        )

    async def _delete_one(self, key: str) -> Tuple[str, Optional[DeleteFailure]]:
        parsed = self._parse(key)
        try:
            await asyncio.to_thread(self.store.delete_object, key)
        except Exception as e:
            logger.warning("Delete failed key=%s: %s", key, e)
            return key, DeleteFailure(file_key=key, error=_reason(e), primary_deleted=False)

        if parsed.is_thumbnail or parsed.category is not MediaCategory.VISUAL:
            return key, None

        thumb = str(parsed.thumbnail())
        try:
            await asyncio.to_thread(self.store.delete_object, thumb)
        except Exception as e:
            logger.warning("Thumbnail delete failed key=%s: %s", thumb, e)
            return key, DeleteFailure(
                file_key=key,
                error=f"Primary deleted but thumbnail removal failed: {_reason(e)}",
                primary_deleted=True,
            )
        return key, None

    # ─────────────────────────────────────────────────────────────
    # ✏️ Rename
    # ─────────────────────────────────────────────────────────────
    async def rename_media(self, request: RenameMediaRequest, user_id: str) -> RenameMediaResult:
        uid = sanitize_user_id(user_id)
        old_key = self.validator.validate_key(request.file_key)
        self.validator.ensure_owner(old_key, uid)
        old = self._parse(old_key)
        if old.is_thumbnail:
            raise ValidationError(
                "Thumbnails are renamed together with their primary file",
                code=ErrorCode.INVALID_KEY,
                details={"field": "fileKey"},
            )

        new_name = self.validator.validate_rename_target(request.new_filename)
        ensure_extension_match(old.filename, new_name)

        new = old.with_filename(new_name)
        new_key = str(new)

        if await asyncio.to_thread(self.store.head_object, new_key) is not None:
            raise ConflictError(details={"newKey": new_key})
        head = await asyncio.to_thread(self.store.head_object, old_key)
        if head is None:
            raise NotFoundError(details={"fileKey": old_key})

        metadata = dict(head.get("metadata") or {})
        metadata["originalfilename"] = new_name
        await asyncio.to_thread(
            self.store.copy_object, old_key, new_key, metadata, head.get("content_type")
        )

        old_thumb: Optional[str] = None
        new_thumb: Optional[str] = None
        if old.category is MediaCategory.VISUAL:
            old_thumb, new_thumb = str(old.thumbnail()), str(new.thumbnail())
            if old_thumb == new_thumb:
                # Same stem: the thumbnail already sits at its final key.
                old_thumb = None
            else:
                new_thumb = await self._copy_thumbnail(old_thumb, new_thumb, new_key)
                if new_thumb is None:
                    old_thumb = None

        await self._retire(old_key, old_thumb)

        ttl = self.settings.PRESIGNED_URL_EXPIRY
        url = await asyncio.to_thread(self.store.presign_read, new_key, ttl)
        thumb_url: Optional[str] = None
        if new_thumb is not None and await asyncio.to_thread(self.store.head_object, new_thumb) is not None:
            thumb_url = await asyncio.to_thread(self.store.presign_read, new_thumb, ttl)

        logger.info("Renamed %s -> %s", old_key, new_key)
        return RenameMediaResult(
            old_key=old_key,
            new_key=new_key,
            filename=new_name,
            url=url,
            thumbnail_url=thumb_url,
        )

    async def _copy_thumbnail(self, old_thumb: str, new_thumb: str, new_key: str) -> Optional[str]:
        """Copy the thumbnail when it exists; returns the new key or None when there was none."""
        if await asyncio.to_thread(self.store.head_object, old_thumb) is None:
            return None
        try:
            await asyncio.to_thread(self.store.copy_object, old_thumb, new_thumb)
        except Exception as e:
            logger.error("Thumbnail copy failed during rename %s -> %s: %s", old_thumb, new_thumb, e)
            try:
                await asyncio.to_thread(self.store.delete_object, new_key)
            except Exception as cleanup:
                logger.warning("Could not remove partial rename copy key=%s: %s", new_key, cleanup)
            if isinstance(e, StoreError):
                raise
            raise StoreError("Failed to copy thumbnail", details={"operation": "copy_object"}) from e
        return new_thumb

    async def _retire(self, old_key: str, old_thumb: Optional[str]) -> None:
        """Delete the originals after both copies landed. Failures leave a duplicate only."""
        try:
            await asyncio.to_thread(self.store.delete_object, old_key)
        except Exception as e:
            logger.warning("Rename left old primary in place key=%s: %s", old_key, e)
            return
        if old_thumb is None:
            return
        try:
            await asyncio.to_thread(self.store.delete_object, old_thumb)
        except Exception as e:
            logger.warning("Rename left old thumbnail in place key=%s: %s", old_thumb, e)


__all__ = ["MutationService"]

# mediavault/services/upload_service.py
from __future__ import annotations

"""
MediaVault — Multipart Upload Coordination
==========================================

Two operations, both async and both talking to the synchronous
`ObjectStore` through `asyncio.to_thread`:

- `initiate_uploads` mints one group id per `{main, thumbnail?}` group,
  derives the keys, opens one multipart session per object and presigns a
  PUT URL for every part.
- `complete_upload` validates the client's part list, assembles the object
  and reads its metadata back.

Failure contract
----------------
- Validation happens before the first store call.
- Initiation runs groups concurrently. When any group fails, every session
  that did open is aborted (best-effort) and a single `StoreError` lists the
  failed group indexes.
- Completion aborts the session exactly once on assembly failure; an abort
  failure is logged and never masks the original error.
"""

import asyncio
import logging
import math
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from mediavault.core.config import Settings, settings as default_settings
from mediavault.core.exceptions import AppException, StoreError
from mediavault.core.storage import MediaGroup, ObjectStore, StorageKey
from mediavault.schemas.media import (
    CompletedMetadata,
    CompletedUpload,
    CompleteUploadRequest,
    InitiateUploadRequest,
    InitiateUploadResult,
    PresignedPart,
    UploadConfiguration,
    UploadGroupConfiguration,
)
from mediavault.services.validation_service import (
    ValidatedFile,
    ValidatedGroup,
    ValidationService,
)
from mediavault.utils.sanitize import extract_filename_from_key, sanitize_user_id

logger = logging.getLogger(__name__)


def _iso(ts: datetime) -> str:
    return ts.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def part_count_for(file_size: int, part_size: int) -> int:
    """`ceil(size / part)`, never below one part."""
    return max(1, math.ceil(file_size / part_size))


@dataclass
class _OpenedSession:
    key: str
    session_id: str


class UploadService:
    """Coordinates multipart sessions against an injected object store."""

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
    # 📤 Initiate
    # ─────────────────────────────────────────────────────────────
    async def initiate_uploads(self, request: InitiateUploadRequest, user_id: str) -> InitiateUploadResult:
        uid = sanitize_user_id(user_id)
        groups = self.validator.validate_initiate(request)

        opened: List[_OpenedSession] = []
        results = await asyncio.gather(
            *(self._initiate_group(g, uid, opened) for g in groups),
            return_exceptions=True,
        )

        failed = [i for i, r in enumerate(results) if isinstance(r, BaseException)]
        if failed:
            for i in failed:
                logger.error("Upload initiation failed for group %d: %s", i, results[i])
            await self._abort_all(opened)
            raise StoreError(
                "Failed to initiate uploads",
                details={"failedIndexes": failed, "totalFiles": len(groups)},
            )

        uploads = [r for r in results if isinstance(r, UploadGroupConfiguration)]
        logger.info("Initiated %d upload group(s) for user=%s", len(uploads), uid)
        return InitiateUploadResult(uploads=uploads, total_files=len(uploads))

    async def _initiate_group(
        self,
        group: ValidatedGroup,
        user_id: str,
        opened: List[_OpenedSession],
    ) -> UploadGroupConfiguration:
        media_group = MediaGroup(
            prefix=self.settings.S3_KEY_PREFIX,
            user_id=user_id,
            category=group.category,
            group_id=str(uuid.uuid4()),
        )
        targets: List[Tuple[ValidatedFile, StorageKey]] = [
            (group.main, media_group.primary_key(group.main.filename)),
        ]
        if group.thumbnail is not None:
            targets.append((group.thumbnail, media_group.thumbnail_key(group.main.filename)))

        # Wait for both sessions so every opened one is recorded before any abort.
        configs = await asyncio.gather(
            *(self._open_session(media_group.group_id, user_id, f, key, opened) for f, key in targets),
            return_exceptions=True,
        )
        for c in configs:
            if isinstance(c, BaseException):
                raise c
        return UploadGroupConfiguration(main=configs[0], thumbnail=configs[1] if len(configs) > 1 else None)

    async def _open_session(
        self,
        group_id: str,
        user_id: str,
        file: ValidatedFile,
        key: StorageKey,
        opened: List[_OpenedSession],
    ) -> UploadConfiguration:
        storage_key = str(key)
        now = datetime.now(timezone.utc)
        metadata = {
            "userid": user_id,
            "groupid": group_id,
            "originalfilename": file.filename,
            "uploadedat": _iso(now),
        }
        session_id = await asyncio.to_thread(
            self.store.open_multipart_session, storage_key, file.file_type, metadata
        )
        opened.append(_OpenedSession(key=storage_key, session_id=session_id))

        ttl = self.settings.PRESIGNED_URL_EXPIRY
        count = part_count_for(file.file_size, self.settings.S3_PART_SIZE)
        urls = await asyncio.gather(
            *(
                asyncio.to_thread(self.store.presign_part_upload, storage_key, session_id, n, ttl)
                for n in range(1, count + 1)
            )
        )

        return UploadConfiguration(
            file_id=group_id,
            storage_key=storage_key,
            bucket=self.store.bucket,
            session_id=session_id,
            part_size=self.settings.S3_PART_SIZE,
            part_count=count,
            parts=[PresignedPart(part_number=n, upload_url=u) for n, u in enumerate(urls, start=1)],
            filename=key.filename,
            file_type=file.file_type,
            expires_at=_iso(now + timedelta(seconds=ttl)),
        )

    async def _abort_all(self, opened: List[_OpenedSession]) -> None:
        if not opened:
            return
        logger.info("Aborting %d orphaned multipart session(s)", len(opened))
        await asyncio.gather(
            *(asyncio.to_thread(self.store.abort_multipart_session, s.key, s.session_id) for s in opened),
            return_exceptions=True,
        )

    # ─────────────────────────────────────────────────────────────
    # ✅ Complete
    # ─────────────────────────────────────────────────────────────
    async def complete_upload(self, request: CompleteUploadRequest, user_id: str) -> CompletedUpload:
        uid = sanitize_user_id(user_id)
        v = self.validator.validate_complete(request, uid)

        try:
            result = await asyncio.to_thread(self.store.assemble_multipart, v.storage_key, v.session_id, v.parts)
        except AppException:
            await self._abort_once(v.storage_key, v.session_id)
            raise
        except Exception as e:
            await self._abort_once(v.storage_key, v.session_id)
            logger.exception("Completion failed for key=%s", v.storage_key)
            raise StoreError("Failed to complete upload", details={"operation": "complete_multipart_upload"}) from e

        metadata = await self._read_metadata(v.storage_key)
        logger.info("Completed upload file_id=%s parts=%d", v.file_id, len(v.parts))
        return CompletedUpload(
            file_id=v.file_id,
            storage_key=v.storage_key,
            bucket=self.store.bucket,
            location=str(result.get("location") or ""),
            metadata=metadata,
        )

    async def _abort_once(self, key: str, session_id: str) -> None:
        try:
            await asyncio.to_thread(self.store.abort_multipart_session, key, session_id)
        except Exception as e:
            logger.warning("Abort after failed completion also failed key=%s: %s", key, e)

    async def _read_metadata(self, key: str) -> CompletedMetadata:
        """Metadata read-back; defaults are used when HEAD fails or finds nothing."""
        fallback = CompletedMetadata(
            filename=extract_filename_from_key(key),
            file_type="application/octet-stream",
            uploaded_at=_iso(datetime.now(timezone.utc)),
        )
        try:
            head: Optional[Dict[str, Any]] = await asyncio.to_thread(self.store.head_object, key)
        except Exception as e:
            logger.warning("Metadata read-back failed key=%s: %s", key, e)
            return fallback
        if not head:
            return fallback
        meta = head.get("metadata") or {}
        return CompletedMetadata(
            filename=meta.get("originalfilename") or fallback.filename,
            file_type=head.get("content_type") or fallback.file_type,
            uploaded_at=meta.get("uploadedat") or fallback.uploaded_at,
        )


__all__ = ["UploadService", "part_count_for"]

# mediavault/services/validation_service.py
from __future__ import annotations

"""
MediaVault — Request Validation
===============================

Input checks shared by the upload, catalog and mutation services.

Policy
------
- File arrays (`initiate`) accumulate every per-file problem and raise once,
  so a client sees all of them in one round trip.
- Everything else fails fast on the first violation.
- Nothing here touches the object store.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from mediavault.core.config import Settings, settings as default_settings
from mediavault.core.exceptions import (
    AppException,
    AuthorizationError,
    ErrorCode,
    ValidationError,
)
from mediavault.schemas.media import (
    CompleteUploadRequest,
    FileDescriptor,
    InitiateUploadRequest,
    MediaCategory,
    PartDescriptor,
)
from mediavault.utils.sanitize import (
    authorize_access,
    sanitize_filename,
    validate_storage_key,
)

logger = logging.getLogger(__name__)

MAX_PART_NUMBER = 10_000
MIN_ETAG_LENGTH = 32
SESSION_ID_MIN_LENGTH = 10
SESSION_ID_MAX_LENGTH = 1024
MAX_LIST_LIMIT = 1000
MAX_QUERY_LENGTH = 255
THUMBNAIL_MIME_TYPES = frozenset({"image/jpeg", "image/jpg"})


@dataclass(frozen=True)
class ValidatedFile:
    filename: str
    file_type: str
    file_size: int


@dataclass(frozen=True)
class ValidatedGroup:
    main: ValidatedFile
    category: MediaCategory
    thumbnail: Optional[ValidatedFile] = None


@dataclass(frozen=True)
class ValidatedCompletion:
    file_id: str
    storage_key: str
    session_id: str
    parts: List[Dict[str, Any]]


def strip_etag(etag: str) -> str:
    return etag.strip().strip('"')


class ValidationService:
    """Stateless validator bound to one `Settings` instance."""

    def __init__(self, config: Optional[Settings] = None) -> None:
        self.settings = config or default_settings

    # ─────────────────────────────────────────────────────────────
    # 📤 Upload initiation (accumulating)
    # ─────────────────────────────────────────────────────────────
    def validate_initiate(self, request: InitiateUploadRequest) -> List[ValidatedGroup]:
        files = request.files
        if not files:
            raise ValidationError(
                "Files array is required and must not be empty",
                code=ErrorCode.MISSING_REQUIRED_FIELD,
                details={"field": "files"},
            )
        limit = self.settings.MAX_FILES_PER_REQUEST
        if len(files) > limit:
            raise ValidationError(
                f"Maximum {limit} files allowed per request",
                code=ErrorCode.TOO_MANY_FILES,
                details={"maxFiles": limit, "received": len(files)},
            )

        problems: List[Dict[str, Any]] = []
        groups: List[ValidatedGroup] = []

        for index, group in enumerate(files):
            main = self._check_file(index, "main", group.main, problems)
            if main is None:
                continue

            # `/` is legal in sanitized names but a primary must sit directly
            # in its group directory.
            if "/" in main.filename:
                problems.append(self._problem(index, "main", ErrorCode.INVALID_FILENAME, "Filename cannot contain '/'"))
                continue

            category = MediaCategory.for_mime(main.file_type)
            thumb: Optional[ValidatedFile] = None
            if group.thumbnail is not None:
                if category is not MediaCategory.VISUAL:
                    problems.append(
                        self._problem(index, "thumbnail", ErrorCode.INVALID_REQUEST, "Thumbnails are only supported for video and image files")
                    )
                    continue
                thumb = self._check_file(index, "thumbnail", group.thumbnail, problems, thumbnail=True)
                if thumb is None:
                    continue

            groups.append(ValidatedGroup(main=main, category=category, thumbnail=thumb))

        if problems:
            codes = {p["code"] for p in problems}
            code = ErrorCode(codes.pop()) if len(codes) == 1 else ErrorCode.INVALID_REQUEST
            logger.info("Upload validation failed: %d problem(s)", len(problems))
            raise ValidationError(
                "File validation failed",
                code=code,
                details={"validationErrors": problems},
            )
        return groups

    def _check_file(
        self,
        index: int,
        target: str,
        descriptor: Optional[FileDescriptor],
        problems: List[Dict[str, Any]],
        *,
        thumbnail: bool = False,
    ) -> Optional[ValidatedFile]:
        """Append every problem of one descriptor; return it normalized when clean."""
        if descriptor is None:
            problems.append(self._problem(index, target, ErrorCode.MISSING_REQUIRED_FIELD, f"{target} file descriptor is required"))
            return None

        before = len(problems)
        filename: Optional[str] = None
        try:
            filename = sanitize_filename(
                descriptor.filename,
                max_length=self.settings.MAX_FILENAME_LENGTH,
                dangerous_extensions=self.settings.dangerous_extensions,
            )
        except AppException as e:
            problems.append(self._problem(index, target, e.code, e.message))

        file_type = (descriptor.file_type or "").strip().lower()
        if not file_type:
            problems.append(self._problem(index, target, ErrorCode.MISSING_REQUIRED_FIELD, "fileType is required"))
        elif thumbnail and file_type not in THUMBNAIL_MIME_TYPES:
            problems.append(self._problem(index, target, ErrorCode.INVALID_FILE_TYPE, "Thumbnail must be a JPEG image"))
        elif not thumbnail and file_type not in self.settings.allowed_mime_types:
            problems.append(
                self._problem(index, target, ErrorCode.INVALID_FILE_TYPE, f"File type {file_type} is not allowed")
            )

        size = descriptor.file_size
        if size is None:
            problems.append(self._problem(index, target, ErrorCode.MISSING_REQUIRED_FIELD, "fileSize is required"))
        elif size < self.settings.MIN_FILE_SIZE:
            problems.append(
                self._problem(index, target, ErrorCode.FILE_TOO_SMALL, f"File size must be at least {self.settings.MIN_FILE_SIZE} bytes")
            )
        elif size > self.settings.MAX_FILE_SIZE:
            problems.append(
                self._problem(index, target, ErrorCode.FILE_TOO_LARGE, f"File size exceeds maximum of {self.settings.MAX_FILE_SIZE} bytes")
            )

        if len(problems) > before or filename is None or size is None:
            return None
        return ValidatedFile(filename=filename, file_type=file_type, file_size=size)

    @staticmethod
    def _problem(index: int, target: str, code: ErrorCode, message: str) -> Dict[str, Any]:
        return {"index": index, "target": target, "code": code.value, "message": message}

    # ─────────────────────────────────────────────────────────────
    # ✅ Upload completion (fail-fast)
    # ─────────────────────────────────────────────────────────────
    def validate_complete(self, request: CompleteUploadRequest, user_id: str) -> ValidatedCompletion:
        file_id = self.validate_file_id(request.file_id)
        key = self.validate_key(request.storage_key)
        self.ensure_owner(key, user_id)
        session_id = self.validate_session_id(request.session_id)
        parts = self.validate_parts(request.parts)
        return ValidatedCompletion(file_id=file_id, storage_key=key, session_id=session_id, parts=parts)

    @staticmethod
    def validate_file_id(value: Optional[str]) -> str:
        if not value:
            raise ValidationError("fileId is required", code=ErrorCode.MISSING_REQUIRED_FIELD, details={"field": "fileId"})
        try:
            parsed = uuid.UUID(value)
        except (ValueError, AttributeError, TypeError):
            raise ValidationError(
                "fileId must be a valid UUID", code=ErrorCode.INVALID_FILE_ID, details={"field": "fileId"}
            ) from None
        if str(parsed) != value.lower():
            raise ValidationError("fileId must be a valid UUID", code=ErrorCode.INVALID_FILE_ID, details={"field": "fileId"})
        return value.lower()

    def validate_key(self, key: Optional[str]) -> str:
        return validate_storage_key(key, prefix=self.settings.S3_KEY_PREFIX)

    def ensure_owner(self, key: str, user_id: str) -> None:
        if not authorize_access(key, user_id, prefix=self.settings.S3_KEY_PREFIX):
            logger.warning("Ownership check failed for user=%s", user_id)
            raise AuthorizationError()

    @staticmethod
    def validate_session_id(value: Optional[str]) -> str:
        if not value:
            raise ValidationError(
                "sessionId is required", code=ErrorCode.MISSING_REQUIRED_FIELD, details={"field": "sessionId"}
            )
        if not (SESSION_ID_MIN_LENGTH <= len(value) <= SESSION_ID_MAX_LENGTH):
            raise ValidationError(
                "sessionId has an invalid format", code=ErrorCode.INVALID_UPLOAD_ID, details={"field": "sessionId"}
            )
        return value

    @staticmethod
    def validate_parts(parts: Optional[Sequence[PartDescriptor]]) -> List[Dict[str, Any]]:
        """
        Accept exactly the non-empty, duplicate-free, pre-sorted part lists
        numbered `1..n`. Returns S3-shaped `{PartNumber, ETag}` items with the
        quotes stripped from each ETag.
        """

        def fail(message: str, **details: Any) -> ValidationError:
            return ValidationError(message, code=ErrorCode.INVALID_PARTS, details=details or None)

        if not parts:
            raise fail("Parts array is required and must not be empty")

        seen: set[int] = set()
        numbers: List[int] = []
        out: List[Dict[str, Any]] = []
        for i, part in enumerate(parts):
            n = part.part_number
            if n is None or not (1 <= n <= MAX_PART_NUMBER):
                raise fail(f"Part {i} has an invalid partNumber", index=i)
            if n in seen:
                raise fail(f"Duplicate part number: {n}", partNumber=n)
            seen.add(n)
            etag = strip_etag(part.etag or "")
            if not etag:
                raise fail(f"Part {n} is missing its ETag", partNumber=n)
            if len(etag) < MIN_ETAG_LENGTH:
                raise fail(f"Part {n} has an invalid ETag", partNumber=n)
            numbers.append(n)
            out.append({"PartNumber": n, "ETag": etag})

        if numbers != sorted(numbers):
            raise fail("Parts must be sorted by partNumber")
        if numbers != list(range(1, len(numbers) + 1)):
            raise fail("Parts must be contiguous starting at 1")
        return out

    # ─────────────────────────────────────────────────────────────
    # 📚 Catalog
    # ─────────────────────────────────────────────────────────────
    @staticmethod
    def validate_limit(limit: Optional[int], default: int = 50) -> int:
        if limit is None:
            return default
        if not (1 <= limit <= MAX_LIST_LIMIT):
            raise ValidationError(f"limit must be between 1 and {MAX_LIST_LIMIT}", details={"field": "limit"})
        return limit

    @staticmethod
    def validate_query(query: Optional[str]) -> str:
        q = (query or "").strip()
        if not q:
            raise ValidationError(
                "Search query is required", code=ErrorCode.MISSING_REQUIRED_FIELD, details={"field": "query"}
            )
        if len(q) > MAX_QUERY_LENGTH:
            raise ValidationError(
                f"Search query cannot exceed {MAX_QUERY_LENGTH} characters", details={"field": "query"}
            )
        return q

    # ─────────────────────────────────────────────────────────────
    # 🗑️ Mutations
    # ─────────────────────────────────────────────────────────────
    def validate_delete_keys(self, keys: Optional[Sequence[str]], user_id: str) -> List[str]:
        """Shape errors accumulate; then the ownership gate. No mutation happens before both pass."""
        if not keys:
            raise ValidationError(
                "fileKeys array is required and must not be empty",
                code=ErrorCode.MISSING_REQUIRED_FIELD,
                details={"field": "fileKeys"},
            )
        limit = self.settings.MAX_DELETE_KEYS
        if len(keys) > limit:
            raise ValidationError(
                f"Cannot delete more than {limit} files at once",
                code=ErrorCode.TOO_MANY_FILES,
                details={"maxFiles": limit, "received": len(keys)},
            )

        cleaned: List[str] = []
        problems: List[Dict[str, Any]] = []
        for index, key in enumerate(keys):
            try:
                cleaned.append(self.validate_key(key))
            except AppException as e:
                problems.append(self._problem(index, "fileKeys", e.code, e.message))
        if problems:
            raise ValidationError(
                "Invalid file keys",
                code=ErrorCode.INVALID_KEY,
                details={"validationErrors": problems},
            )

        foreign = [
            i for i, key in enumerate(cleaned)
            if not authorize_access(key, user_id, prefix=self.settings.S3_KEY_PREFIX)
        ]
        if foreign:
            logger.warning("Delete rejected for user=%s: %d foreign key(s)", user_id, len(foreign))
            raise AuthorizationError(details={"indexes": foreign})

        return cleaned

    def validate_rename_target(self, new_filename: Optional[str]) -> str:
        name = sanitize_filename(
            new_filename,
            max_length=self.settings.MAX_FILENAME_LENGTH,
            dangerous_extensions=self.settings.dangerous_extensions,
        )
        if "/" in name:
            raise ValidationError(
                "New filename cannot contain '/'",
                code=ErrorCode.INVALID_FILENAME,
                details={"field": "newFilename"},
            )
        return name


__all__ = [
    "ValidationService",
    "ValidatedFile",
    "ValidatedGroup",
    "ValidatedCompletion",
    "strip_etag",
]

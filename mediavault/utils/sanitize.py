from __future__ import annotations

"""
🧼 MediaVault • Filename & Key Sanitization
==========================================

Pure functions that turn untrusted names into safe tokens and check that a
storage key has the expected shape and belongs to a given user. No I/O; every
failure raises a typed `ValidationError` subclass.

Contract
--------
- `sanitize_filename(name)`        → safe name | InvalidFilename
- `sanitize_user_id(value)`        → safe id   | ValidationError
- `validate_storage_key(key)`      → key       | InvalidKey
- `authorize_access(key, user_id)` → bool
- `ensure_extension_match(a, b)`   → None      | ExtensionChangeNotAllowed

Notes
-----
- `..` on its own is legal (`take...two.mp3`); only the traversal
  *signatures* below are rejected, in raw, URL-encoded and double-encoded
  forms, case-insensitively.
- Forward slashes survive filename sanitization so the `thumbnail/`
  sub-segment can be expressed; backslashes are stripped.
"""

import logging
import re
from typing import Iterable, Optional

from mediavault.core.config import settings
from mediavault.core.exceptions import (
    ErrorCode,
    ExtensionChangeNotAllowed,
    InvalidFilename,
    InvalidKey,
    ValidationError,
)
from mediavault.schemas.media import MediaCategory

logger = logging.getLogger(__name__)

# ─────────────────────────────────────────────────────────────────────────────
# 🧱 Patterns
# ─────────────────────────────────────────────────────────────────────────────
PATH_TRAVERSAL_PATTERNS = (
    "../",
    "..\\",
    "..%2f",
    "..%5c",
    "%2e%2e/",
    "%2e%2e\\",
    "..%252f",
    "..%255c",
)

_HTML_TAG_RE = re.compile(r"<[^>]*>")
_CONTROL_RE = re.compile(r"[\x00-\x1f\x7f]")
_WHITESPACE_RE = re.compile(r"\s+")
_FILENAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_\-. /]*\.[A-Za-z0-9]+$")
USER_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,128}$")

MAX_KEY_LENGTH = 1024


def _key_pattern(prefix: str) -> re.Pattern[str]:
    return re.compile(
        rf"^{re.escape(prefix.strip('/'))}/[A-Za-z0-9_-]{{1,128}}/(visual|audio)/"
        r"\d{4}/\d{2}/\d{2}/[A-Za-z0-9-]+/(thumbnail/)?"
        r"[A-Za-z0-9_\-. ]*\.[A-Za-z0-9]+$"
    )


def has_traversal(value: str) -> bool:
    lowered = value.lower()
    return any(p in lowered for p in PATH_TRAVERSAL_PATTERNS)


# ─────────────────────────────────────────────────────────────────────────────
# 📄 Filenames
# ─────────────────────────────────────────────────────────────────────────────
def sanitize_filename(
    filename: Optional[str],
    *,
    max_length: Optional[int] = None,
    dangerous_extensions: Optional[Iterable[str]] = None,
) -> str:
    """
    Sanitize an untrusted filename.

    Steps
    -----
    1) Trim; reject empty or longer than `max_length`
    2) Strip HTML tags, control characters and null bytes
    3) Reject path-traversal signatures (before backslashes are removed, so
       `..\\x` is caught rather than silently rewritten)
    4) Strip backslashes, collapse whitespace runs, trim again, then
       re-check traversal (removing a backslash can join `..` and `/`)
    5) Reject hidden names, missing extension, whitelist failures and
       dangerous extensions

    The output is a fixed point: sanitizing it again returns it unchanged.

    Raises
    ------
    InvalidFilename
    """
    limit = max_length or settings.MAX_FILENAME_LENGTH
    denied = frozenset(
        e.lower() for e in (dangerous_extensions if dangerous_extensions is not None else settings.dangerous_extensions)
    )

    if not isinstance(filename, str) or not filename.strip():
        raise InvalidFilename("Filename must be a non-empty string")

    s = filename.strip()
    if len(s) > limit:
        raise InvalidFilename(f"Filename exceeds maximum length of {limit} characters")

    s = _HTML_TAG_RE.sub("", s)
    s = _CONTROL_RE.sub("", s)

    if has_traversal(s):
        raise InvalidFilename("Filename contains path traversal patterns")

    s = s.replace("\\", "")
    s = _WHITESPACE_RE.sub(" ", s).strip()
    if has_traversal(s):
        # Removing backslashes can join a new signature: a.\./x becomes a../x
        raise InvalidFilename("Filename contains path traversal patterns")

    if not s:
        raise InvalidFilename("Filename cannot be empty")
    if s.startswith("."):
        raise InvalidFilename("Filename cannot start with a dot")
    if "." not in s or s.endswith("."):
        raise InvalidFilename("Filename must have a valid extension")
    if not _FILENAME_RE.fullmatch(s):
        raise InvalidFilename("Filename contains invalid characters")

    ext = get_file_extension(s)
    if ext in denied:
        raise InvalidFilename(
            f"File extension .{ext} is not allowed for security reasons",
            details={"extension": ext},
        )

    if s != filename:
        logger.debug("Filename sanitized: %r -> %r", filename, s)
    return s


def get_file_extension(filename: str) -> str:
    """Lowercase extension without the dot (`""` when there is none)."""
    base = (filename or "").rsplit("/", 1)[-1]
    if "." not in base:
        return ""
    return base.rsplit(".", 1)[-1].lower()


def ensure_extension_match(old_filename: str, new_filename: str) -> None:
    """Fail closed when a rename would change the file type."""
    old_ext = get_file_extension(old_filename)
    new_ext = get_file_extension(new_filename)
    if old_ext != new_ext:
        raise ExtensionChangeNotAllowed(
            f"File extension cannot be changed from .{old_ext} to .{new_ext}",
            details={"from": old_ext, "to": new_ext},
        )


# ─────────────────────────────────────────────────────────────────────────────
# 👤 User ids
# ─────────────────────────────────────────────────────────────────────────────
def sanitize_user_id(user_id: Optional[str]) -> str:
    if not isinstance(user_id, str) or not user_id.strip():
        raise ValidationError(
            "userId is required and must be a non-empty string",
            code=ErrorCode.MISSING_REQUIRED_FIELD,
            details={"field": "userId"},
        )
    s = user_id.strip()
    if len(s) > 128:
        raise ValidationError("userId cannot exceed 128 characters", details={"field": "userId"})
    if not USER_ID_RE.fullmatch(s):
        raise ValidationError(
            "userId can only contain alphanumeric characters, dashes, and underscores",
            details={"field": "userId"},
        )
    return s


# ─────────────────────────────────────────────────────────────────────────────
# 🗝️ Storage keys
# ─────────────────────────────────────────────────────────────────────────────
def validate_storage_key(key: Optional[str], *, prefix: Optional[str] = None) -> str:
    """
    Validate a caller-supplied key and return it trimmed.

    Raises
    ------
    InvalidKey
        Empty, too long, null bytes, traversal, or wrong structure.
    """
    if not isinstance(key, str) or not key.strip():
        raise InvalidKey("File key must be a non-empty string")
    k = key.strip()
    if len(k) > MAX_KEY_LENGTH:
        raise InvalidKey(f"File key exceeds maximum length of {MAX_KEY_LENGTH} characters")
    if "\0" in k or "%00" in k:
        raise InvalidKey("File key contains null bytes")
    if has_traversal(k):
        raise InvalidKey("File key contains path traversal patterns")
    if not _key_pattern(prefix or settings.S3_KEY_PREFIX).fullmatch(k):
        raise InvalidKey("File key does not match expected format")
    return k


def extract_user_id_from_key(key: str, *, prefix: Optional[str] = None) -> Optional[str]:
    head = f"{(prefix or settings.S3_KEY_PREFIX).strip('/')}/"
    if not key or not key.startswith(head):
        return None
    user = key[len(head):].split("/", 1)[0]
    return user or None


def media_category_for_mime(mime_type: str) -> MediaCategory:
    return MediaCategory.for_mime(mime_type)


def extract_filename_from_key(key: str) -> str:
    return (key or "").rsplit("/", 1)[-1]


def authorize_access(key: str, user_id: str, *, prefix: Optional[str] = None) -> bool:
    """True only when the key's positional user segment equals `user_id` exactly."""
    owner = extract_user_id_from_key(key, prefix=prefix)
    return owner is not None and owner == user_id


__all__ = [
    "PATH_TRAVERSAL_PATTERNS",
    "has_traversal",
    "sanitize_filename",
    "get_file_extension",
    "ensure_extension_match",
    "sanitize_user_id",
    "validate_storage_key",
    "extract_user_id_from_key",
    "extract_filename_from_key",
    "media_category_for_mime",
    "authorize_access",
]

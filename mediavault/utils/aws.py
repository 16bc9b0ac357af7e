# mediavault/utils/aws.py
from __future__ import annotations

"""
🧊 MediaVault • S3 Object Store
===============================

boto3 implementation of `mediavault.core.storage.ObjectStore`, used by the
upload, catalog and mutation services.

🎯 Goals
--------
- Multipart sessions with SSE at rest (AES256 or KMS)
- Presigned `upload_part` PUT and `get_object` GET URLs (SigV4)
- Explicit timeouts + bounded retries (no retry loops of our own)
- Idempotent delete, `None` on missing HEAD
- Zero secret leakage in logs or error bodies

🔗 Contract
-----------
- Every store failure surfaces as `StoreError` (HTTP 503). The raw botocore
  message is logged, never placed in the error details.
- `abort_multipart_session` is best-effort: it logs and never raises.
- Keys reaching this layer were already validated by the services; the
  normalization here is a last guard against traversal and odd characters.
"""

from typing import Any, Dict, List, Optional
import logging
import re

import boto3
import botocore
from botocore.config import Config as BotoConfig
from pydantic import SecretStr

from mediavault.core.config import settings
from mediavault.core.exceptions import StoreError
from mediavault.core.storage import ListPage, ObjectEntry
from mediavault.utils.sanitize import has_traversal

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}

# ─────────────────────────────────────────────────────────────────────────────
# 🧰 Key and value validation
# ─────────────────────────────────────────────────────────────────────────────

_KEY_ALLOWED_RE = re.compile(r"[A-Za-z0-9._\-/ ]+")


def _normalize_key(key: str) -> str:
    """
    Normalize and validate S3 object keys.

    Steps
    -----
    1) Coerce to str, strip whitespace
    2) Remove leading '/'
    3) Collapse '//' runs
    4) Reject traversal signatures and disallowed characters

    Raises
    ------
    StoreError
        If key is empty or contains unsafe characters.
    """
    k = str(key or "").strip().lstrip("/")
    k = re.sub(r"/{2,}", "/", k)
    if not k:
        raise StoreError("Invalid storage key: empty", details={"operation": "normalize_key"})
    if has_traversal(k):
        raise StoreError("Invalid storage key: path traversal detected", details={"operation": "normalize_key"})
    if not _KEY_ALLOWED_RE.fullmatch(k):
        raise StoreError("Invalid storage key: contains forbidden characters", details={"operation": "normalize_key"})
    return k


def _secret_value(v: Optional[SecretStr | str]) -> Optional[str]:
    if v is None:
        return None
    return v.get_secret_value() if isinstance(v, SecretStr) else str(v)


def _error_code(exc: Exception) -> Optional[str]:
    if isinstance(exc, botocore.exceptions.ClientError):
        return exc.response.get("Error", {}).get("Code")
    return None


def _store_error(operation: str, key: Optional[str], exc: Exception) -> StoreError:
    logger.warning("S3 %s failed for key=%s: %s", operation, key, exc)
    return StoreError(f"Storage operation failed: {operation}", details={"operation": operation})


# ─────────────────────────────────────────────────────────────────────────────
# 📦 S3 Client
# ─────────────────────────────────────────────────────────────────────────────

class S3Client:
    """
    S3-backed object store with safe defaults.

    Parameters
    ----------
    bucket : str | None
        Bucket holding every media object. Defaults to `settings.S3_BUCKET_NAME`.
    region_name : str | None
        Defaults to `settings.AWS_REGION`; inferred from the bucket otherwise.
    endpoint_url : str | None
        Custom S3-compatible endpoint (MinIO/LocalStack). Defaults to
        `settings.AWS_S3_ENDPOINT_URL`.
    sse_mode : str | None
        "AES256" or "aws:kms". Defaults from `settings.AWS_SSE_MODE`.
    kms_key_id : str | None
        KMS key id/arn when `sse_mode="aws:kms"`.

    Notes
    -----
    * Credentials: explicit settings when both key id and secret are set,
      otherwise the standard AWS chain (env, profile, role, IRSA).
    * Retries/Timeouts: 5 attempts in standard mode, short connect timeout.
    """

    # ────────────────────────────────────────────────────────────────────────
    # 🔧 Construction
    # ────────────────────────────────────────────────────────────────────────

    def __init__(
        self,
        bucket: Optional[str] = None,
        *,
        region_name: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        sse_mode: Optional[str] = None,
        kms_key_id: Optional[str] = None,
    ) -> None:
        self.bucket = bucket or settings.S3_BUCKET_NAME
        if not self.bucket:
            raise StoreError("S3_BUCKET_NAME not configured", details={"operation": "configure"})

        region_cfg = region_name or settings.AWS_REGION
        endpoint_cfg = endpoint_url or settings.AWS_S3_ENDPOINT_URL

        # SSE defaults (never log these)
        self._sse_mode = sse_mode or settings.AWS_SSE_MODE
        self._kms_key_id = kms_key_id or settings.AWS_KMS_KEY_ID

        cfg = BotoConfig(
            signature_version="s3v4",
            retries={"max_attempts": 5, "mode": "standard"},
            connect_timeout=3,
            read_timeout=10,
            # Path style keeps MinIO/LocalStack endpoints working.
            s3={"addressing_style": "path" if endpoint_cfg else "virtual"},
        )

        ak = settings.AWS_ACCESS_KEY_ID
        sk = _secret_value(settings.AWS_SECRET_ACCESS_KEY)
        st = _secret_value(settings.AWS_SESSION_TOKEN)

        client_kwargs: Dict[str, Any] = {"config": cfg}
        if region_cfg:
            client_kwargs["region_name"] = region_cfg
        if endpoint_cfg:
            client_kwargs["endpoint_url"] = endpoint_cfg
        if ak and sk:
            client_kwargs["aws_access_key_id"] = ak
            client_kwargs["aws_secret_access_key"] = sk
            if st:
                client_kwargs["aws_session_token"] = st

        try:
            self.client = boto3.client("s3", **client_kwargs)
        except Exception as e:  # pragma: no cover
            raise _store_error("configure", None, e) from e

        self._endpoint = (endpoint_cfg or "").rstrip("/")
        self.region = region_cfg or self._infer_region_safely()
        self._repr = f"S3Client(bucket={self.bucket}, region={self.region}, endpoint={'yes' if endpoint_cfg else 'no'})"

    def _sse_params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {}
        if self._sse_mode:
            params["ServerSideEncryption"] = self._sse_mode
            if self._sse_mode == "aws:kms" and self._kms_key_id:
                params["SSEKMSKeyId"] = self._kms_key_id
        return params

    # ────────────────────────────────────────────────────────────────────────
    # 🧩 Multipart sessions
    # ────────────────────────────────────────────────────────────────────────

    def open_multipart_session(self, key: str, content_type: str, metadata: Dict[str, str]) -> str:
        """Start a multipart upload; returns the store's UploadId."""
        k = _normalize_key(key)
        try:
            resp = self.client.create_multipart_upload(
                Bucket=self.bucket,
                Key=k,
                ContentType=content_type,
                Metadata=dict(metadata),
                **self._sse_params(),
            )
        except Exception as e:
            raise _store_error("create_multipart_upload", k, e) from e
        upload_id = resp.get("UploadId")
        if not upload_id:
            raise StoreError("Storage returned no upload id", details={"operation": "create_multipart_upload"})
        return upload_id

    def assemble_multipart(self, key: str, session_id: str, parts: List[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Complete a multipart upload.

        `parts` are `{"PartNumber": int, "ETag": str}` items, already sorted
        and de-quoted by the caller.
        """
        k = _normalize_key(key)
        try:
            resp = self.client.complete_multipart_upload(
                Bucket=self.bucket,
                Key=k,
                UploadId=session_id,
                MultipartUpload={"Parts": parts},
            )
        except Exception as e:
            raise _store_error("complete_multipart_upload", k, e) from e
        return {"location": resp.get("Location") or self.object_url(k), "etag": resp.get("ETag")}

    def abort_multipart_session(self, key: str, session_id: str) -> None:
        """Best-effort abort. Failures are logged only."""
        try:
            self.client.abort_multipart_upload(Bucket=self.bucket, Key=_normalize_key(key), UploadId=session_id)
        except Exception as e:
            logger.warning("abort_multipart_upload failed (non-fatal) key=%s: %s", key, e)

    # ────────────────────────────────────────────────────────────────────────
    # 🔐 Signed URL helpers
    # ────────────────────────────────────────────────────────────────────────

    def presign_part_upload(self, key: str, session_id: str, part_number: int, ttl_seconds: int) -> str:
        k = _normalize_key(key)
        try:
            return self.client.generate_presigned_url(
                ClientMethod="upload_part",
                Params={"Bucket": self.bucket, "Key": k, "UploadId": session_id, "PartNumber": int(part_number)},
                ExpiresIn=int(ttl_seconds),
                HttpMethod="PUT",
            )
        except Exception as e:
            raise _store_error("presign_upload_part", k, e) from e

    def presign_read(self, key: str, ttl_seconds: int) -> str:
        k = _normalize_key(key)
        try:
            return self.client.generate_presigned_url(
                ClientMethod="get_object",
                Params={"Bucket": self.bucket, "Key": k},
                ExpiresIn=int(ttl_seconds),
            )
        except Exception as e:
            raise _store_error("presign_get_object", k, e) from e

    # ────────────────────────────────────────────────────────────────────────
    # 🔎 Metadata & listing
    # ────────────────────────────────────────────────────────────────────────

    def head_object(self, key: str) -> Optional[Dict[str, Any]]:
        """
        HEAD the object.

        Returns
        -------
        dict | None
            `{size, content_type, last_modified, metadata}`, or None for the
            usual "not found" codes. Anything else raises `StoreError`.
        """
        k = _normalize_key(key)
        try:
            resp = self.client.head_object(Bucket=self.bucket, Key=k)
        except botocore.exceptions.ClientError as e:
            if _error_code(e) in _NOT_FOUND_CODES:
                return None
            raise _store_error("head_object", k, e) from e
        except Exception as e:
            raise _store_error("head_object", k, e) from e
        return {
            "size": int(resp.get("ContentLength") or 0),
            "content_type": resp.get("ContentType"),
            "last_modified": resp.get("LastModified"),
            "metadata": dict(resp.get("Metadata") or {}),
        }

    def list_objects(self, prefix: str, max_keys: int, continuation_token: Optional[str] = None) -> ListPage:
        params: Dict[str, Any] = {"Bucket": self.bucket, "Prefix": prefix, "MaxKeys": int(max_keys)}
        if continuation_token:
            params["ContinuationToken"] = continuation_token
        try:
            resp = self.client.list_objects_v2(**params)
        except Exception as e:
            raise _store_error("list_objects", prefix, e) from e
        entries = [
            ObjectEntry(key=o["Key"], size=int(o.get("Size") or 0), last_modified=o["LastModified"])
            for o in resp.get("Contents") or []
        ]
        return ListPage(
            entries=entries,
            truncated=bool(resp.get("IsTruncated")),
            next_token=resp.get("NextContinuationToken"),
        )

    # ────────────────────────────────────────────────────────────────────────
    # ✏️ Server-side mutations
    # ────────────────────────────────────────────────────────────────────────

    def copy_object(
        self,
        src_key: str,
        dst_key: str,
        metadata: Optional[Dict[str, str]] = None,
        content_type: Optional[str] = None,
    ) -> None:
        """
        Server-side copy. With `metadata` the user metadata is replaced
        (content type carried over explicitly); otherwise it is copied as is.
        """
        src = _normalize_key(src_key)
        dst = _normalize_key(dst_key)
        args: Dict[str, Any] = {
            "Bucket": self.bucket,
            "Key": dst,
            "CopySource": {"Bucket": self.bucket, "Key": src},
            **self._sse_params(),
        }
        if metadata is not None:
            args["MetadataDirective"] = "REPLACE"
            args["Metadata"] = dict(metadata)
            if content_type:
                args["ContentType"] = content_type
        try:
            self.client.copy_object(**args)
        except Exception as e:
            raise _store_error("copy_object", src, e) from e

    def delete_object(self, key: str) -> None:
        """Idempotent delete: a missing key is success."""
        k = _normalize_key(key)
        try:
            self.client.delete_object(Bucket=self.bucket, Key=k)
        except botocore.exceptions.ClientError as e:
            if _error_code(e) in _NOT_FOUND_CODES:
                return
            raise _store_error("delete_object", k, e) from e
        except Exception as e:
            raise _store_error("delete_object", k, e) from e

    # ────────────────────────────────────────────────────────────────────────
    # 🌐 URLs & health
    # ────────────────────────────────────────────────────────────────────────

    def object_url(self, key: str) -> str:
        """Direct (unsigned) object URL; the object stays private."""
        k = _normalize_key(key)
        if self._endpoint:
            return f"{self._endpoint}/{self.bucket}/{k}"
        region = self.region or "us-east-1"
        return f"https://{self.bucket}.s3.{region}.amazonaws.com/{k}"

    def ping(self) -> bool:
        """Readiness probe: HEAD the bucket."""
        try:
            self.client.head_bucket(Bucket=self.bucket)
            return True
        except Exception as e:
            logger.warning("head_bucket failed: %s", e)
            return False

    # ────────────────────────────────────────────────────────────────────────
    # 🧪 Internals
    # ────────────────────────────────────────────────────────────────────────

    def _infer_region_safely(self) -> Optional[str]:
        try:
            resp = self.client.get_bucket_location(Bucket=self.bucket)
            # Old APIs return None for us-east-1
            return resp.get("LocationConstraint") or "us-east-1"
        except Exception as e:
            logger.debug("get_bucket_location failed: %s", e)
            return None

    def __repr__(self) -> str:  # pragma: no cover
        return self._repr


__all__ = ["S3Client"]

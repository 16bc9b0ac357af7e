#!/usr/bin/env python3
"""
MediaVault • Multipart Uploader
===============================

CLI client for the upload API: initiates an upload, PUTs every part to its
presigned URL, collects the ETags and completes the upload. Prints the
resulting storage key and the file's SHA-256.

Examples
--------
1) Upload a video:
    python scripts/uploader.py \
      --api http://localhost:8000/api/v1 \
      --user-id user_123 \
      ./holiday.mp4

2) Upload a video with its JPEG thumbnail:
    python scripts/uploader.py --api ... --user-id user_123 \
      --thumbnail ./holiday.jpg ./holiday.mp4
"""

import argparse
import hashlib
import mimetypes
import os
import sys
from typing import Any, Dict, Iterator, List, Optional

import requests

DEFAULT_USER_HEADER = "X-Authenticated-User-Id"


def compute_sha256(path: str) -> str:
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            h.update(chunk)
    return h.hexdigest()


def describe_file(path: str) -> Dict[str, Any]:
    """File descriptor as the initiate endpoint expects it."""
    ctype = mimetypes.guess_type(path)[0] or "application/octet-stream"
    return {"filename": os.path.basename(path), "fileType": ctype, "fileSize": os.path.getsize(path)}


def iter_chunks(path: str, part_size: int, part_count: int) -> Iterator[bytes]:
    """Read `part_size` bytes per part; only the last chunk may be shorter (S3 rejects small non-final parts)."""
    size = os.path.getsize(path)
    if part_size <= 0 or max(1, -(-size // part_size)) != part_count:
        raise RuntimeError(f"Server plan of {part_count} x {part_size} bytes does not fit {size} bytes")
    with open(path, "rb") as f:
        for _ in range(part_count):
            yield f.read(part_size)


def initiate(session: requests.Session, api: str, main: Dict[str, Any], thumbnail: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    group: Dict[str, Any] = {"main": main}
    if thumbnail:
        group["thumbnail"] = thumbnail
    r = session.post(f"{api}/upload/initiate", json={"files": [group]}, timeout=30)
    r.raise_for_status()
    return r.json()["data"]["uploads"][0]


def put_parts(session: requests.Session, path: str, config: Dict[str, Any], content_type: str) -> List[Dict[str, Any]]:
    """PUT each chunk to its presigned URL; returns the part list for completion."""
    parts: List[Dict[str, Any]] = []
    presigned = sorted(config["parts"], key=lambda p: p["partNumber"])
    for part, data in zip(presigned, iter_chunks(path, config["partSize"], len(presigned))):
        resp = session.put(part["uploadUrl"], data=data, headers={"Content-Type": content_type}, timeout=300)
        if resp.status_code not in (200, 201):
            raise RuntimeError(f"Part {part['partNumber']} failed: {resp.status_code} {resp.text}")
        parts.append({"partNumber": part["partNumber"], "etag": resp.headers.get("ETag", "")})
    return parts


def complete(session: requests.Session, api: str, config: Dict[str, Any], parts: List[Dict[str, Any]]) -> Dict[str, Any]:
    body = {
        "fileId": config["fileId"],
        "storageKey": config["storageKey"],
        "sessionId": config["sessionId"],
        "parts": parts,
    }
    r = session.post(f"{api}/upload/complete", json=body, timeout=60)
    r.raise_for_status()
    return r.json()["data"]


def upload(session: requests.Session, api: str, path: str, thumbnail_path: Optional[str] = None) -> Dict[str, Any]:
    main = describe_file(path)
    thumb = describe_file(thumbnail_path) if thumbnail_path else None
    group = initiate(session, api, main, thumb)

    result = complete(session, api, group["main"], put_parts(session, path, group["main"], main["fileType"]))
    if thumbnail_path and group.get("thumbnail"):
        tcfg = group["thumbnail"]
        complete(session, api, tcfg, put_parts(session, thumbnail_path, tcfg, "image/jpeg"))
    return result


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("file", help="Path to file to upload")
    ap.add_argument("--api", required=True, help="API base (e.g., http://localhost:8000/api/v1)")
    ap.add_argument("--user-id", required=True, help="User id forwarded in the auth header")
    ap.add_argument("--user-header", default=DEFAULT_USER_HEADER, help="Header carrying the user id")
    ap.add_argument("--thumbnail", help="Optional JPEG thumbnail (visual media only)")
    args = ap.parse_args()

    for p in filter(None, (args.file, args.thumbnail)):
        if not os.path.isfile(p):
            print(f"Not a file: {p}", file=sys.stderr)
            sys.exit(2)

    session = requests.Session()
    session.headers[args.user_header] = args.user_id

    sha = compute_sha256(args.file)
    print(f"Uploading {args.file} ({os.path.getsize(args.file)} bytes, sha256={sha})...")
    try:
        result = upload(session, args.api.rstrip("/"), args.file, args.thumbnail)
    except (requests.RequestException, RuntimeError) as e:
        print(f"Upload failed: {e}", file=sys.stderr)
        sys.exit(1)
    print(f"Upload complete. key={result['storageKey']}")
    print(sha)


if __name__ == "__main__":
    main()

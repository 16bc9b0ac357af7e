"""
📦 MediaVault · Uploads API (multipart, presigned)
==================================================

Routes (2)
----------
- POST /api/v1/upload/initiate  → Open multipart sessions + presigned part URLs
- POST /api/v1/upload/complete  → Assemble a multipart upload from its parts

Security & Operations
---------------------
- Caller identity comes from `get_current_user_id` (401 when absent).
- Keys are derived server-side at initiation; completion re-validates the
  echoed key and its ownership.
- Responses carry `Cache-Control: no-store` (presigned URLs are secrets).
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from mediavault.api.dependencies import get_current_user_id, get_upload_service
from mediavault.api.http_utils import json_no_store
from mediavault.schemas.media import CompleteUploadRequest, InitiateUploadRequest
from mediavault.services import UploadService

router = APIRouter(prefix="/upload", tags=["Uploads"])


@router.post("/initiate", summary="Initiate multipart uploads")
async def initiate_upload(
    payload: InitiateUploadRequest,
    user_id: str = Depends(get_current_user_id),
    service: UploadService = Depends(get_upload_service),
) -> JSONResponse:
    result = await service.initiate_uploads(payload, user_id)
    return json_no_store("Upload URLs generated successfully", result)


@router.post("/complete", summary="Complete a multipart upload")
async def complete_upload(
    payload: CompleteUploadRequest,
    user_id: str = Depends(get_current_user_id),
    service: UploadService = Depends(get_upload_service),
) -> JSONResponse:
    result = await service.complete_upload(payload, user_id)
    return json_no_store("Upload completed successfully", result)

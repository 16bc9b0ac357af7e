"""
🎞️ MediaVault · Media API (list, search, delete, rename)
=======================================================

Routes (4)
----------
- GET    /api/v1/media         → Page through the caller's primary assets
- GET    /api/v1/media/search  → Filename search, most recent first
- DELETE /api/v1/media         → Batch delete (thumbnails cascade)
- PATCH  /api/v1/media/rename  → Rename a primary asset and its thumbnail
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from mediavault.api.dependencies import (
    get_catalog_service,
    get_current_user_id,
    get_mutation_service,
)
from mediavault.api.http_utils import json_no_store
from mediavault.schemas.media import DeleteMediaRequest, MediaCategory, RenameMediaRequest
from mediavault.services import CatalogService, MutationService

router = APIRouter(prefix="/media", tags=["Media"])


@router.get("", summary="List media")
async def list_media(
    media_type: Optional[MediaCategory] = Query(None, alias="mediaType"),
    limit: Optional[int] = Query(None),
    continuation_token: Optional[str] = Query(None, alias="continuationToken"),
    user_id: str = Depends(get_current_user_id),
    service: CatalogService = Depends(get_catalog_service),
):
    result = await service.list_media(
        user_id, media_type=media_type, limit=limit, continuation_token=continuation_token
    )
    return json_no_store("Media files retrieved successfully", result)


@router.get("/search", summary="Search media by filename")
async def search_media(
    query: Optional[str] = Query(None),
    media_type: Optional[MediaCategory] = Query(None, alias="mediaType"),
    limit: Optional[int] = Query(None),
    continuation_token: Optional[str] = Query(None, alias="continuationToken"),
    user_id: str = Depends(get_current_user_id),
    service: CatalogService = Depends(get_catalog_service),
):
    result = await service.search_media(
        user_id, query, media_type=media_type, limit=limit, continuation_token=continuation_token
    )
    return json_no_store("Search completed successfully", result)


@router.delete("", summary="Delete media")
async def delete_media(
    payload: DeleteMediaRequest,
    user_id: str = Depends(get_current_user_id),
    service: MutationService = Depends(get_mutation_service),
):
    result = await service.delete_media(payload, user_id)
    if result.failure_count == 0:
        message = "Files deleted successfully"
    elif result.success_count == 0:
        message = "No files were deleted"
    else:
        message = "Some files could not be deleted"
    return json_no_store(message, result)


@router.patch("/rename", summary="Rename a media file")
async def rename_media(
    payload: RenameMediaRequest,
    user_id: str = Depends(get_current_user_id),
    service: MutationService = Depends(get_mutation_service),
):
    result = await service.rename_media(payload, user_id)
    return json_no_store("File renamed successfully", result)

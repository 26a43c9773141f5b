"""
TravelDiary Backend: Image Normalization Route
===============================================

What:  POST /api/images. Accepts a photo as multipart/form-data and returns
       the normalized JPEG data URL to store in a new entry's `imageUrl`.
How:   Reads the upload, checks size, then runs Pillow in the thread pool
       so decoding does not block the event loop.

Response codes:
    200  normalized image
    400  empty or oversized upload, unsupported format, bad maxDimension
    422  the bytes are not a decodable image
    500  re-encoding failed
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from starlette.concurrency import run_in_threadpool

from travel_diary.dependencies import get_image_service, require_principal
from travel_diary.schemas.entry import ErrorResponse, NormalizedImageResponse
from travel_diary.services.image_service import ImageService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/images",
    tags=["Images"],
    dependencies=[Depends(require_principal)],
)


@router.post(
    "",
    response_model=NormalizedImageResponse,
    responses={
        400: {"description": "Empty, oversized or unsupported upload", "model": ErrorResponse},
        401: {"description": "Missing or invalid bearer token (when auth is required)", "model": ErrorResponse},
        422: {"description": "File is not a readable image", "model": ErrorResponse},
        500: {"description": "Image could not be re-encoded", "model": ErrorResponse},
    },
    summary="Normalize a photo",
    description=(
        "Downscales the photo so its longer side is at most `maxDimension` pixels (default 800), "
        "re-encodes it as JPEG and returns it as a base64 data URL."
    ),
)
async def normalize_image(
    file: UploadFile = File(..., description="Photo to normalize (JPEG, PNG, WebP, GIF, BMP)"),
    max_dimension: Optional[int] = Form(default=None, alias="maxDimension", ge=1, le=4096),
    image_service: ImageService = Depends(get_image_service),
) -> NormalizedImageResponse:
    try:
        content = await file.read()
        image_service.validate_upload(content, file.size)
        result = await run_in_threadpool(image_service.normalize_with_info, content, max_dimension)
    finally:
        await file.close()

    logger.info(
        "Normalized %s: %dx%d → %dx%d (%d bytes)",
        file.filename or "upload",
        result.original_width,
        result.original_height,
        result.width,
        result.height,
        result.size_bytes,
    )
    return NormalizedImageResponse(
        image_url=result.data_url,
        width=result.width,
        height=result.height,
        original_width=result.original_width,
        original_height=result.original_height,
        size_bytes=result.size_bytes,
    )

"""
TravelDiary Backend: Shared Entry Route
========================================

What:  Public read-only access to an entry through its share token.
Who:   The /shared/{shareId} page, opened by anyone holding the link.

Never authenticated, even with REQUIRE_AUTH on: the token is the
credential. An unknown token and a token whose entry was unshared both
answer the same 404.
"""

from fastapi import APIRouter, Depends, Response

from travel_diary.dependencies import get_entry_service
from travel_diary.schemas.entry import DiaryEntry, ErrorResponse
from travel_diary.services.entry_service import EntryService

router = APIRouter(prefix="/api/shared", tags=["Sharing"])


@router.get(
    "/{share_id}",
    response_model=DiaryEntry,
    responses={404: {"description": "Unknown or revoked share link", "model": ErrorResponse}},
    summary="Get a shared entry",
)
async def get_shared_entry(
    share_id: str,
    response: Response,
    service: EntryService = Depends(get_entry_service),
) -> DiaryEntry:
    entry = await service.get_entry_by_share_token(share_id)
    # Unsharing must take effect immediately for every viewer.
    response.headers["Cache-Control"] = "no-store"
    return entry

"""
TravelDiary Backend: Entry Route Handlers
==========================================

What:  CRUD and sharing endpoints for diary entries under /api/entries.
How:   Handlers pass raw values (path strings, query values, JSON bodies)
       to EntryService, which validates them. Errors propagate to the
       global exception handlers in main.py.
Who:   Called by the dashboard, upload and entry-detail pages.

Route Inventory:
    GET    /api/entries?userId=ID        list a user's entries (newest first)
    GET    /api/entries/{id}             fetch one entry
    POST   /api/entries                  create an entry              → 201
    DELETE /api/entries/{id}             delete an entry
    POST   /api/entries/{id}/share       enable sharing, get the share URL
    POST   /api/entries/{id}/unshare     disable sharing (token is kept)

Why ids arrive as strings:
    A typed `int` path parameter would make FastAPI answer "abc" with its
    own 422. The service parses the id so that "abc" → 400 and an unknown
    numeric id → 404, as the clients expect.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Query, Response

from travel_diary.dependencies import get_entry_service, require_principal
from travel_diary.schemas.entry import (
    DiaryEntry,
    ErrorResponse,
    MessageResponse,
    ShareRequest,
    ShareResponse,
)
from travel_diary.services.entry_service import EntryService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/entries",
    tags=["Entries"],
    dependencies=[Depends(require_principal)],
    responses={
        401: {"description": "Missing or invalid bearer token (when auth is required)", "model": ErrorResponse},
        500: {"description": "Server error", "model": ErrorResponse},
    },
)


@router.get(
    "",
    response_model=List[DiaryEntry],
    responses={400: {"description": "userId missing", "model": ErrorResponse}},
    summary="List a user's entries",
    description="Returns every entry owned by `userId`, most recent first. An empty array is a valid result.",
)
async def list_entries(
    response: Response,
    user_id: Optional[str] = Query(default=None, alias="userId", description="Owner of the entries"),
    service: EntryService = Depends(get_entry_service),
) -> List[DiaryEntry]:
    entries = await service.list_entries_for_user(user_id)
    response.headers["X-Total-Count"] = str(len(entries))
    response.headers["Cache-Control"] = "private, no-cache"
    return entries


@router.get(
    "/{entry_id}",
    response_model=DiaryEntry,
    responses={
        400: {"description": "Entry id is not a positive integer", "model": ErrorResponse},
        404: {"description": "Entry not found", "model": ErrorResponse},
    },
    summary="Get a single entry",
)
async def get_entry(
    entry_id: str,
    response: Response,
    service: EntryService = Depends(get_entry_service),
) -> DiaryEntry:
    entry = await service.get_entry(entry_id)
    # Sharing state can change at any time; clients must revalidate.
    response.headers["Cache-Control"] = "private, no-cache"
    return entry


@router.post(
    "",
    status_code=201,
    response_model=DiaryEntry,
    responses={400: {"description": "Validation errors, one per invalid field", "model": ErrorResponse}},
    summary="Create an entry",
    description=(
        "Creates a diary entry. `userId` and `screenInfo` are required. `caption` falls back to "
        "`captionText`, then to a default caption; a missing `imageUrl` is replaced by a "
        "1x1 placeholder image."
    ),
)
async def create_entry(
    payload: Dict[str, Any] = Body(..., description="Entry submission (camelCase fields)"),
    service: EntryService = Depends(get_entry_service),
) -> DiaryEntry:
    return await service.create_entry(payload)


@router.delete(
    "/{entry_id}",
    response_model=MessageResponse,
    responses={
        400: {"description": "Entry id is not a positive integer", "model": ErrorResponse},
        404: {"description": "Entry not found", "model": ErrorResponse},
    },
    summary="Delete an entry",
)
async def delete_entry(
    entry_id: str,
    service: EntryService = Depends(get_entry_service),
) -> MessageResponse:
    await service.delete_entry(entry_id)
    return MessageResponse(message="Entry deleted successfully")


@router.post(
    "/{entry_id}/share",
    response_model=ShareResponse,
    responses={
        400: {"description": "Bad id or share token", "model": ErrorResponse},
        404: {"description": "Entry not found", "model": ErrorResponse},
    },
    summary="Enable public sharing",
    description=(
        "Marks the entry as shared and returns its share token and URL. Sharing an entry again "
        "returns the same token. An optional body `{\"shareId\": \"...\"}` picks the token for an "
        "entry that has never been shared."
    ),
)
async def share_entry(
    entry_id: str,
    body: Optional[ShareRequest] = Body(default=None),
    service: EntryService = Depends(get_entry_service),
) -> ShareResponse:
    explicit_token = body.share_id if body is not None else None
    entry = await service.set_sharing(entry_id, True, explicit_token)
    return ShareResponse(share_id=entry.share_id, share_url=service.share_url(entry))


@router.post(
    "/{entry_id}/unshare",
    response_model=MessageResponse,
    responses={
        400: {"description": "Entry id is not a positive integer", "model": ErrorResponse},
        404: {"description": "Entry not found", "model": ErrorResponse},
    },
    summary="Disable public sharing",
)
async def unshare_entry(
    entry_id: str,
    service: EntryService = Depends(get_entry_service),
) -> MessageResponse:
    await service.set_sharing(entry_id, False)
    return MessageResponse(message="Entry is no longer shared")

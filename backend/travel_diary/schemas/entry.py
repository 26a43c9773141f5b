"""
TravelDiary Backend: Pydantic Request/Response Schemas
=======================================================

What:  Pydantic models defining the API contract between frontend and backend,
       plus the validated record handed to the repositories.
How:   Wire names are camelCase (`userId`, `screenInfo`, ...) through an alias
       generator; Python code uses snake_case attributes. `populate_by_name`
       lets services construct models with either spelling.

Validation flow for a new entry:
    raw JSON dict
        → EntrySubmission.model_validate()   (shape + types, every field checked)
        → EntrySubmission.resolve()          (caption/captionText/defaults)
        → NewEntry                           (fully populated, no optionals left
                                              except `location`)
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

# 1×1 transparent PNG used when a submission carries no image.
PLACEHOLDER_IMAGE_URL = (
    "data:image/png;base64,iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mP8z8BQDwAEhQGA"
    "hKmMIQAAAABJRU5ErkJggg=="
)

_ALLOWED_URL_PREFIXES = ("data:image/", "https://", "http://")


class CamelModel(BaseModel):
    """Base for every model exposed over HTTP."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ══════════════════════════════════════════════════════════════════════════
# Value Objects
# ══════════════════════════════════════════════════════════════════════════


class Location(CamelModel):
    """
    Geographic position captured with an entry.

    Strict floats: `{"lat": "35.36"}` is malformed input, not a number to coerce.
    Integers are accepted as floats.
    """

    lat: float = Field(strict=True, ge=-90, le=90, allow_inf_nan=False)
    lng: float = Field(strict=True, ge=-180, le=180, allow_inf_nan=False)


class ScreenInfo(CamelModel):
    """Viewport of the capturing device at creation time."""

    width: int = Field(strict=True, ge=0)
    height: int = Field(strict=True, ge=0)
    orientation: str = Field(min_length=1, max_length=32)


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class EntrySubmission(CamelModel):
    """
    What:  Body of POST /api/entries as the client sends it.
    Why:   `caption` and `captionText` are alternates (the upload form binds
           `captionText`, older clients send `caption`); both are accepted here
           and collapsed by `resolve()`.

    Unknown keys (`shareId`, `isShared`, `createdAt`, ...) are ignored: sharing
    state and timestamps are owned by the server.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    user_id: str = Field(max_length=255)
    caption: Optional[str] = Field(default=None, max_length=2000)
    caption_text: Optional[str] = Field(default=None, max_length=2000)
    image_url: Optional[str] = None
    location: Optional[Location] = None
    screen_info: ScreenInfo

    @field_validator("user_id")
    @classmethod
    def validate_user_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("userId must not be empty")
        return v

    @field_validator("image_url")
    @classmethod
    def validate_image_url(cls, v: Optional[str]) -> Optional[str]:
        """Accepts an inline data URL or an absolute http(s) URL; blank means absent."""
        if v is None or not v.strip():
            return None
        v = v.strip()
        if not v.startswith(_ALLOWED_URL_PREFIXES):
            raise ValueError("imageUrl must be a data:image/ URL or an http(s) URL")
        if v.startswith("data:") and ";base64," not in v:
            raise ValueError("imageUrl data URL must be base64 encoded")
        return v

    def resolve(self, default_caption: str, placeholder_image: str = PLACEHOLDER_IMAGE_URL) -> "NewEntry":
        """
        Collapse alternates and fill defaults into a complete NewEntry.

        Caption precedence: caption → captionText → default_caption.
        Blank strings count as absent.
        """
        caption = _first_non_blank(self.caption, self.caption_text) or default_caption
        return NewEntry(
            user_id=self.user_id,
            caption=caption,
            image_url=self.image_url or placeholder_image,
            location=self.location,
            screen_info=self.screen_info,
        )


class ShareRequest(CamelModel):
    """Optional body of POST /api/entries/{id}/share."""

    share_id: Optional[str] = Field(default=None, max_length=64)


class NewEntry(CamelModel):
    """
    A validated entry that has not been stored yet.

    The repository assigns `id`, `created_at` and the sharing fields.
    """

    user_id: str
    caption: str
    image_url: str
    location: Optional[Location] = None
    screen_info: ScreenInfo


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class DiaryEntry(CamelModel):
    """
    What:  The persisted diary entry, as stored and as returned by the API.
    Who:   Produced by both repositories; returned by GET/POST /api/entries
           and GET /api/shared/{shareId}.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    id: int = Field(description="Monotonically assigned entry identifier")
    user_id: str = Field(description="Owning principal")
    caption: str
    image_url: str = Field(description="Inline data URL or external image URL")
    location: Optional[Location] = None
    screen_info: ScreenInfo
    created_at: datetime = Field(description="Creation timestamp (UTC ISO 8601)")
    share_id: Optional[str] = Field(default=None, description="Public share token, once sharing was enabled")
    is_shared: bool = False


class ShareResponse(CamelModel):
    """Returned by POST /api/entries/{id}/share."""

    message: str = "Entry shared successfully"
    share_id: str
    share_url: str


class MessageResponse(BaseModel):
    """Plain acknowledgement for delete / unshare."""

    message: str


class NormalizedImageResponse(CamelModel):
    """
    Returned by POST /api/images.

    `image_url` can be posted as-is in the `imageUrl` field of a new entry.
    """

    image_url: str
    width: int
    height: int
    original_width: int
    original_height: int
    size_bytes: int


# ══════════════════════════════════════════════════════════════════════════
# Error / Health Models
# ══════════════════════════════════════════════════════════════════════════


class ErrorResponse(BaseModel):
    """
    Standardized error response format for all API errors.

    Example:
        {
            "error": "validation_error",
            "message": "Invalid entry data",
            "details": {"errors": [{"field": "userId", "message": "Field required"}]},
            "request_id": "1f0c2a9b"
        }
    """

    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[Dict[str, Any]] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    """Health check response showing service and storage status."""

    status: str = Field(description="Overall service status: healthy, unhealthy")
    version: str
    storage_backend: str = Field(description="memory or database")
    storage: str = Field(description="Storage connectivity: connected, disconnected")
    entry_count: Optional[int] = Field(default=None, description="Stored entries, when reachable")
    uptime_seconds: float


# ══════════════════════════════════════════════════════════════════════════
# Helpers
# ══════════════════════════════════════════════════════════════════════════


def _first_non_blank(*values: Optional[str]) -> Optional[str]:
    for value in values:
        if value is not None and value.strip():
            return value.strip()
    return None


def field_errors(errors: Iterable[Dict[str, Any]], skip: Sequence[str] = ()) -> List[Dict[str, str]]:
    """
    Flatten pydantic error dicts into `[{"field": "a.b", "message": "..."}]`.

    `skip` drops leading location parts FastAPI adds ("body", "query").
    """
    flattened = []
    for error in errors:
        loc = [str(part) for part in error.get("loc", ())]
        while loc and loc[0] in skip:
            loc = loc[1:]
        flattened.append({
            "field": ".".join(loc) or "__root__",
            "message": error.get("msg", "Invalid value"),
        })
    return flattened

"""
TravelDiary Backend: Entry Service (Business Logic)
====================================================

What:  Create, list, fetch, delete and (un)share diary entries.
How:   Validates every input once, at this boundary, then talks to the
       injected EntryRepository. Routes stay thin: they pass raw values
       (path strings, JSON dicts) in and serialize what comes back.
Who:   Route handlers in routes/entries.py and routes/shared.py.

Orchestration Flow (POST /api/entries):
    ┌──────────┐    ┌──────────────────┐    ┌─────────────┐    ┌────────────┐
    │ raw JSON │───▶│ EntrySubmission  │───▶│  resolve()  │───▶│ repository │
    │ (Route)  │    │ (field checks)   │    │  defaults   │    │  .insert() │
    └──────────┘    └──────────────────┘    └─────────────┘    └────────────┘

    Validation completes before the repository is touched, so a rejected
    submission never leaves a partial entry behind.

Sharing rules:
    enable,  no shareId yet   → new UUID4 token (or the caller's explicit one)
    enable,  shareId present  → same token again
    disable                   → isShared=False, shareId kept
    Token lookups only match entries that are currently shared, and every
    miss is the same NotFoundError.
"""

import logging
import uuid
from typing import Any, List, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError

from travel_diary.exceptions import NotFoundError, PersistenceError, ValidationError
from travel_diary.repositories.base import EntryRepository
from travel_diary.schemas.entry import (
    PLACEHOLDER_IMAGE_URL,
    DiaryEntry,
    EntrySubmission,
    field_errors,
)

logger = logging.getLogger(__name__)

DEFAULT_CAPTION = "My travel memory"

# Largest value a signed 64-bit INTEGER column can hold
MAX_ENTRY_ID = 2**63 - 1


def parse_entry_id(raw_id: Any) -> int:
    """
    Parse a path/query value into a positive entry id.

    "12" → 12. "abc", "0", "-3", "1.5", "12abc" and anything above
    MAX_ENTRY_ID → ValidationError (400), as opposed to NotFoundError
    (404) for a well-formed unknown id.
    """
    if isinstance(raw_id, bool):
        raise ValidationError(message="Invalid entry ID", field="id")
    if isinstance(raw_id, int):
        value = raw_id
    else:
        text = str(raw_id).strip()
        # Length is checked before int() so oversized digit strings never convert
        if not (text.isascii() and text.isdigit()) or len(text) > len(str(MAX_ENTRY_ID)):
            raise ValidationError(
                message="Invalid entry ID",
                field="id",
                context={"value": text[:64]},
            )
        value = int(text)
    if not 1 <= value <= MAX_ENTRY_ID:
        raise ValidationError(message="Invalid entry ID", field="id")
    return value


class EntryService:
    """
    Business logic for diary entries.

    Args:
        repository:       Storage backend (in-memory or SQL)
        default_caption:  Caption used when neither caption nor captionText is given
        share_url_prefix: Frontend path prefix for shared entries
    """

    def __init__(
        self,
        repository: EntryRepository,
        default_caption: str = DEFAULT_CAPTION,
        share_url_prefix: str = "/shared",
    ):
        self.repository = repository
        self.default_caption = default_caption
        self.share_url_prefix = share_url_prefix.rstrip("/")

    # ── Create ────────────────────────────────────────────────────────────

    async def create_entry(self, submission: Mapping[str, Any]) -> DiaryEntry:
        """
        Validate a submission, fill defaults and persist it.

        Raises:
            ValidationError: with `errors` listing every invalid field.
            PersistenceError: the repository failed.
        """
        if not isinstance(submission, Mapping):
            raise ValidationError(
                message="Invalid entry data",
                errors=[{"field": "__root__", "message": "Request body must be a JSON object"}],
            )

        try:
            parsed = EntrySubmission.model_validate(dict(submission))
        except PydanticValidationError as e:
            errors = field_errors(e.errors())
            logger.info("Entry submission rejected: %s", ", ".join(err["field"] for err in errors))
            raise ValidationError(message="Invalid entry data", errors=errors)

        new_entry = parsed.resolve(self.default_caption, PLACEHOLDER_IMAGE_URL)
        entry = await self.repository.insert(new_entry)

        logger.info(
            "Entry %d created for user %s (location=%s, placeholder_image=%s)",
            entry.id,
            entry.user_id,
            entry.location is not None,
            entry.image_url == PLACEHOLDER_IMAGE_URL,
        )
        return entry

    # ── Read ──────────────────────────────────────────────────────────────

    async def list_entries_for_user(self, user_id: Optional[str]) -> List[DiaryEntry]:
        """Entries owned by `user_id`, newest first. An empty list is a valid result."""
        if user_id is None or not str(user_id).strip():
            raise ValidationError(message="User ID is required", field="userId")

        entries = await self.repository.by_user(str(user_id).strip())
        logger.debug("Found %d entries for user %s", len(entries), user_id)
        return entries

    async def get_entry(self, raw_id: Any) -> DiaryEntry:
        entry_id = parse_entry_id(raw_id)
        entry = await self.repository.get(entry_id)
        if entry is None:
            raise NotFoundError(resource="entry", resource_id=str(entry_id))
        return entry

    async def get_entry_by_share_token(self, token: Optional[str]) -> DiaryEntry:
        """
        Public lookup by share token.

        Unknown tokens and tokens of unshared entries both raise the same
        NotFoundError without echoing the token back.
        """
        entry = await self.repository.by_share_token(token) if token else None
        if entry is None:
            raise NotFoundError(resource="shared entry")
        return entry

    # ── Delete ────────────────────────────────────────────────────────────

    async def delete_entry(self, raw_id: Any) -> None:
        """
        Remove an entry unconditionally.

        A second delete of the same id raises NotFoundError.
        """
        entry_id = parse_entry_id(raw_id)
        if not await self.repository.remove(entry_id):
            raise NotFoundError(resource="entry", resource_id=str(entry_id))
        logger.info("Entry %d deleted", entry_id)

    # ── Sharing ───────────────────────────────────────────────────────────

    async def set_sharing(
        self,
        raw_id: Any,
        enabled: bool,
        explicit_token: Optional[str] = None,
    ) -> DiaryEntry:
        """
        Enable or disable public sharing of an entry.

        Args:
            raw_id:          Entry id (path string or int)
            enabled:         True to share, False to stop sharing
            explicit_token:  Token to use if the entry has none yet. Must not
                             belong to another entry. Ignored when the entry
                             already has a shareId.

        Raises:
            ValidationError:  bad id, or explicit token held by another entry
            NotFoundError:    entry does not exist
            PersistenceError: the update could not be stored
        """
        entry_id = parse_entry_id(raw_id)
        current = await self.repository.get(entry_id)
        if current is None:
            raise NotFoundError(resource="entry", resource_id=str(entry_id))

        candidate: Optional[str] = None
        if enabled and current.share_id is None:
            candidate = await self._claim_token(entry_id, explicit_token)

        updated = await self.repository.update_sharing(entry_id, enabled, candidate)
        if updated is None:
            # Entry vanished between the read and the update (concurrent delete).
            logger.error("Sharing update for entry %d was not persisted", entry_id)
            raise PersistenceError(
                message="Failed to update entry",
                context={"entry_id": entry_id, "enabled": enabled},
            )

        logger.info("Entry %d sharing %s", entry_id, "enabled" if enabled else "disabled")
        return updated

    def share_url(self, entry: DiaryEntry) -> str:
        if not entry.share_id:
            raise ValueError(f"Entry {entry.id} has no share token")
        return f"{self.share_url_prefix}/{entry.share_id}"

    async def _claim_token(self, entry_id: int, explicit_token: Optional[str]) -> str:
        if explicit_token is None:
            return str(uuid.uuid4())

        token = explicit_token.strip()
        if not token or len(token) > 64:
            raise ValidationError(
                message="Share token must be 1-64 characters",
                field="shareId",
            )
        owner = await self.repository.share_token_owner(token)
        if owner is not None and owner != entry_id:
            raise ValidationError(
                message="Share token is already in use",
                field="shareId",
            )
        return token

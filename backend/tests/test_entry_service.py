"""
TravelDiary Backend: Entry Service Unit Tests
==============================================

What:  Tests for EntryService business rules.
How:   Real InMemoryEntryRepository with a deterministic clock; a mocked
       repository where a failure has to be forced.

What we test:
    ✅ Defaults: caption fallback chain, placeholder image, private entry
    ✅ Every invalid field reported at once; nothing stored on rejection
    ✅ Entry id parsing: malformed → ValidationError, unknown → NotFoundError
    ✅ Sharing: stable tokens, unshare keeps token, explicit token rules
    ✅ Share-token lookups hide unshared entries
"""

from unittest.mock import AsyncMock

import pytest

from travel_diary.exceptions import NotFoundError, PersistenceError, ValidationError
from travel_diary.repositories.memory import InMemoryEntryRepository
from travel_diary.schemas.entry import PLACEHOLDER_IMAGE_URL
from travel_diary.services.entry_service import DEFAULT_CAPTION, MAX_ENTRY_ID, EntryService, parse_entry_id


@pytest.fixture
def repository(ticking_clock):
    return InMemoryEntryRepository(clock=ticking_clock)


@pytest.fixture
def service(repository):
    return EntryService(repository=repository)


class TestParseEntryId:

    @pytest.mark.parametrize("raw, expected", [("1", 1), ("42", 42), (" 7 ", 7), (9, 9)])
    def test_valid_ids(self, raw, expected):
        assert parse_entry_id(raw) == expected

    @pytest.mark.parametrize("raw", ["abc", "", "0", "-3", "1.5", "12abc", "²", True, 0, -1])
    def test_invalid_ids(self, raw):
        with pytest.raises(ValidationError) as exc_info:
            parse_entry_id(raw)
        assert exc_info.value.message == "Invalid entry ID"

    def test_largest_id_accepted(self):
        assert parse_entry_id(str(MAX_ENTRY_ID)) == MAX_ENTRY_ID

    @pytest.mark.parametrize(
        "raw",
        [str(MAX_ENTRY_ID + 1), "99999999999999999999", "9" * 5000, MAX_ENTRY_ID + 1],
    )
    def test_out_of_range_ids(self, raw):
        with pytest.raises(ValidationError):
            parse_entry_id(raw)


class TestCreateEntry:

    @pytest.mark.asyncio
    async def test_minimal_submission_gets_defaults(self, service, entry_payload):
        entry = await service.create_entry(entry_payload)

        assert entry.id == 1
        assert entry.caption == DEFAULT_CAPTION
        assert entry.image_url == PLACEHOLDER_IMAGE_URL
        assert entry.location is None
        assert entry.is_shared is False
        assert entry.share_id is None

    @pytest.mark.asyncio
    async def test_caption_preferred_over_caption_text(self, service, entry_payload):
        entry = await service.create_entry({**entry_payload, "caption": "Alps", "captionText": "ignored"})

        assert entry.caption == "Alps"

    @pytest.mark.asyncio
    async def test_caption_text_used_when_caption_blank(self, service, entry_payload):
        entry = await service.create_entry({**entry_payload, "caption": "  ", "captionText": "Fjords"})

        assert entry.caption == "Fjords"

    @pytest.mark.asyncio
    async def test_custom_default_caption(self, repository, entry_payload):
        service = EntryService(repository=repository, default_caption="Untitled")

        entry = await service.create_entry(entry_payload)

        assert entry.caption == "Untitled"

    @pytest.mark.asyncio
    async def test_client_sharing_fields_ignored(self, service, entry_payload):
        entry = await service.create_entry({**entry_payload, "isShared": True, "shareId": "mine"})

        assert entry.is_shared is False
        assert entry.share_id is None

    @pytest.mark.asyncio
    async def test_location_stored_exactly(self, service, entry_payload):
        entry = await service.create_entry({**entry_payload, "location": {"lat": 48.8584, "lng": 2.2945}})

        assert entry.location.lat == 48.8584
        assert entry.location.lng == 2.2945

    @pytest.mark.asyncio
    async def test_every_invalid_field_reported(self, service, repository):
        with pytest.raises(ValidationError) as exc_info:
            await service.create_entry({
                "userId": "",
                "location": {"lat": "north", "lng": 500},
                "imageUrl": "ftp://example.com/a.jpg",
            })

        fields = {error["field"] for error in exc_info.value.errors}
        assert {"userId", "location.lat", "location.lng", "imageUrl", "screenInfo"} <= fields
        assert await repository.count() == 0

    @pytest.mark.asyncio
    async def test_non_object_body_rejected(self, service):
        with pytest.raises(ValidationError) as exc_info:
            await service.create_entry(["not", "an", "object"])
        assert exc_info.value.errors[0]["field"] == "__root__"


class TestReadAndDelete:

    @pytest.mark.asyncio
    async def test_list_requires_user_id(self, service):
        for missing in (None, "", "   "):
            with pytest.raises(ValidationError) as exc_info:
                await service.list_entries_for_user(missing)
            assert exc_info.value.message == "User ID is required"

    @pytest.mark.asyncio
    async def test_list_newest_first(self, service, entry_payload):
        for caption in ("one", "two", "three"):
            await service.create_entry({**entry_payload, "caption": caption})

        entries = await service.list_entries_for_user("user-1")

        assert [entry.caption for entry in entries] == ["three", "two", "one"]

    @pytest.mark.asyncio
    async def test_get_malformed_vs_unknown(self, service):
        with pytest.raises(ValidationError):
            await service.get_entry("abc")
        with pytest.raises(NotFoundError):
            await service.get_entry("9999")

    @pytest.mark.asyncio
    async def test_delete_then_delete_again(self, service, entry_payload):
        entry = await service.create_entry(entry_payload)

        await service.delete_entry(str(entry.id))

        with pytest.raises(NotFoundError):
            await service.delete_entry(str(entry.id))
        with pytest.raises(NotFoundError):
            await service.get_entry(entry.id)


class TestSharing:

    @pytest.mark.asyncio
    async def test_share_assigns_uuid_token(self, service, entry_payload):
        entry = await service.create_entry(entry_payload)

        shared = await service.set_sharing(entry.id, True)

        assert shared.is_shared is True
        assert len(shared.share_id) == 36
        assert service.share_url(shared) == f"/shared/{shared.share_id}"

    @pytest.mark.asyncio
    async def test_share_is_idempotent(self, service, entry_payload):
        entry = await service.create_entry(entry_payload)

        first = await service.set_sharing(entry.id, True)
        second = await service.set_sharing(entry.id, True)

        assert first.share_id == second.share_id

    @pytest.mark.asyncio
    async def test_unshare_keeps_token_and_reshare_reuses_it(self, service, entry_payload):
        entry = await service.create_entry(entry_payload)
        shared = await service.set_sharing(entry.id, True)

        unshared = await service.set_sharing(entry.id, False)
        reshared = await service.set_sharing(entry.id, True)

        assert unshared.is_shared is False
        assert unshared.share_id == shared.share_id
        assert reshared.share_id == shared.share_id

    @pytest.mark.asyncio
    async def test_unshare_never_shared_entry(self, service, entry_payload):
        entry = await service.create_entry(entry_payload)

        unshared = await service.set_sharing(entry.id, False)

        assert unshared.is_shared is False
        assert unshared.share_id is None

    @pytest.mark.asyncio
    async def test_explicit_token_used_for_first_share(self, service, entry_payload):
        entry = await service.create_entry(entry_payload)

        shared = await service.set_sharing(entry.id, True, "kyoto-2024")

        assert shared.share_id == "kyoto-2024"

    @pytest.mark.asyncio
    async def test_explicit_token_ignored_once_token_exists(self, service, entry_payload):
        entry = await service.create_entry(entry_payload)
        first = await service.set_sharing(entry.id, True)

        again = await service.set_sharing(entry.id, True, "something-else")

        assert again.share_id == first.share_id

    @pytest.mark.asyncio
    async def test_explicit_token_must_be_unique(self, service, entry_payload):
        first = await service.create_entry(entry_payload)
        second = await service.create_entry(entry_payload)
        await service.set_sharing(first.id, True, "taken")

        with pytest.raises(ValidationError) as exc_info:
            await service.set_sharing(second.id, True, "taken")
        assert exc_info.value.field == "shareId"

    @pytest.mark.asyncio
    async def test_blank_explicit_token_rejected(self, service, entry_payload):
        entry = await service.create_entry(entry_payload)

        with pytest.raises(ValidationError):
            await service.set_sharing(entry.id, True, "   ")

    @pytest.mark.asyncio
    async def test_share_unknown_entry(self, service):
        with pytest.raises(NotFoundError):
            await service.set_sharing("77", True)

    @pytest.mark.asyncio
    async def test_lookup_by_token_only_while_shared(self, service, entry_payload):
        entry = await service.create_entry(entry_payload)
        shared = await service.set_sharing(entry.id, True)

        assert (await service.get_entry_by_share_token(shared.share_id)).id == entry.id

        await service.set_sharing(entry.id, False)
        with pytest.raises(NotFoundError):
            await service.get_entry_by_share_token(shared.share_id)

    @pytest.mark.asyncio
    async def test_lookup_unknown_or_empty_token(self, service):
        for token in ("no-such-token", "", None):
            with pytest.raises(NotFoundError):
                await service.get_entry_by_share_token(token)

    @pytest.mark.asyncio
    async def test_entry_deleted_during_share_raises_persistence_error(self, service, repository, entry_payload):
        entry = await service.create_entry(entry_payload)
        repository.update_sharing = AsyncMock(return_value=None)

        with pytest.raises(PersistenceError):
            await service.set_sharing(entry.id, True)

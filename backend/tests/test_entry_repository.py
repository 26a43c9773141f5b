"""
TravelDiary Backend: Entry Repository Contract Tests
=====================================================

What:  One suite run against both EntryRepository implementations.
How:   The `repository` fixture is parametrized: the in-memory store, and
       the SQL store on a throwaway SQLite file (aiosqlite). Both get the
       same deterministic clock.

What we test:
    ✅ Ids start at 1 and are never reused, even after deletes
    ✅ by_user: owner filter, newest first, ties in insertion order
    ✅ Share tokens: lookup only while shared, token kept across unshare
    ✅ update_sharing never overwrites an existing token
    ✅ Location values survive storage bit-for-bit
    ✅ Concurrent inserts get distinct ids; remove racing update stays consistent
    ✅ Ids beyond the 64-bit range are rejected before reaching the store
"""

import asyncio
from datetime import datetime, timezone

import pytest
import pytest_asyncio

from travel_diary.database import build_engine
from travel_diary.exceptions import NotFoundError, ValidationError
from travel_diary.repositories.memory import InMemoryEntryRepository
from travel_diary.repositories.sql import SqlEntryRepository
from travel_diary.schemas.entry import Location, NewEntry, ScreenInfo
from travel_diary.services.entry_service import MAX_ENTRY_ID, EntryService


def new_entry(user_id: str = "user-1", caption: str = "Caption", **overrides) -> NewEntry:
    values = {
        "user_id": user_id,
        "caption": caption,
        "image_url": "https://images.example.com/photo.jpg",
        "location": None,
        "screen_info": ScreenInfo(width=1280, height=720, orientation="landscape-primary"),
    }
    values.update(overrides)
    return NewEntry(**values)


@pytest_asyncio.fixture(params=["memory", "sql"])
async def repository(request, tmp_path, ticking_clock):
    if request.param == "memory":
        yield InMemoryEntryRepository(clock=ticking_clock)
        return

    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'entries.db'}")
    repo = SqlEntryRepository(engine, clock=ticking_clock)
    await repo.create_schema()
    try:
        yield repo
    finally:
        await repo.close()


class TestInsertAndGet:

    @pytest.mark.asyncio
    async def test_ids_start_at_one_and_increase(self, repository):
        first = await repository.insert(new_entry())
        second = await repository.insert(new_entry())

        assert (first.id, second.id) == (1, 2)

    @pytest.mark.asyncio
    async def test_new_entry_is_private_without_token(self, repository):
        entry = await repository.insert(new_entry())

        assert entry.is_shared is False
        assert entry.share_id is None

    @pytest.mark.asyncio
    async def test_created_at_from_clock_is_utc(self, repository):
        entry = await repository.insert(new_entry())

        assert entry.created_at == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_get_returns_stored_entry(self, repository):
        created = await repository.insert(new_entry(caption="Lisbon tram"))

        fetched = await repository.get(created.id)

        assert fetched == created

    @pytest.mark.asyncio
    async def test_get_unknown_id_returns_none(self, repository):
        assert await repository.get(9999) is None

    @pytest.mark.asyncio
    async def test_ids_not_reused_after_delete(self, repository):
        first = await repository.insert(new_entry())
        assert await repository.remove(first.id) is True

        second = await repository.insert(new_entry())

        assert second.id == 2

    @pytest.mark.asyncio
    async def test_location_round_trips_exactly(self, repository):
        location = Location(lat=35.6762, lng=139.6503)

        created = await repository.insert(new_entry(location=location))
        fetched = await repository.get(created.id)

        assert fetched.location.lat == 35.6762
        assert fetched.location.lng == 139.6503


class TestByUser:

    @pytest.mark.asyncio
    async def test_newest_first_and_owner_only(self, repository):
        await repository.insert(new_entry(caption="first"))
        await repository.insert(new_entry(user_id="someone-else"))
        await repository.insert(new_entry(caption="second"))

        entries = await repository.by_user("user-1")

        assert [entry.caption for entry in entries] == ["second", "first"]
        assert all(entry.user_id == "user-1" for entry in entries)

    @pytest.mark.asyncio
    async def test_unknown_user_gets_empty_list(self, repository):
        await repository.insert(new_entry())

        assert await repository.by_user("nobody") == []

    @pytest.mark.asyncio
    async def test_equal_timestamps_keep_insertion_order(self, tmp_path):
        """A frozen clock gives every entry the same created_at."""
        frozen = datetime(2024, 1, 1, tzinfo=timezone.utc)
        memory = InMemoryEntryRepository(clock=lambda: frozen)
        sql = SqlEntryRepository(
            build_engine(f"sqlite+aiosqlite:///{tmp_path / 'ties.db'}"),
            clock=lambda: frozen,
        )
        await sql.create_schema()
        try:
            for repo in (memory, sql):
                for caption in ("a", "b", "c"):
                    await repo.insert(new_entry(caption=caption))
                entries = await repo.by_user("user-1")
                assert [entry.caption for entry in entries] == ["a", "b", "c"]
        finally:
            await sql.close()


class TestSharing:

    @pytest.mark.asyncio
    async def test_token_lookup_only_while_shared(self, repository):
        entry = await repository.insert(new_entry())

        await repository.update_sharing(entry.id, True, "token-1")
        assert (await repository.by_share_token("token-1")).id == entry.id

        await repository.update_sharing(entry.id, False)
        assert await repository.by_share_token("token-1") is None

    @pytest.mark.asyncio
    async def test_unshare_keeps_token(self, repository):
        entry = await repository.insert(new_entry())
        await repository.update_sharing(entry.id, True, "token-1")

        updated = await repository.update_sharing(entry.id, False)

        assert updated.is_shared is False
        assert updated.share_id == "token-1"

    @pytest.mark.asyncio
    async def test_existing_token_never_overwritten(self, repository):
        entry = await repository.insert(new_entry())
        await repository.update_sharing(entry.id, True, "token-1")

        updated = await repository.update_sharing(entry.id, True, "token-2")

        assert updated.share_id == "token-1"

    @pytest.mark.asyncio
    async def test_share_token_owner_ignores_shared_flag(self, repository):
        entry = await repository.insert(new_entry())
        await repository.update_sharing(entry.id, True, "token-1")
        await repository.update_sharing(entry.id, False)

        assert await repository.share_token_owner("token-1") == entry.id
        assert await repository.share_token_owner("unknown") is None

    @pytest.mark.asyncio
    async def test_update_unknown_entry_returns_none(self, repository):
        assert await repository.update_sharing(42, True, "token") is None


class TestRemoveAndCount:

    @pytest.mark.asyncio
    async def test_remove_twice(self, repository):
        entry = await repository.insert(new_entry())

        assert await repository.remove(entry.id) is True
        assert await repository.remove(entry.id) is False
        assert await repository.get(entry.id) is None

    @pytest.mark.asyncio
    async def test_count(self, repository):
        assert await repository.count() == 0
        await repository.insert(new_entry())
        await repository.insert(new_entry())

        assert await repository.count() == 2


class TestConcurrency:

    @pytest.mark.asyncio
    async def test_concurrent_inserts_get_distinct_ids(self, repository):
        created = await asyncio.gather(*(repository.insert(new_entry(caption=f"Stop {n}")) for n in range(10)))

        ids = sorted(entry.id for entry in created)
        assert ids == list(range(1, 11))
        assert await repository.count() == 10

        following = await repository.insert(new_entry())
        assert following.id == 11

    @pytest.mark.asyncio
    async def test_remove_racing_share(self, repository):
        entry = await repository.insert(new_entry())

        removed, updated = await asyncio.gather(
            repository.remove(entry.id),
            repository.update_sharing(entry.id, True, "token-1"),
        )

        assert removed is True
        assert await repository.get(entry.id) is None
        assert await repository.by_share_token("token-1") is None
        if updated is not None:
            assert updated.id == entry.id
            assert updated.share_id == "token-1"

    @pytest.mark.asyncio
    async def test_concurrent_shares_keep_one_token(self, repository):
        entry = await repository.insert(new_entry())

        results = await asyncio.gather(
            *(repository.update_sharing(entry.id, True, f"token-{n}") for n in range(5))
        )

        tokens = {result.share_id for result in results}
        assert len(tokens) == 1
        stored = await repository.get(entry.id)
        assert stored.share_id in tokens
        assert stored.is_shared is True


class TestIdBounds:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("entry_id", ["99999999999999999999", "9" * 5000])
    async def test_oversized_id_never_reaches_store(self, repository, entry_id):
        service = EntryService(repository=repository)

        with pytest.raises(ValidationError):
            await service.get_entry(entry_id)
        with pytest.raises(ValidationError):
            await service.delete_entry(entry_id)
        with pytest.raises(ValidationError):
            await service.set_sharing(entry_id, True)

    @pytest.mark.asyncio
    async def test_largest_id_is_not_found(self, repository):
        service = EntryService(repository=repository)

        with pytest.raises(NotFoundError):
            await service.get_entry(str(MAX_ENTRY_ID))

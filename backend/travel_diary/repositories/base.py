"""
TravelDiary Backend: Abstract Entry Repository
===============================================

What:  The storage contract the EntryService depends on.
How:   Concrete implementations subclass EntryRepository:
         - InMemoryEntryRepository (default, process-local)
         - SqlEntryRepository (async SQLAlchemy)
       The service never learns which one it talks to, so switching to a
       durable store is a configuration change.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from travel_diary.schemas.entry import DiaryEntry, NewEntry


class EntryRepository(ABC):
    """
    Contract for diary entry persistence.

    Guarantees every implementation must provide:
        - ids are assigned by `insert`, strictly increasing, never reused
        - `created_at` is assigned by `insert` and never changes
        - mutations are atomic: concurrent inserts never share an id, and
          concurrent updates/deletes of one id never produce a mixed record
        - `update_sharing` keeps an existing share_id; a supplied share_id is
          only stored when the entry has none yet
    """

    @abstractmethod
    async def insert(self, entry: NewEntry) -> DiaryEntry:
        """Assign id and timestamp, store, and return the full entry."""
        ...

    @abstractmethod
    async def get(self, entry_id: int) -> Optional[DiaryEntry]:
        """Return the entry or None."""
        ...

    @abstractmethod
    async def by_user(self, user_id: str) -> List[DiaryEntry]:
        """
        Entries owned by `user_id`, newest first.

        Entries with equal `created_at` keep insertion order.
        """
        ...

    @abstractmethod
    async def by_share_token(self, token: str) -> Optional[DiaryEntry]:
        """The entry whose share_id equals `token` AND is currently shared."""
        ...

    @abstractmethod
    async def share_token_owner(self, token: str) -> Optional[int]:
        """Id of the entry holding `token` regardless of sharing state."""
        ...

    @abstractmethod
    async def remove(self, entry_id: int) -> bool:
        """Delete the entry. Returns False when it did not exist."""
        ...

    @abstractmethod
    async def update_sharing(
        self,
        entry_id: int,
        is_shared: bool,
        share_id: Optional[str] = None,
    ) -> Optional[DiaryEntry]:
        """
        Partial update of the sharing fields; everything else is untouched.

        Returns the updated entry, or None when the entry does not exist.
        """
        ...

    @abstractmethod
    async def count(self) -> int:
        """Total number of stored entries."""
        ...

    async def close(self) -> None:
        """Release held resources (connections). No-op by default."""
        return None

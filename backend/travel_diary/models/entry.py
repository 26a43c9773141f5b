"""
TravelDiary Backend: Diary Entry SQLAlchemy Model
==================================================

What:  ORM model for the `diary_entries` table.
Who:   Used by SqlEntryRepository and Alembic.

Table Design:
    - Integer autoincrement primary key: ids are the public handle in URLs
      (`/api/entries/42`) and must be strictly increasing.
    - location / screen_info as JSON: small fixed-shape objects that are
      always read and written whole.
    - share_id UNIQUE: one token never points at two entries. NULL until
      sharing is first enabled; multiple NULLs are allowed by the constraint.
    - Index on (user_id, created_at): serves the dashboard query
      "entries for this user, newest first".
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Boolean, DateTime, Index, Integer, String, Text, false
from sqlalchemy.orm import Mapped, mapped_column

from travel_diary.database import Base


class DiaryEntryRecord(Base):
    """
    A stored diary entry.

    Lifecycle:
        1. Inserted on a validated submission (is_shared=False, share_id=NULL)
        2. share_id/is_shared updated by the sharing toggle
        3. Deleted explicitly; no soft delete
    """

    __tablename__ = "diary_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    user_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Owning principal from the identity provider",
    )

    caption: Mapped[str] = mapped_column(Text, nullable=False)

    # Data URLs of an 800px JPEG are typically 50-200KB of base64 text.
    image_url: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Inline data URL or external image URL",
    )

    location: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)

    screen_info: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        comment="When this entry was created (UTC)",
    )

    share_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        unique=True,
        comment="Public share token; kept when sharing is disabled",
    )

    is_shared: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=false(),
    )

    __table_args__ = (
        Index("idx_diary_entries_user_created", "user_id", "created_at"),
        # SQLite otherwise hands a deleted max id to the next insert
        {"sqlite_autoincrement": True},
    )

    def __repr__(self) -> str:
        return (
            f"<DiaryEntryRecord(id={self.id}, user_id='{self.user_id}', "
            f"is_shared={self.is_shared})>"
        )

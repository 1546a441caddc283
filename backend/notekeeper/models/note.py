"""
NoteKeeper Backend: Note and Tag SQLAlchemy Models
====================================================

What:  ORM models for the `notes` and `tags` tables.
How:   SQLAlchemy 2.0 declarative mapping. Generic `Uuid` and
       `DateTime(timezone=True)` types so the same models run on PostgreSQL
       (asyncpg) and on SQLite (aiosqlite, used by the tests).

Table Design:
    notes
        id           UUID primary key, generated in Python at creation
        summary      VARCHAR(60), required
        details      VARCHAR(1024), required
        created_at   set once at creation (UTC)
        modified_at  NULL until summary or details changes

    tags
        id           UUID primary key
        note_id      FK → notes.id ON DELETE CASCADE
        name         VARCHAR(30); longer values are truncated, not rejected

    The ORM relationship also cascades (all, delete-orphan) so tag removal
    does not depend on the backend enforcing foreign keys (SQLite does not
    by default).
"""

import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import DateTime, ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from notekeeper.database import Base

SUMMARY_MAX_LENGTH = 60
DETAILS_MAX_LENGTH = 1024
TAG_NAME_MAX_LENGTH = 30


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Note(Base):
    """
    A user's stored text item.

    Lifecycle:
        1. Created with tags in one commit (NoteRepository.create_note)
        2. Summary and/or details updated; a details change replaces the
           whole tag set in the same commit
        3. Deleted together with its tags; attachments are purged afterwards
           by NoteService on a best-effort basis
    """

    __tablename__ = "notes"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    summary: Mapped[str] = mapped_column(String(SUMMARY_MAX_LENGTH), nullable=False)
    details: Mapped[str] = mapped_column(String(DETAILS_MAX_LENGTH), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    modified_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        default=None,
    )

    tags: Mapped[List["Tag"]] = relationship(
        back_populates="note",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("idx_notes_created_at", "created_at"),
    )

    @property
    def tag_names(self) -> List[str]:
        return [tag.name for tag in self.tags]

    def __repr__(self) -> str:
        return f"<Note(id={self.id}, summary='{self.summary}', tags={len(self.tags)})>"


class Tag(Base):
    """A short label attached to a note: generated, or a failure sentinel."""

    __tablename__ = "tags"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    note_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("notes.id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(TAG_NAME_MAX_LENGTH), nullable=False)

    note: Mapped[Note] = relationship(back_populates="tags")

    __table_args__ = (
        Index("idx_tags_name", "name"),
        Index("idx_tags_note_id", "note_id"),
    )

    @validates("name")
    def truncate_name(self, key: str, value: str) -> str:
        """Over-length names are cut to the column width instead of rejected."""
        if value is not None and len(value) > TAG_NAME_MAX_LENGTH:
            return value[:TAG_NAME_MAX_LENGTH]
        return value

    def __repr__(self) -> str:
        return f"<Tag(name='{self.name}', note_id={self.note_id})>"

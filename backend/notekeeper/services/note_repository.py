"""
NoteKeeper Backend: Note Repository
=====================================

What:  Relational persistence for notes and their tags.
How:   Async SQLAlchemy 2.0 queries over one AsyncSession. Every mutating
       method is its own unit of work: it commits on success, and on any
       SQLAlchemyError rolls back and raises DatabaseError.

Atomicity:
    A note and its tags are always written in the same commit. Replacing the
    tag set on update (delete old rows, insert new ones) also happens inside
    that single commit, so a reader never sees a note with a half-replaced
    tag set.

Tags are loaded eagerly with selectinload; async sessions cannot lazy-load
relationships after the query returns.
"""

import logging
import uuid
from typing import List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from notekeeper.exceptions import DatabaseError
from notekeeper.models.note import Note, Tag, utcnow

logger = logging.getLogger(__name__)


class NoteRepository:
    """Note and Tag persistence bound to one session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _fail(self, operation: str, error: SQLAlchemyError) -> DatabaseError:
        await self.session.rollback()
        logger.error("Database error during %s: %s", operation, str(error))
        return DatabaseError(context={"operation": operation, "db_error": str(error)})

    async def count_notes(self) -> int:
        try:
            result = await self.session.execute(select(func.count()).select_from(Note))
            return result.scalar_one()
        except SQLAlchemyError as e:
            raise await self._fail("count_notes", e) from e

    async def create_note(self, summary: str, details: str, tags: Sequence[str]) -> Note:
        """Insert a note with its tags in one commit."""
        note = Note(
            id=uuid.uuid4(),
            summary=summary,
            details=details,
            created_at=utcnow(),
            modified_at=None,
            tags=[Tag(name=name) for name in tags],
        )
        try:
            self.session.add(note)
            await self.session.commit()
        except SQLAlchemyError as e:
            raise await self._fail("create_note", e) from e

        logger.info("Note %s created with %d tags", note.id, len(note.tags))
        return note

    async def get_note(self, note_id: uuid.UUID) -> Optional[Note]:
        """Return the note with tags loaded, or None."""
        try:
            result = await self.session.execute(
                select(Note)
                .options(selectinload(Note.tags))
                .where(Note.id == note_id)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise await self._fail("get_note", e) from e

    async def list_notes(self, tag_filter: Optional[str] = None) -> List[Note]:
        """
        All notes, oldest first.

        With `tag_filter`, only notes owning a tag whose name equals the
        trimmed filter exactly (case-sensitive).
        """
        query = select(Note).options(selectinload(Note.tags)).order_by(Note.created_at, Note.id)
        if tag_filter is not None and tag_filter.strip():
            name = tag_filter.strip()
            query = query.where(Note.tags.any(Tag.name == name))
        try:
            result = await self.session.execute(query)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise await self._fail("list_notes", e) from e

    async def list_distinct_tag_names(self) -> List[str]:
        """Every tag name in use, deduplicated and sorted."""
        try:
            result = await self.session.execute(
                select(Tag.name).distinct().order_by(Tag.name)
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise await self._fail("list_distinct_tag_names", e) from e

    async def summary_exists(self, summary: str) -> bool:
        try:
            result = await self.session.execute(
                select(Note.id).where(Note.summary == summary).limit(1)
            )
            return result.first() is not None
        except SQLAlchemyError as e:
            raise await self._fail("summary_exists", e) from e

    async def update_note(
        self,
        note: Note,
        summary: Optional[str] = None,
        details: Optional[str] = None,
        tags: Optional[Sequence[str]] = None,
    ) -> Note:
        """
        Apply changes to a loaded note in one commit.

        Args:
            note:     Note loaded by get_note (tags already loaded)
            summary:  New summary, or None to keep
            details:  New details, or None to keep
            tags:     Replacement tag set, or None to keep the current tags

        modified_at is set whenever summary or details is supplied.
        """
        try:
            if summary is not None:
                note.summary = summary
            if details is not None:
                note.details = details
            if summary is not None or details is not None:
                note.modified_at = utcnow()
            if tags is not None:
                # delete-orphan removes the old rows in the same flush
                note.tags = [Tag(name=name) for name in tags]
            await self.session.commit()
        except SQLAlchemyError as e:
            raise await self._fail("update_note", e) from e

        logger.info("Note %s updated (tags replaced: %s)", note.id, tags is not None)
        return note

    async def delete_note(self, note: Note) -> None:
        """Delete the note; its tags go with it via the cascade."""
        note_id = note.id
        try:
            await self.session.delete(note)
            await self.session.commit()
        except SQLAlchemyError as e:
            raise await self._fail("delete_note", e) from e

        logger.info("Note %s deleted", note_id)

"""
NoteKeeper Backend: Note Service (Cross-Store Coordinator)
============================================================

What:  Orchestrates note and attachment lifecycles across the relational
       store (NoteRepository), the object store (AttachmentStore) and the
       tag generator.
Who:   Called by route handlers and by the seed loader.

Ordering and Failure Policy:
    CreateNote   validate → quota (count >= max_notes) → generate tags
                 → insert note + tags in one commit
    UpdateNote   load (404) → validate → regenerate tags if details given
                 → update + tag swap in one commit
    DeleteNote   load (404) → delete note + tags → purge container
                 (best-effort: failures logged, never surfaced)
    Attachments  load note (404) → delegate to AttachmentStore

    Validation and quota failures are raised before anything is written.
    Tag generation never fails; a degraded completion service only shows
    up as a sentinel tag on the note.

    The note is always checked before a container is touched, so an
    attachment request for a missing note cannot leave an orphan container.

Concurrency:
    Quotas are check-then-act with no reservation. Concurrent creates or
    uploads near a ceiling can transiently exceed it; this is accepted.

    ┌─────────┐    ┌───────────┐    ┌──────────────┐    ┌────────────┐
    │  Route  │───▶│  Validate │───▶│ TagGenerator │───▶│ Repository │
    └─────────┘    │  & Quota  │    └──────────────┘    └────────────┘
                   └───────────┘
"""

import logging
import uuid
from dataclasses import dataclass
from typing import AsyncIterator, List, Optional

from notekeeper.exceptions import NotFoundError, QuotaExceededError, ValidationError
from notekeeper.models.note import DETAILS_MAX_LENGTH, SUMMARY_MAX_LENGTH, Note
from notekeeper.schemas.attachment import AttachmentDownload, AttachmentInfo, UploadResult
from notekeeper.services.attachment_store import AttachmentStore
from notekeeper.services.note_repository import NoteRepository
from notekeeper.services.tag_service import TagGenerator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuotaLimits:
    """Configured ceilings, handed to the coordinator at construction."""
    max_notes: int = 10
    max_attachments: int = 3

    @classmethod
    def from_settings(cls, settings) -> "QuotaLimits":
        return cls(max_notes=settings.max_notes, max_attachments=settings.max_attachments)


def _clean_required(value: Optional[str], field: str, max_length: int) -> str:
    """Blank is rejected; anything else is kept exactly as sent."""
    if value is None or not value.strip():
        raise ValidationError(message=f"{field.capitalize()} is required.", field=field)
    return _check_length(value, field, max_length)


def _clean_optional(value: Optional[str], field: str, max_length: int) -> Optional[str]:
    """Blank counts as not supplied; supplied values are stored trimmed."""
    if value is None or not value.strip():
        return None
    return _check_length(value.strip(), field, max_length)


def _check_length(value: str, field: str, max_length: int) -> str:
    if len(value) > max_length:
        raise ValidationError(
            message=f"{field.capitalize()} must be at most {max_length} characters.",
            field=field,
            context={"max_length": max_length, "length": len(value)},
        )
    return value


class NoteService:
    """
    Business logic for notes and attachments.

    One instance per request: the repository is bound to the request's
    database session, while the tag generator and attachment store are
    shared application-wide.
    """

    def __init__(
        self,
        repository: NoteRepository,
        tag_generator: TagGenerator,
        attachment_store: AttachmentStore,
        limits: QuotaLimits,
    ):
        self.repository = repository
        self.tag_generator = tag_generator
        self.attachment_store = attachment_store
        self.limits = limits

    # ── Notes ─────────────────────────────────────────────────────────────

    async def create_note(self, summary: Optional[str], details: Optional[str]) -> Note:
        """
        Create a note with generated tags.

        Raises:
            ValidationError: summary/details missing, blank or too long
            QuotaExceededError: max_notes already reached
            DatabaseError: insert failed (nothing persisted)
        """
        summary = _clean_required(summary, "summary", SUMMARY_MAX_LENGTH)
        details = _clean_required(details, "details", DETAILS_MAX_LENGTH)

        count = await self.repository.count_notes()
        if count >= self.limits.max_notes:
            logger.warning("Note quota reached (%d/%d)", count, self.limits.max_notes)
            raise QuotaExceededError(resource="notes", limit=self.limits.max_notes)

        tags = await self.tag_generator.generate(details)
        return await self.repository.create_note(summary, details, tags)

    async def get_note(self, note_id: uuid.UUID) -> Note:
        note = await self.repository.get_note(note_id)
        if note is None:
            raise NotFoundError(resource="Note", resource_id=str(note_id))
        return note

    async def list_notes(self, tag_filter: Optional[str] = None) -> List[Note]:
        return await self.repository.list_notes(tag_filter)

    async def list_tags(self) -> List[str]:
        return await self.repository.list_distinct_tag_names()

    async def update_note(
        self,
        note_id: uuid.UUID,
        summary: Optional[str] = None,
        details: Optional[str] = None,
    ) -> Note:
        """
        Update summary and/or details.

        New tags are generated before the repository call so the old set is
        only replaced once the new one is ready.

        Raises:
            NotFoundError: note does not exist
            ValidationError: neither field supplied, or a field too long
        """
        note = await self.get_note(note_id)

        summary = _clean_optional(summary, "summary", SUMMARY_MAX_LENGTH)
        details = _clean_optional(details, "details", DETAILS_MAX_LENGTH)
        if summary is None and details is None:
            raise ValidationError(message="At least one of summary or details must be provided.")

        tags = await self.tag_generator.generate(details) if details is not None else None
        return await self.repository.update_note(note, summary=summary, details=details, tags=tags)

    async def delete_note(self, note_id: uuid.UUID) -> None:
        """
        Delete a note, then purge its attachments.

        The note row goes first. Whatever the purge leaves behind is logged
        and left for manual cleanup; the caller always sees success once the
        row is deleted.
        """
        note = await self.get_note(note_id)
        await self.repository.delete_note(note)

        try:
            result = await self.attachment_store.purge_container(note_id)
        except Exception as e:
            logger.error("Attachment purge for deleted note %s failed: %s", note_id, str(e), exc_info=True)
            return

        if result.failed or result.error:
            logger.error(
                "Note %s deleted but attachments remain: failed=%s error=%s",
                note_id,
                result.failed,
                result.error,
            )

    # ── Attachments ───────────────────────────────────────────────────────

    async def upload_attachment(
        self,
        note_id: uuid.UUID,
        attachment_id: str,
        chunks: AsyncIterator[bytes],
        content_type: Optional[str] = None,
    ) -> UploadResult:
        """
        Create or replace an attachment.

        Raises:
            NotFoundError: note does not exist (checked before the container)
            QuotaExceededError: note already holds max_attachments
            ValidationError: bad attachment ID, empty or oversized file
        """
        await self.get_note(note_id)
        return await self.attachment_store.upload(
            note_id,
            attachment_id,
            chunks,
            content_type,
            max_attachments=self.limits.max_attachments,
        )

    async def delete_attachment(self, note_id: uuid.UUID, attachment_id: str) -> bool:
        await self.get_note(note_id)
        return await self.attachment_store.delete(note_id, attachment_id)

    async def get_attachment(self, note_id: uuid.UUID, attachment_id: str) -> AttachmentDownload:
        await self.get_note(note_id)
        return await self.attachment_store.download(note_id, attachment_id)

    async def list_attachments(self, note_id: uuid.UUID) -> List[AttachmentInfo]:
        await self.get_note(note_id)
        return await self.attachment_store.list_attachments(note_id)

"""
NoteKeeper Backend: FastAPI Dependency Providers
==================================================

What:  Builds a NoteService for each request.
How:   Long-lived collaborators (tag generator, attachment store, quota
       limits) are created once by create_app() and stored on app.state;
       the repository is bound to the per-request database session.

Tests replace any of these with app.dependency_overrides.
"""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from notekeeper.database import get_db_session
from notekeeper.services.attachment_store import AttachmentStore
from notekeeper.services.note_repository import NoteRepository
from notekeeper.services.note_service import NoteService, QuotaLimits
from notekeeper.services.tag_service import TagGenerator


def get_tag_generator(request: Request) -> TagGenerator:
    return request.app.state.tag_generator


def get_attachment_store(request: Request) -> AttachmentStore:
    return request.app.state.attachment_store


def get_quota_limits(request: Request) -> QuotaLimits:
    return request.app.state.quota_limits


async def get_note_service(
    session: AsyncSession = Depends(get_db_session),
    tag_generator: TagGenerator = Depends(get_tag_generator),
    attachment_store: AttachmentStore = Depends(get_attachment_store),
    limits: QuotaLimits = Depends(get_quota_limits),
) -> NoteService:
    return NoteService(
        repository=NoteRepository(session),
        tag_generator=tag_generator,
        attachment_store=attachment_store,
        limits=limits,
    )

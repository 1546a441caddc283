"""
NoteKeeper Backend: Notes Route Handlers
==========================================

What:  HTTP surface for the note collection.
How:   Parses the request, delegates to NoteService, shapes the response.
       Domain exceptions are translated to status codes by the handlers in
       main.py.

Endpoints:
    GET    /notes?tagName=x   200  notes (optionally filtered by exact tag)
    GET    /notes/tags        200  distinct tag names, sorted
    GET    /notes/{id}        200 | 404
    POST   /notes             201 + Location | 400 | 403
    PATCH  /notes/{id}        204 | 400 | 404
    DELETE /notes/{id}        204 | 404

/notes/tags is registered before /notes/{id} so "tags" is never parsed as
a note ID.
"""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status

from notekeeper.dependencies import get_note_service
from notekeeper.schemas.note import (
    ErrorResponse,
    NoteCreateRequest,
    NoteResponse,
    NoteUpdateRequest,
    TagResponse,
)
from notekeeper.services.note_service import NoteService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notes", tags=["Notes"])


@router.get(
    "",
    response_model=List[NoteResponse],
    summary="List notes",
    description="Returns all notes with their tag names, oldest first.",
)
async def list_notes(
    tag_name: Optional[str] = Query(
        default=None,
        alias="tagName",
        description="Only notes carrying this exact tag (case-sensitive, trimmed)",
    ),
    service: NoteService = Depends(get_note_service),
) -> List[NoteResponse]:
    notes = await service.list_notes(tag_name)
    return [NoteResponse.from_note(note) for note in notes]


@router.get(
    "/tags",
    response_model=List[TagResponse],
    summary="List distinct tag names",
)
async def list_tags(service: NoteService = Depends(get_note_service)) -> List[TagResponse]:
    return [TagResponse(name=name) for name in await service.list_tags()]


@router.get(
    "/{note_id}",
    response_model=NoteResponse,
    responses={404: {"description": "Note not found", "model": ErrorResponse}},
    summary="Get a single note",
)
async def get_note(
    note_id: UUID,
    service: NoteService = Depends(get_note_service),
) -> NoteResponse:
    return NoteResponse.from_note(await service.get_note(note_id))


@router.post(
    "",
    response_model=NoteResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"description": "Missing or invalid summary/details", "model": ErrorResponse},
        403: {"description": "Note quota reached", "model": ErrorResponse},
    },
    summary="Create a note",
    description=(
        "Creates a note and tags it from its details. If tag generation fails the "
        "note is still created, carrying a single placeholder tag."
    ),
)
async def create_note(
    body: NoteCreateRequest,
    response: Response,
    service: NoteService = Depends(get_note_service),
) -> NoteResponse:
    note = await service.create_note(body.summary, body.details)
    response.headers["Location"] = f"/notes/{note.id}"
    return NoteResponse.from_note(note)


@router.patch(
    "/{note_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={
        400: {"description": "Neither summary nor details supplied", "model": ErrorResponse},
        404: {"description": "Note not found", "model": ErrorResponse},
    },
    summary="Update a note",
    description="Changing details regenerates the note's tags.",
)
async def update_note(
    note_id: UUID,
    body: NoteUpdateRequest,
    service: NoteService = Depends(get_note_service),
) -> Response:
    await service.update_note(note_id, summary=body.summary, details=body.details)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete(
    "/{note_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"description": "Note not found", "model": ErrorResponse}},
    summary="Delete a note and its attachments",
)
async def delete_note(
    note_id: UUID,
    service: NoteService = Depends(get_note_service),
) -> Response:
    await service.delete_note(note_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

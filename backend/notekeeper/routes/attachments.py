"""
NoteKeeper Backend: Attachment Route Handlers
===============================================

What:  HTTP surface for a note's attachments.
How:   Multipart uploads are streamed to NoteService in chunks; downloads
       are streamed back with the stored content type.

Endpoints (under /notes/{note_id}/attachments):
    PUT    /{attachment_id}   201 + Location (new) | 204 (overwrite)
                              | 400 empty file / bad ID | 403 quota | 404 note
    DELETE /{attachment_id}   204 whether or not it existed | 404 note
    GET    /{attachment_id}   200 file stream | 404
    GET    /                  200 attachment metadata list | 404 note
"""

import logging
from typing import AsyncIterator, List
from uuid import UUID

from fastapi import APIRouter, Depends, File, Response, UploadFile, status
from fastapi.responses import JSONResponse, StreamingResponse

from notekeeper.dependencies import get_note_service
from notekeeper.schemas.attachment import AttachmentInfo
from notekeeper.schemas.note import ErrorResponse
from notekeeper.services.note_service import NoteService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notes/{note_id}/attachments", tags=["Attachments"])

UPLOAD_CHUNK_SIZE = 64 * 1024


async def iter_upload(upload: UploadFile, chunk_size: int = UPLOAD_CHUNK_SIZE) -> AsyncIterator[bytes]:
    while True:
        chunk = await upload.read(chunk_size)
        if not chunk:
            break
        yield chunk


@router.put(
    "/{attachment_id}",
    response_model=None,
    responses={
        201: {"description": "Attachment created", "model": AttachmentInfo},
        204: {"description": "Existing attachment replaced"},
        400: {"description": "Empty file or invalid attachment ID", "model": ErrorResponse},
        403: {"description": "Attachment quota reached", "model": ErrorResponse},
        404: {"description": "Note not found", "model": ErrorResponse},
    },
    summary="Upload or replace an attachment",
)
async def upload_attachment(
    note_id: UUID,
    attachment_id: str,
    file_data: UploadFile = File(..., alias="fileData", description="Attachment content"),
    service: NoteService = Depends(get_note_service),
) -> Response:
    logger.info(
        "Received attachment upload: note=%s attachment=%s content_type=%s",
        note_id,
        attachment_id,
        file_data.content_type,
    )
    try:
        result = await service.upload_attachment(
            note_id,
            attachment_id,
            iter_upload(file_data),
            file_data.content_type,
        )
    finally:
        await file_data.close()

    if not result.created:
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content=result.attachment.model_dump(mode="json"),
        headers={"Location": f"/notes/{note_id}/attachments/{attachment_id}"},
    )


@router.delete(
    "/{attachment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"description": "Note not found", "model": ErrorResponse}},
    summary="Delete an attachment (idempotent)",
)
async def delete_attachment(
    note_id: UUID,
    attachment_id: str,
    service: NoteService = Depends(get_note_service),
) -> Response:
    await service.delete_attachment(note_id, attachment_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/{attachment_id}",
    response_class=StreamingResponse,
    responses={
        200: {"description": "Attachment content"},
        404: {"description": "Note or attachment not found", "model": ErrorResponse},
    },
    summary="Download an attachment",
)
async def get_attachment(
    note_id: UUID,
    attachment_id: str,
    service: NoteService = Depends(get_note_service),
) -> StreamingResponse:
    download = await service.get_attachment(note_id, attachment_id)
    return StreamingResponse(
        download.chunks,
        media_type=download.info.content_type,
        headers={"Content-Length": str(download.info.length)},
    )


@router.get(
    "/",
    response_model=List[AttachmentInfo],
    responses={404: {"description": "Note not found", "model": ErrorResponse}},
    summary="List a note's attachments",
)
@router.get("", response_model=List[AttachmentInfo], include_in_schema=False)
async def list_attachments(
    note_id: UUID,
    service: NoteService = Depends(get_note_service),
) -> List[AttachmentInfo]:
    return await service.list_attachments(note_id)

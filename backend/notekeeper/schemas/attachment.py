"""
NoteKeeper Backend: Attachment Schemas
========================================

What:  Metadata for blobs held in a note's container.

`BlobProperties` is what the object store persists next to each blob;
`AttachmentInfo` is what it reports back (properties plus id and length).
"""

from dataclasses import dataclass
from datetime import datetime
from typing import AsyncIterator, List, Optional

from pydantic import BaseModel, Field


class BlobProperties(BaseModel):
    """Sidecar metadata written to `.meta/<attachment_id>.json`."""
    content_type: str
    created_at: datetime
    modified_at: datetime


class AttachmentInfo(BaseModel):
    """Attachment metadata as returned by GET /notes/{id}/attachments."""
    id: str = Field(description="Caller-supplied attachment identifier")
    content_type: str
    length: int = Field(description="Size in bytes")
    created_at: datetime
    modified_at: datetime


class UploadResult(BaseModel):
    """Outcome of AttachmentStore.upload: `created` is False on overwrite."""
    created: bool
    attachment: AttachmentInfo


@dataclass
class AttachmentDownload:
    """A blob ready to stream: metadata plus an async chunk iterator."""
    info: AttachmentInfo
    chunks: AsyncIterator[bytes]


class PurgeResult(BaseModel):
    """Outcome of a best-effort container purge."""
    deleted: int = 0
    failed: List[str] = Field(default_factory=list)
    container_removed: bool = False
    error: Optional[str] = None

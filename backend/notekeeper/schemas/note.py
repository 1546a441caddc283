"""
NoteKeeper Backend: Note Request/Response Schemas
===================================================

What:  Pydantic models defining the HTTP contract for notes.
How:   FastAPI parses request bodies into these models and serializes
       responses from them.

Request models only type the fields. Required/non-blank/length rules for
summary and details live in NoteService so they apply to every caller
(routes, seeding, tests) the same way.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class NoteCreateRequest(BaseModel):
    """Body of POST /notes. Both fields are required by NoteService."""
    summary: Optional[str] = Field(default=None, description="Short title (max 60 characters)")
    details: Optional[str] = Field(default=None, description="Note body (max 1024 characters)")


class NoteUpdateRequest(BaseModel):
    """Body of PATCH /notes/{id}. At least one field must be non-blank."""
    summary: Optional[str] = Field(default=None, description="New summary")
    details: Optional[str] = Field(default=None, description="New details; regenerates tags")


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class NoteResponse(BaseModel):
    """
    What:  Full representation of a note with its tag names.
    Who:   Returned by GET /notes, GET /notes/{id} and POST /notes.
    """
    id: uuid.UUID = Field(description="Unique note identifier (UUID)")
    summary: str
    details: str
    created_at: datetime = Field(description="When the note was created (UTC)")
    modified_at: Optional[datetime] = Field(
        default=None,
        description="Last summary/details change (UTC); null if never modified",
    )
    tags: List[str] = Field(default_factory=list, description="Tag names, possibly a sentinel")

    @classmethod
    def from_note(cls, note) -> "NoteResponse":
        return cls(
            id=note.id,
            summary=note.summary,
            details=note.details,
            created_at=note.created_at,
            modified_at=note.modified_at,
            tags=note.tag_names,
        )


class TagResponse(BaseModel):
    """One entry of GET /notes/tags."""
    name: str


class ErrorResponse(BaseModel):
    """
    Standardized error body for all API errors.

    Example:
        {
            "error": "quota_exceeded",
            "message": "You have reached the maximum of 10 notes.",
            "details": {"resource": "notes", "limit": 10},
            "request_id": "a1b2c3d4"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    """Health check body: overall status plus one entry per dependency."""
    status: str = Field(description="healthy, degraded or unhealthy")
    version: str
    database: str = Field(description="connected or disconnected")
    completion_service: str = Field(description="available, unavailable or circuit_open")
    object_store: str = Field(description="writable or unavailable")
    uptime_seconds: float

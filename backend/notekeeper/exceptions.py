"""
NoteKeeper Backend: Custom Exception Hierarchy
=================================================

What:  Application-specific exceptions for every failure the core can report.
How:   Each exception carries a user-facing message and a context dict.
       Handlers registered in main.py translate them into JSON responses.

Exception Hierarchy:
    NoteKeeperError (base)
    ├── ValidationError           → 400 Bad Request
    ├── NotFoundError             → 404 Not Found
    ├── QuotaExceededError        → 403 Forbidden (limit echoed back)
    ├── StorageError              → 500 Internal Server Error
    │   ├── DatabaseError             relational store failures
    │   └── FileStorageError          object store failures
    └── UpstreamDegradedError     never reaches a handler
        ├── CompletionTransportError  network / non-2xx from the model
        ├── CompletionResponseError   2xx but unreadable envelope
        └── CircuitBreakerOpenError   model skipped after repeated failures

UpstreamDegradedError subclasses are raised by completion providers and
absorbed by TagGenerator, which converts each one into a sentinel tag.
"""

from typing import Any, Dict, Optional


class NoteKeeperError(Exception):
    """
    Base exception for all NoteKeeper application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged, returned only where harmless)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(NoteKeeperError):
    """
    Raised when client input fails validation.

    When:    Missing summary/details, over-length fields, empty upload,
             unusable attachment identifier, update with no fields.
    HTTP:    400 Bad Request
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class NotFoundError(NoteKeeperError):
    """
    Raised when a referenced note or attachment does not exist.

    HTTP:    404 Not Found
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)
        self.resource = resource
        self.resource_id = resource_id


class QuotaExceededError(NoteKeeperError):
    """
    Raised when a create or upload would go past a configured ceiling.

    When:    Note count >= max_notes on create, attachment count >=
             max_attachments on upload. Checked before any mutation.
    HTTP:    403 Forbidden, with the configured limit in the message.
    """

    def __init__(
        self,
        resource: str,
        limit: int,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"You have reached the maximum of {limit} {resource}."
        ctx = context or {}
        ctx["resource"] = resource
        ctx["limit"] = limit
        super().__init__(message=message, context=ctx)
        self.resource = resource
        self.limit = limit


class StorageError(NoteKeeperError):
    """
    Unexpected failure in either store.

    HTTP:    500 Internal Server Error. The response message stays generic;
             the context is logged server-side only.
    """

    def __init__(
        self,
        message: str = "A storage error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseError(StorageError):
    """A query, insert, update or delete against the relational store failed."""

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class FileStorageError(StorageError):
    """
    Could not read, write or delete in the object store.

    When:    Disk full, permission denied, I/O error, container vanished
             mid-operation.
    """

    def __init__(
        self,
        message: str = "Attachment storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class UpstreamDegradedError(NoteKeeperError):
    """Base for completion-service failures. Never surfaced to API callers."""

    def __init__(
        self,
        message: str = "Completion service is degraded",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class CompletionTransportError(UpstreamDegradedError):
    """
    The completion request did not produce a success response.

    Covers connection errors, timeouts and non-2xx status codes.
    """

    def __init__(
        self,
        message: str = "Completion service request failed",
        status_code: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if status_code is not None:
            ctx["status_code"] = status_code
        super().__init__(message=message, context=ctx)
        self.status_code = status_code


class CompletionResponseError(UpstreamDegradedError):
    """The service answered successfully but the body could not be read."""

    def __init__(
        self,
        message: str = "Completion service returned an unreadable response",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class CircuitBreakerOpenError(UpstreamDegradedError):
    """
    Raised when the circuit breaker is in OPEN state.

    How circuit breaker works:
        CLOSED (normal) → transport failures increment counter
        → After N failures → OPEN (skip all calls for recovery_timeout)
        → After recovery_timeout → HALF-OPEN (allow one test call)
        → If test succeeds → CLOSED
        → If test fails → OPEN again (timer restarts)
    """

    def __init__(
        self,
        recovery_time: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Completion service skipped after repeated failures; "
            f"next attempt in approximately {recovery_time} seconds."
        )
        ctx = context or {}
        ctx["recovery_time"] = recovery_time
        super().__init__(message=message, context=ctx)
        self.recovery_time = recovery_time

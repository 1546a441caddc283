"""
NoteKeeper Backend: Middleware Package
========================================

Middleware Chain:
    Request → [Request ID] → [Logging] → [GZip] → [CORS] → Route Handler

    Request ID runs first so the access log line and every log record
    emitted by the handler carry the same correlation ID.
"""

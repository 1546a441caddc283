"""
NoteKeeper Backend: Application Package
==========================================

What: Notes service that stores short text notes, tags them with an external
      text-completion model, and keeps per-note attachments in an object store.
How:  Layered the same way throughout:

    ┌─────────────────────────────────────────┐
    │        Routes (HTTP adapter layer)      │  ← status codes, headers, bodies
    ├─────────────────────────────────────────┤
    │     NoteService (cross-store rules)     │  ← ordering, quotas, failure policy
    ├─────────────┬──────────────┬────────────┤
    │ NoteRepo-   │ TagGenerator │ Attachment │
    │ sitory (DB) │ (completion) │ Store (FS) │
    └─────────────┴──────────────┴────────────┘

The relational store and the object store fail independently; NoteService is
the only place that knows about both.
"""

__version__ = "1.0.0"

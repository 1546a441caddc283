# Services package init
"""
NoteKeeper Backend: Services Layer
====================================

What:  Business logic between the routes (HTTP) and the two stores.
How:   NoteService is built per request around a session-bound
       NoteRepository; the tag generator and attachment store are shared
       application-wide and injected through FastAPI dependencies.

Service Inventory:
    - CompletionService (abstract): text completion with a circuit breaker
    - OpenAICompletionService:      chat-completions endpoint over httpx
    - GeminiCompletionService:      Google Gemini via google-generativeai
    - TagGenerator:                 completion reply → tag list or sentinel
    - NoteRepository:               notes and tags in SQL
    - AttachmentStore:              per-note blob containers on disk
    - NoteService:                  quotas, ordering and cleanup across stores
    - seed:                         optional startup fixture loader
"""

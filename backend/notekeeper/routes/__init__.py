"""
NoteKeeper Backend: API Routes Package
========================================

Route Inventory:
    - notes.py:        /notes, /notes/tags, /notes/{id}
    - attachments.py:  /notes/{id}/attachments[/{attachment_id}]
    - health.py:       /health

Routes stay thin: bind parameters, call NoteService, pick the status code.
"""

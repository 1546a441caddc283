"""Create notes and tags tables

Revision ID: 001
Revises: None
Create Date: 2025-03-06 00:00:00.000000+00:00

What:  Initial schema: `notes` and the `tags` that belong to them.
How:   Generic sa.Uuid / timezone-aware DateTime so the revision applies to
       PostgreSQL and SQLite alike. tags.note_id cascades on delete.

Rollback: downgrade() drops both tables (all notes and tags are lost).
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "notes",
        sa.Column("id", sa.Uuid(), nullable=False, comment="Server-generated note ID"),
        sa.Column("summary", sa.String(60), nullable=False),
        sa.Column("details", sa.String(1024), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            comment="Set once at creation (UTC)",
        ),
        sa.Column(
            "modified_at",
            sa.DateTime(timezone=True),
            nullable=True,
            comment="Last summary/details change (UTC); NULL if never modified",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_notes_created_at", "notes", ["created_at"])

    op.create_table(
        "tags",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("note_id", sa.Uuid(), nullable=False),
        sa.Column(
            "name",
            sa.String(30),
            nullable=False,
            comment="Generated tag or failure sentinel; truncated to 30 chars",
        ),
        sa.ForeignKeyConstraint(["note_id"], ["notes.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    # GET /notes?tagName= and GET /notes/tags both scan by name
    op.create_index("idx_tags_name", "tags", ["name"])
    op.create_index("idx_tags_note_id", "tags", ["note_id"])


def downgrade() -> None:
    op.drop_index("idx_tags_note_id", table_name="tags")
    op.drop_index("idx_tags_name", table_name="tags")
    op.drop_table("tags")
    op.drop_index("idx_notes_created_at", table_name="notes")
    op.drop_table("notes")

"""Add complaint agent assignments and notes.

Revision ID: 002
Revises: 001
Create Date: 2026-10-19
"""
from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── complaint_assignments ───────────────────────────────
    op.create_table(
        "complaint_assignments",
        sa.Column("id", sa.UUID(), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column(
            "complaint_id",
            sa.UUID(),
            sa.ForeignKey("complaints.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("agent_id", sa.String(255), nullable=False),
        sa.Column("assigned_by", sa.String(255), nullable=False),
        sa.Column("assigned_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("complaint_id", "agent_id", name="uq_complaint_assignments_agent"),
    )

    # ── complaint_notes ─────────────────────────────────────
    op.create_table(
        "complaint_notes",
        sa.Column("id", sa.UUID(), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column(
            "complaint_id",
            sa.UUID(),
            sa.ForeignKey("complaints.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "visibility",
            sa.Enum("interne", "publique", name="notevisibility"),
            nullable=False,
        ),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("author_id", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_complaint_notes_complaint", "complaint_notes", ["complaint_id", "created_at"])


def downgrade() -> None:
    op.drop_index("ix_complaint_notes_complaint", table_name="complaint_notes")
    op.drop_table("complaint_notes")
    op.drop_table("complaint_assignments")
    op.execute("DROP TYPE IF EXISTS notevisibility")

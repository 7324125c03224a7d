"""Create complaint, intervention, status history and attestation tables.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

record_kind = sa.Enum("complaint", "intervention", name="recordkind")


def upgrade() -> None:
    # ── interventions ───────────────────────────────────────
    op.create_table(
        "interventions",
        sa.Column("id", sa.UUID(), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("title", sa.String(512), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("intervention_type", sa.String(128), nullable=False),
        sa.Column("address", sa.String(512), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column(
            "status",
            sa.Enum("créée", "planifiée", "en_cours", "terminée", "validée", "annulée", name="interventionstatus"),
            nullable=False,
            server_default="créée",
        ),
        sa.Column(
            "priority",
            sa.Enum("basse", "normale", "haute", "urgente", name="interventionpriority"),
            nullable=False,
            server_default="normale",
        ),
        sa.Column("planned_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("estimated_cost", sa.Numeric(12, 2), nullable=True),
        sa.Column("final_cost", sa.Numeric(12, 2), nullable=True),
        sa.Column("created_by", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("validated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_interventions_status", "interventions", ["status"])
    op.create_index("ix_interventions_priority", "interventions", ["priority"])
    op.create_index("ix_interventions_created_at", "interventions", ["created_at"])

    # ── complaints ──────────────────────────────────────────
    op.create_table(
        "complaints",
        sa.Column("id", sa.UUID(), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("tracking_number", sa.String(32), nullable=False, unique=True),
        sa.Column("title", sa.String(512), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("category", sa.String(255), nullable=True),
        sa.Column(
            "urgency",
            sa.Enum("basse", "normale", "élevée", "critique", name="complainturgency"),
            nullable=False,
            server_default="normale",
        ),
        sa.Column(
            "status",
            sa.Enum(
                "reçue",
                "qualifiée",
                "assignée",
                "planifiée",
                "en_cours",
                "résolue",
                "clôturée",
                "rejetée",
                name="complaintstatus",
            ),
            nullable=False,
            server_default="reçue",
        ),
        sa.Column("address", sa.String(512), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("citizen_anonymous", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("citizen_name", sa.String(255), nullable=True),
        sa.Column("citizen_email", sa.String(255), nullable=True),
        sa.Column("citizen_phone", sa.String(64), nullable=True),
        sa.Column("resolution_cost", sa.Numeric(12, 2), nullable=True),
        sa.Column(
            "linked_intervention_id",
            sa.UUID(),
            sa.ForeignKey("interventions.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_complaints_status", "complaints", ["status"])
    op.create_index("ix_complaints_created_at", "complaints", ["created_at"])

    # ── status_history ──────────────────────────────────────
    op.create_table(
        "status_history",
        sa.Column("id", sa.UUID(), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("record_kind", record_kind, nullable=False),
        sa.Column("record_id", sa.UUID(), nullable=False),
        sa.Column("previous_status", sa.String(64), nullable=True),
        sa.Column("new_status", sa.String(64), nullable=False),
        sa.Column("actor_id", sa.String(255), nullable=False),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_status_history_record", "status_history", ["record_kind", "record_id"])
    op.create_index("ix_status_history_created_at", "status_history", ["created_at"])

    # ── attestations ────────────────────────────────────────
    op.create_table(
        "attestations",
        sa.Column("id", sa.UUID(), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("record_kind", record_kind, nullable=False),
        sa.Column("record_id", sa.UUID(), nullable=False),
        sa.Column("content_hash", sa.String(66), nullable=False),
        sa.Column("external_tx_id", sa.String(128), nullable=False),
        sa.Column("block_ref", sa.BigInteger(), nullable=True),
        sa.Column("external_timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("record_id", "content_hash", name="uq_attestations_record_hash"),
    )
    op.create_index("ix_attestations_record", "attestations", ["record_kind", "record_id"])


def downgrade() -> None:
    op.drop_table("attestations")
    op.drop_table("status_history")
    op.drop_table("complaints")
    op.drop_table("interventions")

    for enum_name in (
        "recordkind",
        "complaintstatus",
        "complainturgency",
        "interventionpriority",
        "interventionstatus",
    ):
        op.execute(f"DROP TYPE IF EXISTS {enum_name}")

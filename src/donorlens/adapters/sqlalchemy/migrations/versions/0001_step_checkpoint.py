"""create step_checkpoint

Revision ID: 0001
Revises:
Create Date: 2026-10-18
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "step_checkpoint",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("subject_id", sa.String(), nullable=False),
        sa.Column("step_name", sa.String(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("result_payload", sa.JSON(), nullable=True),
        sa.Column("tokens_used", sa.Integer(), nullable=False),
        sa.Column("duration_ms", sa.Integer(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_step_checkpoint"),
        sa.UniqueConstraint(
            "subject_id", "step_name", name="uq_step_checkpoint_subject_id"
        ),
    )
    op.create_index(
        "ix_step_checkpoint_status_updated",
        "step_checkpoint",
        ["status", "updated_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_step_checkpoint_status_updated", table_name="step_checkpoint")
    op.drop_table("step_checkpoint")

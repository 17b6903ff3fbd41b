"""Create submission_steps table for the plan submission journal.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "submission_steps",
        sa.Column("id", sa.UUID(), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("submission_id", sa.UUID(), nullable=False),
        sa.Column("audit_id", sa.String(64), nullable=False),
        sa.Column(
            "phase",
            sa.Enum(
                "templates",
                "departments",
                "sensitive_flags",
                "criteria",
                "team",
                "schedule",
                name="submissionphase",
            ),
            nullable=False,
        ),
        sa.Column("item_key", sa.String(128), nullable=False),
        sa.Column("payload", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column(
            "status",
            sa.Enum("pending", "succeeded", "failed", "abandoned", name="stepstatus"),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("attempt_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("submission_id", "phase", "item_key", name="uq_submission_steps_item"),
    )

    op.create_index("ix_submission_steps_submission_id", "submission_steps", ["submission_id"])
    op.create_index("ix_submission_steps_status", "submission_steps", ["status"])


def downgrade() -> None:
    op.drop_table("submission_steps")
    op.execute("DROP TYPE IF EXISTS stepstatus")
    op.execute("DROP TYPE IF EXISTS submissionphase")

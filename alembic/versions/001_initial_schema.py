"""Initial schema: jobs and scheduled actions

Revision ID: 001
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSONType = sa.JSON().with_variant(JSONB(), "postgresql")


def upgrade() -> None:
    # Create only the tables that are missing
    conn = op.get_bind()
    inspector = sa.inspect(conn)
    existing_tables = inspector.get_table_names()

    if "jobs" not in existing_tables:
        _create_jobs_table()

    if "scheduled_actions" not in existing_tables:
        _create_scheduled_actions_table()


def _create_jobs_table() -> None:
    op.create_table(
        "jobs",
        sa.Column("job_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("pipeline_id", sa.Text, nullable=False),
        sa.Column("flow_id", sa.Text, nullable=False),
        sa.Column("source", sa.Text, nullable=False),
        sa.Column("label", sa.Text),
        sa.Column("status", sa.Text, nullable=False),
        sa.Column("engine_data", JSONType),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("started_at", sa.DateTime),
        sa.Column("completed_at", sa.DateTime),
    )
    op.create_index("idx_jobs_status", "jobs", ["status"])
    op.create_index("idx_jobs_flow_id", "jobs", ["flow_id"])


def _create_scheduled_actions_table() -> None:
    op.create_table(
        "scheduled_actions",
        sa.Column("action_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("hook", sa.Text, nullable=False),
        sa.Column("args", JSONType),
        sa.Column("group_name", sa.Text),
        sa.Column("status", sa.Text, nullable=False),
        sa.Column("scheduled_at", sa.DateTime, nullable=False),
        sa.Column("claim_id", sa.Text),
        sa.Column("claimed_at", sa.DateTime),
        sa.Column("attempts", sa.Integer, server_default="0"),
        sa.Column("last_error", sa.Text),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime),
    )
    op.create_index("idx_actions_status_scheduled", "scheduled_actions", ["status", "scheduled_at"])
    op.create_index("idx_actions_claim_id", "scheduled_actions", ["claim_id"])


def downgrade() -> None:
    op.drop_table("scheduled_actions")
    op.drop_table("jobs")

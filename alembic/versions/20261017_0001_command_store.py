"""Create command store and command event audit trail."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261017_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "commands",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("payload_json", sa.Text(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="PENDING"),
        sa.Column("result_json", sa.Text(), nullable=True),
        sa.Column("agent_id", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("type IN ('DELAY', 'HTTP_GET_JSON')", name="ck_commands_type"),
        sa.CheckConstraint(
            "status IN ('PENDING', 'RUNNING', 'COMPLETED', 'FAILED')",
            name="ck_commands_status",
        ),
    )
    op.create_index("ix_commands_status", "commands", ["status"], unique=False)
    op.create_index("ix_commands_agent_id", "commands", ["agent_id"], unique=False)
    op.create_index("idx_commands_queue", "commands", ["status", "created_at"], unique=False)

    op.create_table(
        "command_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("command_id", sa.String(), nullable=False),
        sa.Column("event_type", sa.String(), nullable=False),
        sa.Column("status_from", sa.String(), nullable=True),
        sa.Column("status_to", sa.String(), nullable=True),
        sa.Column("details_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["command_id"], ["commands.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_command_events_event_type",
        "command_events",
        ["event_type"],
        unique=False,
    )
    op.create_index(
        "idx_command_events_command_time",
        "command_events",
        ["command_id", "created_at"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("idx_command_events_command_time", table_name="command_events")
    op.drop_index("ix_command_events_event_type", table_name="command_events")
    op.drop_table("command_events")
    op.drop_index("idx_commands_queue", table_name="commands")
    op.drop_index("ix_commands_agent_id", table_name="commands")
    op.drop_index("ix_commands_status", table_name="commands")
    op.drop_table("commands")

"""SQLModel ORM tables for coordinator and agent storage."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Text
from sqlmodel import Field, SQLModel


class Command(SQLModel, table=True):
    __tablename__ = "commands"  # type: ignore[bad-override]
    __table_args__ = (
        Index("idx_commands_queue", "status", "created_at"),
        CheckConstraint("type IN ('DELAY', 'HTTP_GET_JSON')", name="ck_commands_type"),
        CheckConstraint(
            "status IN ('PENDING', 'RUNNING', 'COMPLETED', 'FAILED')",
            name="ck_commands_status",
        ),
    )

    id: str = Field(primary_key=True)
    type: str
    payload_json: str = Field(sa_column=Column(Text, nullable=False))
    status: str = Field(index=True)
    result_json: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    agent_id: str | None = Field(default=None, index=True)
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    assigned_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))


class CommandEvent(SQLModel, table=True):
    __tablename__ = "command_events"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_command_events_command_time", "command_id", "created_at"),)

    id: int | None = Field(default=None, primary_key=True)
    command_id: str = Field(
        sa_column=Column(
            ForeignKey("commands.id", ondelete="CASCADE"),
            nullable=False,
        ),
    )
    event_type: str = Field(index=True)
    status_from: str | None = None
    status_to: str | None = None
    details_json: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class ExecutionRecord(SQLModel, table=True):
    """Agent-local row: one per command this agent finished executing."""

    __tablename__ = "executed_commands"  # type: ignore[bad-override]

    command_id: str = Field(primary_key=True)
    executed_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))

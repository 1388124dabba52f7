"""Domain models for the coordinator command lifecycle."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class CommandType(str, Enum):
    """Executor selector tag."""

    DELAY = "DELAY"
    HTTP_GET_JSON = "HTTP_GET_JSON"


class CommandStatus(str, Enum):
    """Durable command lifecycle states."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


CLAIMABLE_STATUSES = (CommandStatus.PENDING, CommandStatus.FAILED)


@dataclass(slots=True)
class CommandCreate:
    """Input payload for submitting a command."""

    type: CommandType
    payload: dict[str, Any]
    command_id: str | None = None


@dataclass(slots=True)
class CommandView:
    """Readable command snapshot."""

    id: str
    type: CommandType
    payload: dict[str, Any]
    status: CommandStatus
    result: dict[str, Any] | None
    agent_id: str | None
    created_at: datetime
    updated_at: datetime
    assigned_at: datetime | None = None


@dataclass(slots=True)
class CommandEventView:
    """Command event entry for audit trail."""

    event_id: int
    command_id: str
    event_type: str
    status_from: CommandStatus | None
    status_to: CommandStatus | None
    created_at: datetime
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class CommandDetails:
    """Command with its event stream."""

    command: CommandView
    events: list[CommandEventView]

"""JSON wire documents for commands and their events."""

from __future__ import annotations

import json
from typing import Any

from command_relay.coordinator.models import (
    CommandEventView,
    CommandStatus,
    CommandType,
    CommandView,
)
from command_relay.storage.common import from_iso


def command_to_wire(command: CommandView) -> dict[str, Any]:
    return {
        "id": command.id,
        "type": command.type.value,
        "payload": command.payload,
        "status": command.status.value,
        "result": command.result,
        "agentId": command.agent_id,
        "createdAt": command.created_at.isoformat(),
        "updatedAt": command.updated_at.isoformat(),
        "assignedAt": command.assigned_at.isoformat() if command.assigned_at else None,
    }


def command_from_wire(document: dict[str, Any]) -> CommandView:
    """Parse a command document; raises ``ValueError`` on malformed input."""

    try:
        payload = document["payload"]
        result = document.get("result")
        if not isinstance(payload, dict):
            raise ValueError("payload must be an object")
        if result is not None and not isinstance(result, dict):
            raise ValueError("result must be an object or null")
        assigned_at = document.get("assignedAt")
        return CommandView(
            id=str(document["id"]),
            type=CommandType(document["type"]),
            payload=payload,
            status=CommandStatus(document["status"]),
            result=result,
            agent_id=document.get("agentId"),
            created_at=from_iso(document["createdAt"]),
            updated_at=from_iso(document["updatedAt"]),
            assigned_at=from_iso(assigned_at) if assigned_at else None,
        )
    except KeyError as error:
        raise ValueError(f"Command document is missing field {error.args[0]!r}") from error


def command_status_to_wire(command: CommandView) -> dict[str, Any]:
    """Compact status document served by the status query path."""

    return {
        "status": command.status.value,
        "result": command.result,
        "agentId": command.agent_id,
    }


def event_to_wire(event: CommandEventView) -> dict[str, Any]:
    return {
        "eventId": event.event_id,
        "commandId": event.command_id,
        "eventType": event.event_type,
        "statusFrom": event.status_from.value if event.status_from else None,
        "statusTo": event.status_to.value if event.status_to else None,
        "createdAt": event.created_at.isoformat(),
        "details": event.details,
    }


def is_json_compliant(value: Any) -> bool:
    """False when ``value`` holds NaN or an infinity, which strict JSON cannot carry."""

    try:
        json.dumps(value, allow_nan=False)
    except ValueError:
        return False
    return True

from __future__ import annotations

from datetime import UTC, datetime

import allure
import pytest

from command_relay.coordinator.models import CommandStatus, CommandType, CommandView
from command_relay.coordinator.serialization import (
    command_from_wire,
    command_status_to_wire,
    command_to_wire,
)

pytestmark = [
    allure.epic("Command Lifecycle"),
    allure.feature("Wire Format"),
]


def test_command_document_round_trip() -> None:
    created = datetime(2026, 10, 17, 12, 0, tzinfo=UTC)
    command = CommandView(
        id="cmd-1",
        type=CommandType.HTTP_GET_JSON,
        payload={"url": "https://example.com"},
        status=CommandStatus.RUNNING,
        result=None,
        agent_id="agent-1",
        created_at=created,
        updated_at=created,
        assigned_at=created,
    )

    document = command_to_wire(command)

    assert document["agentId"] == "agent-1"
    assert document["createdAt"] == "2026-10-17T12:00:00+00:00"
    assert command_from_wire(document) == command
    assert command_status_to_wire(command) == {
        "status": "RUNNING",
        "result": None,
        "agentId": "agent-1",
    }


@pytest.mark.parametrize(
    "document",
    [
        {"id": "x"},
        {
            "id": "x",
            "type": "SHELL",
            "payload": {},
            "status": "PENDING",
            "createdAt": "2026-10-17T12:00:00+00:00",
            "updatedAt": "2026-10-17T12:00:00+00:00",
        },
        {
            "id": "x",
            "type": "DELAY",
            "payload": [],
            "status": "PENDING",
            "createdAt": "2026-10-17T12:00:00+00:00",
            "updatedAt": "2026-10-17T12:00:00+00:00",
        },
    ],
)
def test_malformed_documents_raise_value_error(document: dict) -> None:
    with pytest.raises(ValueError):
        command_from_wire(document)

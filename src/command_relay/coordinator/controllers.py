"""Controllers for coordinator CLI commands."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from command_relay.config import Settings
from command_relay.coordinator.api import create_app, validate_command_payload
from command_relay.coordinator.models import CommandStatus, CommandType, CommandView
from command_relay.coordinator.repository import CommandRepository
from command_relay.coordinator.services import CoordinatorService

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CoordinatorServeCommand:
    """CLI input for running the coordinator HTTP service."""

    db_path: Path | None
    host: str | None
    port: int | None


@dataclass(slots=True)
class CoordinatorRecoverCommand:
    """CLI input for a standalone recovery pass."""

    db_path: Path | None


@dataclass(slots=True)
class CommandSubmitCommand:
    """CLI input for command submission."""

    db_path: Path | None
    command_type: str
    payload_json: str


@dataclass(slots=True)
class CommandListCommand:
    """CLI input for command listing."""

    db_path: Path | None
    status: str | None


@dataclass(slots=True)
class CommandInspectCommand:
    """CLI input for single-command inspection."""

    db_path: Path | None
    command_id: str


class CoordinatorCliController:
    """Coordinates store, recovery and inspection CLI operations."""

    def serve(self, command: CoordinatorServeCommand) -> None:
        import uvicorn

        settings = Settings.from_env(db_path=command.db_path)
        if command.host is not None:
            settings.coordinator.host = command.host
        if command.port is not None:
            settings.coordinator.port = command.port
        settings.validate_for_coordinator()

        with _repository(settings) as repository:
            service = CoordinatorService(repository=repository)
            reclaimed = service.recover()
            logger.info(
                "Startup recovery reclaimed %d command(s); serving on http://%s:%d",
                reclaimed,
                settings.coordinator.host,
                settings.coordinator.port,
            )
            uvicorn.run(
                create_app(service, cors_origins=settings.coordinator.cors_origins),
                host=settings.coordinator.host,
                port=settings.coordinator.port,
                log_level=settings.log_level.lower(),
            )

    def recover(self, command: CoordinatorRecoverCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            reclaimed = CoordinatorService(repository=repository).recover()
        return [f"Recovered commands: {reclaimed}"]

    def submit(self, command: CommandSubmitCommand) -> list[str]:
        try:
            command_type = CommandType(command.command_type.upper())
        except ValueError as error:
            raise ValueError(f"Unsupported command type: {command.command_type!r}") from error
        try:
            payload = json.loads(command.payload_json)
        except json.JSONDecodeError as error:
            raise ValueError(f"Payload is not valid JSON: {error}") from error
        if not isinstance(payload, dict):
            raise ValueError("Payload must be a JSON object.")
        problem = validate_command_payload(command_type, payload)
        if problem is not None:
            raise ValueError(problem)

        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            command_id = CoordinatorService(repository=repository).create_command(
                command_type,
                payload,
            )
        return [f"Command submitted: command_id={command_id} type={command_type.value}"]

    def list_commands(self, command: CommandListCommand) -> list[str]:
        status = CommandStatus(command.status.upper()) if command.status else None
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            commands = repository.list_commands(status=status)
            counts = repository.count_by_status()

        lines = [
            "Commands: "
            + " ".join(f"{status.value.lower()}={count}" for status, count in counts.items()),
        ]
        if not commands:
            lines.append("No commands found.")
            return lines
        lines.extend(_command_line(item) for item in commands)
        return lines

    def show(self, command: CommandInspectCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            details = repository.get_command_details(command_id=command.command_id)
        if details is None:
            raise RuntimeError(f"Command not found: {command.command_id}")

        item = details.command
        lines = [
            f"Command: {item.id}",
            f"type={item.type.value} status={item.status.value} agent_id={item.agent_id or '-'}",
            f"created_at={item.created_at.isoformat()} updated_at={item.updated_at.isoformat()} "
            f"assigned_at={item.assigned_at.isoformat() if item.assigned_at else '-'}",
            f"payload={json.dumps(item.payload, sort_keys=True)}",
            f"result={json.dumps(item.result, sort_keys=True) if item.result else '-'}",
            "Events:",
        ]
        for event in details.events:
            transition = (
                f"{event.status_from.value if event.status_from else '-'}"
                f"->{event.status_to.value if event.status_to else '-'}"
            )
            suffix = f" {json.dumps(event.details, sort_keys=True)}" if event.details else ""
            lines.append(
                f"- {event.created_at.isoformat()} {event.event_type} {transition}{suffix}",
            )
        return lines


def _command_line(item: CommandView) -> str:
    return (
        f"- {item.id} type={item.type.value} status={item.status.value} "
        f"agent_id={item.agent_id or '-'} created_at={item.created_at.isoformat()}"
    )


@contextmanager
def _repository(settings: Settings) -> Iterator[CommandRepository]:
    repository = CommandRepository(
        settings.coordinator.db_path,
        busy_timeout_ms=settings.coordinator.busy_timeout_ms,
    )
    try:
        repository.init_schema()
        yield repository
    finally:
        repository.close()

"""Use-case services for the coordinator."""

from __future__ import annotations

import logging
import threading
from typing import Any

from command_relay.coordinator.models import (
    CommandCreate,
    CommandDetails,
    CommandStatus,
    CommandType,
    CommandView,
)
from command_relay.coordinator.repository import CommandRepository
from command_relay.errors import CoordinatorNotReadyError

logger = logging.getLogger(__name__)


class CoordinatorService:
    """Coordinates submission, assignment, result acceptance and recovery.

    ``claim`` and ``submit_result`` are refused until ``recover`` has run, so
    a command claimed by this process can never be mistaken for an orphan of
    the previous one.
    """

    def __init__(self, *, repository: CommandRepository) -> None:
        self.repository = repository
        self._recovered = threading.Event()

    @property
    def ready(self) -> bool:
        return self._recovered.is_set()

    def recover(self) -> int:
        """Reclaim commands left RUNNING by a previous coordinator process."""

        reclaimed = self.repository.reclaim_running_commands()
        if reclaimed:
            logger.warning(
                "Recovered %d orphaned RUNNING command(s) as FAILED: %s",
                len(reclaimed),
                ", ".join(reclaimed),
            )
        else:
            logger.info("Recovery found no orphaned RUNNING commands")
        self._recovered.set()
        return len(reclaimed)

    def create_command(self, command_type: CommandType, payload: dict[str, Any]) -> str:
        command = self.repository.create_command(
            CommandCreate(type=CommandType(command_type), payload=payload),
        )
        logger.info("Command created: id=%s type=%s", command.id, command.type.value)
        return command.id

    def get_command(self, command_id: str) -> CommandView | None:
        return self.repository.get_command(command_id=command_id)

    def get_command_details(self, command_id: str) -> CommandDetails | None:
        return self.repository.get_command_details(command_id=command_id)

    def list_commands(self, *, status: CommandStatus | None = None) -> list[CommandView]:
        return self.repository.list_commands(status=status)

    def claim(self, agent_id: str) -> CommandView | None:
        """Bind the oldest eligible command to ``agent_id``; ``None`` when idle."""

        self._require_ready()
        command = self.repository.claim_next_command(agent_id=agent_id)
        if command is not None:
            logger.info(
                "Command assigned: id=%s type=%s agent_id=%s",
                command.id,
                command.type.value,
                agent_id,
            )
        return command

    def submit_result(self, command_id: str, agent_id: str, result: dict[str, Any]) -> CommandView:
        """Commit a result; raises a ``CommandRejectedError`` subclass on refusal."""

        self._require_ready()
        command = self.repository.complete_command(
            command_id=command_id,
            agent_id=agent_id,
            result=result,
        )
        logger.info("Command completed: id=%s agent_id=%s", command_id, agent_id)
        return command

    def _require_ready(self) -> None:
        if not self._recovered.is_set():
            raise CoordinatorNotReadyError(
                "Coordinator recovery has not run yet; refusing claim/submit.",
            )

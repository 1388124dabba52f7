"""Exception taxonomy shared by coordinator and agent."""

from __future__ import annotations


class CommandRelayError(RuntimeError):
    """Base class for all command-relay failures."""


class CommandRejectedError(CommandRelayError):
    """Result submission refused by the coordinator; the row was not modified."""

    code = "rejected"

    def __init__(self, command_id: str, message: str) -> None:
        super().__init__(message)
        self.command_id = command_id


class CommandNotFoundError(CommandRejectedError):
    code = "not_found"

    def __init__(self, command_id: str, *, message: str | None = None) -> None:
        super().__init__(command_id, message or f"Command not found: {command_id}")


class InvalidCommandStateError(CommandRejectedError):
    code = "invalid_state"

    def __init__(
        self,
        command_id: str,
        status: str | None = None,
        *,
        message: str | None = None,
    ) -> None:
        super().__init__(
            command_id,
            message
            or f"Command is not in RUNNING state (command_id={command_id}, status={status})",
        )
        self.status = status


class OwnershipMismatchError(CommandRejectedError):
    code = "ownership_mismatch"

    def __init__(
        self,
        command_id: str,
        agent_id: str | None = None,
        owner_agent_id: str | None = None,
        *,
        message: str | None = None,
    ) -> None:
        super().__init__(
            command_id,
            message
            or (
                "Command is not assigned to this agent "
                f"(command_id={command_id}, agent_id={agent_id}, owner={owner_agent_id})"
            ),
        )
        self.agent_id = agent_id
        self.owner_agent_id = owner_agent_id


class CoordinatorNotReadyError(CommandRelayError):
    """Claim or submit attempted before startup recovery has completed."""


class CoordinatorTransportError(CommandRelayError):
    """Network or protocol failure talking to the coordinator."""


class ExecutionError(CommandRelayError):
    """An executor failed to produce a result."""


class UnknownCommandTypeError(ExecutionError):
    def __init__(self, command_type: str) -> None:
        super().__init__(f"Unknown command type: {command_type}")
        self.command_type = command_type


RemoteRejection = CommandNotFoundError | InvalidCommandStateError | OwnershipMismatchError

REJECTION_ERRORS: dict[str, type[RemoteRejection]] = {
    CommandNotFoundError.code: CommandNotFoundError,
    InvalidCommandStateError.code: InvalidCommandStateError,
    OwnershipMismatchError.code: OwnershipMismatchError,
}

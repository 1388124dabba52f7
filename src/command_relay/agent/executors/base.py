"""Executor interface for agent command execution."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol

from command_relay.coordinator.models import CommandType, CommandView
from command_relay.errors import UnknownCommandTypeError


class CommandExecutor(Protocol):
    """Protocol implemented by per-type executors."""

    def execute(self, command: CommandView) -> dict[str, Any]:
        """Run the command and return its result document, or raise."""


class ExecutorRegistry:
    """Dispatches a command to the executor registered for its type."""

    def __init__(self, executors: Mapping[CommandType, CommandExecutor]) -> None:
        self._executors = dict(executors)

    @property
    def supported_types(self) -> tuple[CommandType, ...]:
        return tuple(self._executors)

    def execute(self, command: CommandView) -> dict[str, Any]:
        executor = self._executors.get(command.type)
        if executor is None:
            raise UnknownCommandTypeError(str(command.type.value))
        return executor.execute(command)

    def close(self) -> None:
        for executor in self._executors.values():
            close = getattr(executor, "close", None)
            if callable(close):
                close()

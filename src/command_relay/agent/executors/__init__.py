"""Command executors keyed by command type."""

from command_relay.agent.executors.base import CommandExecutor, ExecutorRegistry
from command_relay.agent.executors.delay import DelayExecutor
from command_relay.agent.executors.http_get_json import MAX_BODY_BYTES, HttpGetJsonExecutor
from command_relay.coordinator.models import CommandType


def build_default_registry(*, http_timeout_seconds: float = 30.0) -> ExecutorRegistry:
    """Registry with the built-in DELAY and HTTP_GET_JSON executors."""

    return ExecutorRegistry(
        {
            CommandType.DELAY: DelayExecutor(),
            CommandType.HTTP_GET_JSON: HttpGetJsonExecutor(timeout_seconds=http_timeout_seconds),
        },
    )


__all__ = [
    "MAX_BODY_BYTES",
    "CommandExecutor",
    "DelayExecutor",
    "ExecutorRegistry",
    "HttpGetJsonExecutor",
    "build_default_registry",
]

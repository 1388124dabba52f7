"""Controllers for agent CLI commands."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from command_relay.agent.executors import build_default_registry
from command_relay.agent.idempotency import IdempotencyGuard
from command_relay.agent.transport import HttpCoordinatorClient
from command_relay.agent.worker import AgentWorker, CrashPolicy
from command_relay.config import Settings

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AgentRunCommand:
    """CLI input for the agent poll loop."""

    server_url: str | None
    agent_id: str | None
    poll_interval_seconds: float | None
    idempotency_db_path: Path | None
    kill_after_seconds: float | None
    random_failures: bool
    max_cycles: int | None = None


class AgentCliController:
    """Wires transport, idempotency guard and executors into a worker."""

    def run(self, command: AgentRunCommand) -> list[str]:
        settings = Settings.from_env()
        agent = settings.agent
        if command.server_url is not None:
            agent.server_url = command.server_url
        if command.agent_id is not None:
            agent.agent_id = command.agent_id
        if command.poll_interval_seconds is not None:
            agent.poll_interval_seconds = command.poll_interval_seconds
        if command.idempotency_db_path is not None:
            agent.idempotency_db_path = command.idempotency_db_path
        if command.kill_after_seconds is not None:
            agent.kill_after_seconds = command.kill_after_seconds
        agent.random_failures = agent.random_failures or command.random_failures
        settings.validate_for_agent()

        logger.info("Agent started: %s", agent.agent_id)
        logger.info("Server: %s", agent.server_url)
        logger.info("Poll interval: %.3fs", agent.poll_interval_seconds)
        if agent.kill_after_seconds is not None:
            logger.info("Will crash after: %.1fs", agent.kill_after_seconds)
        if agent.random_failures:
            logger.info("Random failures: enabled")

        guard = IdempotencyGuard(agent.idempotency_db_path)
        guard.init_schema()
        executors = build_default_registry(
            http_timeout_seconds=agent.http_executor_timeout_seconds,
        )
        try:
            with HttpCoordinatorClient(
                server_url=agent.server_url,
                timeout_seconds=agent.request_timeout_seconds,
            ) as transport:
                worker = AgentWorker(
                    agent_id=agent.agent_id,
                    transport=transport,
                    guard=guard,
                    executors=executors,
                    poll_interval_seconds=agent.poll_interval_seconds,
                    crash_policy=CrashPolicy(
                        kill_after_seconds=agent.kill_after_seconds,
                        random_failures=agent.random_failures,
                    ),
                )
                summary = worker.run_loop(max_cycles=command.max_cycles)
        finally:
            executors.close()
            guard.close()

        return [
            "Agent summary: "
            f"agent_id={agent.agent_id} cycles={summary.cycles} completed={summary.completed} "
            f"idle_polls={summary.idle_polls} skipped={summary.skipped} "
            f"execution_failures={summary.execution_failures} "
            f"transport_failures={summary.transport_failures} rejected={summary.rejected} "
            f"errors={summary.errors}",
        ]

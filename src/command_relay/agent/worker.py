"""Agent poll loop: claim, guard, execute, record, report."""

from __future__ import annotations

import logging
import os
import random
import signal
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any

from command_relay.agent.executors import ExecutorRegistry
from command_relay.agent.idempotency import IdempotencyGuard
from command_relay.agent.transport import CoordinatorTransport
from command_relay.coordinator.models import CommandView
from command_relay.coordinator.serialization import is_json_compliant
from command_relay.errors import (
    CommandRejectedError,
    CoordinatorNotReadyError,
    CoordinatorTransportError,
)

logger = logging.getLogger(__name__)

CRASH_EXIT_CODE = 1
SLEEP_SLICE_SECONDS = 0.1


class CycleOutcome(str, Enum):
    """What one poll cycle ended with."""

    IDLE = "idle"
    COMPLETED = "completed"
    SKIPPED_ALREADY_EXECUTED = "skipped_already_executed"
    EXECUTION_FAILED = "execution_failed"
    TRANSPORT_FAILED = "transport_failed"
    REJECTED = "rejected"
    ERROR = "error"


@dataclass(slots=True)
class WorkerRunSummary:
    """Aggregate worker counters for CLI reporting."""

    cycles: int = 0
    completed: int = 0
    idle_polls: int = 0
    skipped: int = 0
    execution_failures: int = 0
    transport_failures: int = 0
    rejected: int = 0
    errors: int = 0

    def record(self, outcome: CycleOutcome) -> None:
        self.cycles += 1
        if outcome is CycleOutcome.COMPLETED:
            self.completed += 1
        elif outcome is CycleOutcome.IDLE:
            self.idle_polls += 1
        elif outcome is CycleOutcome.SKIPPED_ALREADY_EXECUTED:
            self.skipped += 1
        elif outcome is CycleOutcome.EXECUTION_FAILED:
            self.execution_failures += 1
        elif outcome is CycleOutcome.TRANSPORT_FAILED:
            self.transport_failures += 1
        elif outcome is CycleOutcome.REJECTED:
            self.rejected += 1
        else:
            self.errors += 1


@dataclass(slots=True)
class CrashPolicy:
    """Operational hooks that kill the agent on purpose to exercise recovery."""

    kill_after_seconds: float | None = None
    random_failures: bool = False
    random_failure_probability: float = 0.1

    @property
    def enabled(self) -> bool:
        return self.kill_after_seconds is not None or self.random_failures

    def crash_reason(self, *, elapsed_seconds: float, roll: float) -> str | None:
        if self.kill_after_seconds is not None and elapsed_seconds > self.kill_after_seconds:
            return "--kill-after"
        if self.random_failures and roll < self.random_failure_probability:
            return "--random-failures"
        return None


def _hard_exit(code: int) -> None:
    os._exit(code)  # noqa: SLF001


class AgentWorker:
    """Single-threaded agent loop.

    The idempotency guard is read strictly before the executor runs and
    written strictly after it returns. A command this agent already executed
    is never executed again; it stays RUNNING on the coordinator until the
    next coordinator recovery.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        agent_id: str,
        transport: CoordinatorTransport,
        guard: IdempotencyGuard,
        executors: ExecutorRegistry,
        poll_interval_seconds: float = 2.0,
        crash_policy: CrashPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        rng: random.Random | None = None,
        exit_process: Callable[[int], Any] = _hard_exit,
    ) -> None:
        self.agent_id = agent_id
        self.transport = transport
        self.guard = guard
        self.executors = executors
        self.poll_interval_seconds = poll_interval_seconds
        self.crash_policy = crash_policy or CrashPolicy()
        self._sleep = sleep
        self._clock = clock
        self._random = rng or random.Random()  # noqa: S311
        self._exit_process = exit_process
        self._started_at = clock()
        self._stop_requested = False
        self._stop_signal_name: str | None = None

    def request_stop(self, *, signal_name: str | None = None) -> None:
        self._stop_requested = True
        self._stop_signal_name = signal_name
        logger.info("Stop requested for agent %s (signal=%s)", self.agent_id, signal_name)

    def run_once(self) -> CycleOutcome:
        """Run one poll cycle."""

        self._maybe_crash()

        try:
            command = self.transport.claim(self.agent_id)
        except (CoordinatorTransportError, CoordinatorNotReadyError) as error:
            logger.error("Failed to poll for command: %s", error)
            return CycleOutcome.TRANSPORT_FAILED
        if command is None:
            return CycleOutcome.IDLE

        logger.info("Received command: %s (%s)", command.id, command.type.value)
        if self.guard.already_executed(command.id):
            logger.warning(
                "Command %s already executed by this agent (idempotency check); not executing",
                command.id,
            )
            return CycleOutcome.SKIPPED_ALREADY_EXECUTED

        result = self._execute(command)
        if result is None:
            return CycleOutcome.EXECUTION_FAILED

        self.guard.mark_executed(command.id)
        logger.info("Completed command: %s", command.id)

        try:
            self.transport.submit(command.id, self.agent_id, result)
        except CommandRejectedError as error:
            logger.error("Result for %s rejected by coordinator: %s", command.id, error)
            return CycleOutcome.REJECTED
        except (CoordinatorTransportError, CoordinatorNotReadyError) as error:
            logger.error("Failed to submit result for %s: %s", command.id, error)
            return CycleOutcome.TRANSPORT_FAILED

        logger.info("Submitted result for: %s", command.id)
        return CycleOutcome.COMPLETED

    def run_loop(self, *, max_cycles: int | None = None) -> WorkerRunSummary:
        """Poll until stopped (or ``max_cycles`` reached); never exits on a cycle error."""

        summary = WorkerRunSummary()
        with self._signal_handlers():
            while not self._stop_requested:
                if max_cycles is not None and summary.cycles >= max_cycles:
                    break
                try:
                    outcome = self.run_once()
                except Exception:  # noqa: BLE001
                    logger.exception("Error in agent loop")
                    outcome = CycleOutcome.ERROR
                summary.record(outcome)
                if outcome is not CycleOutcome.COMPLETED:
                    self._sleep_with_stop(self.poll_interval_seconds)
        return summary

    def _execute(self, command: CommandView) -> dict[str, Any] | None:
        try:
            result = self.executors.execute(command)
        except Exception:  # noqa: BLE001
            logger.exception("Execution failed for command %s (%s)", command.id, command.type.value)
            return None
        if not is_json_compliant(result):
            logger.error("Result for command %s holds NaN or Infinity; not reported", command.id)
            return None
        return result

    def _maybe_crash(self) -> None:
        if not self.crash_policy.enabled:
            return
        reason = self.crash_policy.crash_reason(
            elapsed_seconds=self._clock() - self._started_at,
            roll=self._random.random(),
        )
        if reason is None:
            return
        logger.warning("Simulating crash (%s)", reason)
        self._exit_process(CRASH_EXIT_CODE)

    def _sleep_with_stop(self, seconds: float) -> None:
        deadline = self._clock() + seconds
        while not self._stop_requested:
            remaining = deadline - self._clock()
            if remaining <= 0:
                return
            self._sleep(min(SLEEP_SLICE_SECONDS, remaining))

    @contextmanager
    def _signal_handlers(self) -> Iterator[None]:
        if not hasattr(signal, "SIGINT"):
            yield
            return

        def _handler(signum: int, _: object | None) -> None:
            try:
                name = signal.Signals(signum).name
            except ValueError:
                name = str(signum)
            self.request_stop(signal_name=name)

        try:
            original_sigint = signal.signal(signal.SIGINT, _handler)
            original_sigterm = signal.signal(signal.SIGTERM, _handler)
        except ValueError:
            # Signal handlers can only be installed in main thread.
            yield
            return
        try:
            yield
        finally:
            signal.signal(signal.SIGINT, original_sigint)
            signal.signal(signal.SIGTERM, original_sigterm)

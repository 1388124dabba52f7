"""DELAY executor: sleep for the requested milliseconds."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

from command_relay.coordinator.models import CommandView
from command_relay.errors import ExecutionError


class DelayExecutor:
    def __init__(
        self,
        *,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._sleep = sleep
        self._clock = clock

    def execute(self, command: CommandView) -> dict[str, Any]:
        ms = command.payload.get("ms")
        if isinstance(ms, bool) or not isinstance(ms, int | float) or ms < 0:
            raise ExecutionError(f"DELAY payload requires non-negative ms, got {ms!r}")

        started = self._clock()
        self._sleep(ms / 1000.0)
        took_ms = round((self._clock() - started) * 1000)
        return {"ok": True, "tookMs": took_ms}

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

import allure
import httpx
import pytest

from command_relay.agent.executors import (
    DelayExecutor,
    ExecutorRegistry,
    HttpGetJsonExecutor,
    build_default_registry,
)
from command_relay.coordinator.models import CommandStatus, CommandType, CommandView
from command_relay.errors import ExecutionError, UnknownCommandTypeError

pytestmark = [
    allure.epic("Command Lifecycle"),
    allure.feature("Command Executors"),
]


def _command(command_type: CommandType, payload: dict[str, Any]) -> CommandView:
    now = datetime(2026, 1, 1, tzinfo=UTC)
    return CommandView(
        id="cmd-1",
        type=command_type,
        payload=payload,
        status=CommandStatus.RUNNING,
        result=None,
        agent_id="agent-1",
        created_at=now,
        updated_at=now,
        assigned_at=now,
    )


def _http_executor(handler: Any, **kwargs: Any) -> HttpGetJsonExecutor:
    return HttpGetJsonExecutor(
        client=httpx.Client(transport=httpx.MockTransport(handler)),
        **kwargs,
    )


def test_delay_executor_sleeps_and_reports_elapsed_ms() -> None:
    sleeps: list[float] = []
    ticks = iter([10.0, 10.101])
    executor = DelayExecutor(sleep=sleeps.append, clock=lambda: next(ticks))

    result = executor.execute(_command(CommandType.DELAY, {"ms": 100}))

    assert sleeps == [0.1]
    assert result == {"ok": True, "tookMs": 101}


@pytest.mark.parametrize("payload", [{}, {"ms": "100"}, {"ms": -5}, {"ms": True}])
def test_delay_executor_rejects_bad_payload(payload: dict[str, Any]) -> None:
    executor = DelayExecutor(sleep=lambda _: None)

    with pytest.raises(ExecutionError):
        executor.execute(_command(CommandType.DELAY, payload))


def test_http_executor_returns_parsed_json_body() -> None:
    seen: list[httpx.Request] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, content=b'{"id": 1, "title": "Test Post"}')

    executor = _http_executor(_handler)
    result = executor.execute(
        _command(CommandType.HTTP_GET_JSON, {"url": "https://example.com/posts/1"}),
    )

    assert seen[0].method == "GET"
    assert str(seen[0].url) == "https://example.com/posts/1"
    assert result["status"] == 200
    assert result["body"] == {"id": 1, "title": "Test Post"}
    assert result["truncated"] is False
    assert result["bytesReturned"] == len(b'{"id": 1, "title": "Test Post"}')
    assert result["error"] is None


def test_http_executor_keeps_non_json_body_as_text() -> None:
    executor = _http_executor(lambda _: httpx.Response(200, text="plain text"))

    result = executor.execute(_command(CommandType.HTTP_GET_JSON, {"url": "https://x.test"}))

    assert result["body"] == "plain text"
    assert result["error"] is None


def test_http_executor_reports_error_status_without_raising() -> None:
    executor = _http_executor(lambda _: httpx.Response(404, json={"error": "missing"}))

    result = executor.execute(_command(CommandType.HTTP_GET_JSON, {"url": "https://x.test"}))

    assert result["status"] == 404
    assert result["body"] == {"error": "missing"}
    assert result["error"] is None


def test_http_executor_truncates_large_body() -> None:
    body = b"a" * 150
    executor = _http_executor(lambda _: httpx.Response(200, content=body), max_body_bytes=100)

    result = executor.execute(_command(CommandType.HTTP_GET_JSON, {"url": "https://x.test"}))

    assert result["truncated"] is True
    assert result["bytesReturned"] == 150
    assert result["body"] == "a" * 100


def test_http_executor_reports_network_failure_in_result() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("Name or service not known", request=request)

    executor = _http_executor(_handler)
    result = executor.execute(
        _command(CommandType.HTTP_GET_JSON, {"url": "https://unreachable.invalid"}),
    )

    assert result == {
        "status": 0,
        "body": None,
        "truncated": False,
        "bytesReturned": 0,
        "error": "Name or service not known",
    }


def test_http_executor_rejects_missing_url() -> None:
    executor = _http_executor(lambda _: httpx.Response(200))

    with pytest.raises(ExecutionError):
        executor.execute(_command(CommandType.HTTP_GET_JSON, {}))


def test_registry_dispatches_by_type_and_rejects_unknown() -> None:
    registry = ExecutorRegistry({CommandType.DELAY: DelayExecutor(sleep=lambda _: None)})

    assert registry.supported_types == (CommandType.DELAY,)
    assert registry.execute(_command(CommandType.DELAY, {"ms": 0}))["ok"] is True
    with pytest.raises(UnknownCommandTypeError):
        registry.execute(_command(CommandType.HTTP_GET_JSON, {"url": "https://x.test"}))


def test_default_registry_supports_builtin_types() -> None:
    registry = build_default_registry(http_timeout_seconds=5.0)

    assert set(registry.supported_types) == {CommandType.DELAY, CommandType.HTTP_GET_JSON}
    registry.close()


@pytest.mark.parametrize(
    "raw_body",
    [b"NaN", b"Infinity", b'{"value": -Infinity}', b'{"value": 1e999}', b"[1.5, NaN]"],
)
def test_http_executor_keeps_non_finite_json_as_text(raw_body: bytes) -> None:
    executor = _http_executor(lambda _: httpx.Response(200, content=raw_body))

    result = executor.execute(_command(CommandType.HTTP_GET_JSON, {"url": "https://x.test"}))

    assert result["body"] == raw_body.decode()
    assert result["error"] is None


def test_http_executor_parses_finite_floats() -> None:
    executor = _http_executor(lambda _: httpx.Response(200, content=b'{"ratio": 0.25}'))

    result = executor.execute(_command(CommandType.HTTP_GET_JSON, {"url": "https://x.test"}))

    assert result["body"] == {"ratio": 0.25}

"""Coordinator transports used by the agent poll loop."""

from __future__ import annotations

from typing import Any, Protocol

import httpx

from command_relay.coordinator.models import CommandStatus, CommandType, CommandView
from command_relay.coordinator.serialization import command_from_wire, is_json_compliant
from command_relay.coordinator.services import CoordinatorService
from command_relay.errors import (
    REJECTION_ERRORS,
    CommandRejectedError,
    CoordinatorTransportError,
)


class CoordinatorTransport(Protocol):
    """What the agent needs from the coordinator."""

    def claim(self, agent_id: str) -> CommandView | None:
        """Return a command bound to ``agent_id`` or ``None`` when no work is available."""

    def submit(self, command_id: str, agent_id: str, result: dict[str, Any]) -> None:
        """Report a result; raises ``CommandRejectedError`` if the coordinator refuses it."""


class LocalCoordinatorTransport:
    """In-process transport over a ``CoordinatorService``."""

    def __init__(self, service: CoordinatorService) -> None:
        self.service = service

    def claim(self, agent_id: str) -> CommandView | None:
        return self.service.claim(agent_id)

    def submit(self, command_id: str, agent_id: str, result: dict[str, Any]) -> None:
        self.service.submit_result(command_id, agent_id, result)


class HttpCoordinatorClient:
    """httpx client for the coordinator REST API."""

    def __init__(
        self,
        *,
        server_url: str,
        timeout_seconds: float = 10.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.server_url = server_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.Client(
            timeout=httpx.Timeout(timeout_seconds, connect=min(timeout_seconds, 5.0)),
        )

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> HttpCoordinatorClient:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

    def claim(self, agent_id: str) -> CommandView | None:
        response = self._request("GET", "/commands/next", params={"agentId": agent_id})
        if response.status_code == httpx.codes.NO_CONTENT:
            return None
        self._raise_for_status(response, command_id=None)
        try:
            return command_from_wire(response.json())
        except ValueError as error:
            raise CoordinatorTransportError(f"Malformed command document: {error}") from error

    def submit(self, command_id: str, agent_id: str, result: dict[str, Any]) -> None:
        if not is_json_compliant(result):
            raise CoordinatorTransportError(
                f"Result for {command_id} holds NaN or Infinity and cannot be sent as JSON",
            )
        response = self._request(
            "PUT",
            f"/commands/{command_id}/result",
            json={"result": result, "agentId": agent_id},
        )
        self._raise_for_status(response, command_id=command_id)

    def create_command(self, command_type: CommandType, payload: dict[str, Any]) -> str:
        response = self._request(
            "POST",
            "/commands",
            json={"type": CommandType(command_type).value, "payload": payload},
        )
        self._raise_for_status(response, command_id=None)
        return str(response.json()["commandId"])

    def get_command_status(self, command_id: str) -> dict[str, Any] | None:
        response = self._request("GET", f"/commands/{command_id}")
        if response.status_code == httpx.codes.NOT_FOUND:
            return None
        self._raise_for_status(response, command_id=command_id)
        return response.json()

    def list_commands(self, *, status: CommandStatus | None = None) -> list[CommandView]:
        params = {"status": status.value} if status is not None else None
        response = self._request("GET", "/commands", params=params)
        self._raise_for_status(response, command_id=None)
        return [command_from_wire(document) for document in response.json()]

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        url = f"{self.server_url}{path}"
        try:
            return self._client.request(method, url, **kwargs)
        except httpx.HTTPError as error:
            raise CoordinatorTransportError(f"{method} {url} failed: {error}") from error

    def _raise_for_status(self, response: httpx.Response, *, command_id: str | None) -> None:
        if response.is_success:
            return
        code, message = _error_detail(response)
        if command_id is not None and code in REJECTION_ERRORS:
            raise _rejection(code, command_id=command_id, message=message)
        raise CoordinatorTransportError(
            f"{response.request.method} {response.request.url} returned "
            f"HTTP {response.status_code}: {message}",
        )


def _error_detail(response: httpx.Response) -> tuple[str | None, str]:
    try:
        body = response.json()
    except ValueError:
        return None, response.text or response.reason_phrase
    detail = body.get("detail") if isinstance(body, dict) else None
    if isinstance(detail, dict):
        return detail.get("code"), str(detail.get("message", ""))
    return None, str(detail if detail is not None else body)


def _rejection(code: str, *, command_id: str, message: str) -> CommandRejectedError:
    return REJECTION_ERRORS[code](command_id, message=message)

from __future__ import annotations

import allure
import pytest
from fastapi.testclient import TestClient

from command_relay.coordinator.api import create_app, validate_command_payload
from command_relay.coordinator.models import CommandType
from command_relay.coordinator.repository import CommandRepository
from command_relay.coordinator.services import CoordinatorService

pytestmark = [
    allure.epic("Command Lifecycle"),
    allure.feature("Coordinator HTTP API"),
]


@pytest.fixture()
def client(service: CoordinatorService) -> TestClient:
    return TestClient(create_app(service))


def _submit_delay(client: TestClient, ms: int = 100) -> str:
    response = client.post("/commands", json={"type": "DELAY", "payload": {"ms": ms}})
    assert response.status_code == 201
    return response.json()["commandId"]


def test_health_reports_readiness(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "ready": True}


def test_full_lifecycle_over_http(client: TestClient) -> None:
    command_id = _submit_delay(client)

    status = client.get(f"/commands/{command_id}")
    assert status.json() == {"status": "PENDING", "result": None, "agentId": None}

    claimed = client.get("/commands/next", params={"agentId": "agent-1"})
    assert claimed.status_code == 200
    document = claimed.json()
    assert document["id"] == command_id
    assert document["type"] == "DELAY"
    assert document["payload"] == {"ms": 100}
    assert document["status"] == "RUNNING"
    assert document["agentId"] == "agent-1"
    assert document["assignedAt"] is not None

    submitted = client.put(
        f"/commands/{command_id}/result",
        json={"result": {"ok": True, "tookMs": 101}, "agentId": "agent-1"},
    )
    assert submitted.status_code == 200
    assert submitted.json() == {"success": True}

    final = client.get(f"/commands/{command_id}")
    assert final.json() == {
        "status": "COMPLETED",
        "result": {"ok": True, "tookMs": 101},
        "agentId": "agent-1",
    }


def test_claim_returns_204_when_no_work(client: TestClient) -> None:
    response = client.get("/commands/next", params={"agentId": "agent-1"})

    assert response.status_code == 204
    assert response.content == b""


def test_claim_requires_agent_id(client: TestClient) -> None:
    assert client.get("/commands/next").status_code == 422


def test_unknown_command_returns_404(client: TestClient) -> None:
    assert client.get("/commands/missing").status_code == 404
    assert client.get("/commands/missing/events").status_code == 404

    response = client.put(
        "/commands/missing/result",
        json={"result": {"ok": True}, "agentId": "agent-1"},
    )
    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "not_found"


def test_submit_for_pending_command_returns_409_invalid_state(client: TestClient) -> None:
    command_id = _submit_delay(client)

    response = client.put(
        f"/commands/{command_id}/result",
        json={"result": {"ok": True}, "agentId": "agent-1"},
    )

    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "invalid_state"
    assert client.get(f"/commands/{command_id}").json()["status"] == "PENDING"


def test_submit_from_other_agent_returns_409_ownership_mismatch(client: TestClient) -> None:
    command_id = _submit_delay(client)
    client.get("/commands/next", params={"agentId": "agent-1"})

    response = client.put(
        f"/commands/{command_id}/result",
        json={"result": {"ok": True}, "agentId": "agent-2"},
    )

    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "ownership_mismatch"
    status = client.get(f"/commands/{command_id}").json()
    assert status == {"status": "RUNNING", "result": None, "agentId": "agent-1"}


@pytest.mark.parametrize(
    "body",
    [
        {"type": "DELAY", "payload": {"ms": "100"}},
        {"type": "DELAY", "payload": {"ms": -1}},
        {"type": "DELAY", "payload": {}},
        {"type": "HTTP_GET_JSON", "payload": {"url": 42}},
    ],
)
def test_create_rejects_bad_payload_with_400(client: TestClient, body: dict) -> None:
    response = client.post("/commands", json=body)

    assert response.status_code == 400
    assert client.get("/commands").json() == []


def test_create_rejects_unknown_type_with_422(client: TestClient) -> None:
    response = client.post("/commands", json={"type": "SHELL", "payload": {"cmd": "ls"}})

    assert response.status_code == 422


def test_submit_rejects_missing_agent_id_with_422(client: TestClient) -> None:
    command_id = _submit_delay(client)

    response = client.put(f"/commands/{command_id}/result", json={"result": {"ok": True}})

    assert response.status_code == 422


def test_list_and_events_endpoints(client: TestClient) -> None:
    first = _submit_delay(client, 1)
    second = _submit_delay(client, 2)
    client.get("/commands/next", params={"agentId": "agent-1"})

    listed = client.get("/commands").json()
    assert [item["id"] for item in listed] == [first, second]
    running = client.get("/commands", params={"status": "RUNNING"}).json()
    assert [item["id"] for item in running] == [first]

    events = client.get(f"/commands/{first}/events").json()
    assert [event["eventType"] for event in events] == ["created", "claimed"]
    assert events[1]["statusFrom"] == "PENDING"
    assert events[1]["statusTo"] == "RUNNING"


def test_claim_and_submit_return_503_before_recovery(repository: CommandRepository) -> None:
    service = CoordinatorService(repository=repository)
    client = TestClient(create_app(service))
    command_id = _submit_delay(client)

    assert client.get("/health").json()["ready"] is False
    claim = client.get("/commands/next", params={"agentId": "agent-1"})
    assert claim.status_code == 503
    assert claim.json()["detail"]["code"] == "not_ready"
    submit = client.put(
        f"/commands/{command_id}/result",
        json={"result": {"ok": True}, "agentId": "agent-1"},
    )
    assert submit.status_code == 503


def test_validate_command_payload_accepts_valid_documents() -> None:
    assert validate_command_payload(CommandType.DELAY, {"ms": 0}) is None
    assert validate_command_payload(CommandType.DELAY, {"ms": 2.5}) is None
    assert validate_command_payload(CommandType.DELAY, {"ms": True}) is not None
    assert validate_command_payload(CommandType.DELAY, {"ms": float("inf")}) is not None
    assert validate_command_payload(CommandType.HTTP_GET_JSON, {"url": "http://x"}) is None


@pytest.mark.parametrize(
    "raw_body",
    [
        '{"type": "DELAY", "payload": {"ms": Infinity}}',
        '{"type": "DELAY", "payload": {"ms": 1e999}}',
        '{"type": "DELAY", "payload": {"ms": NaN}}',
        '{"type": "HTTP_GET_JSON", "payload": {"url": "https://x.test", "retry": -Infinity}}',
    ],
)
def test_create_rejects_non_finite_numbers_with_400(client: TestClient, raw_body: str) -> None:
    response = client.post(
        "/commands",
        content=raw_body,
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 400
    assert client.get("/commands").json() == []
    assert client.get("/commands/next", params={"agentId": "agent-1"}).status_code == 204


def test_submit_rejects_non_finite_result_with_422_and_keeps_command_running(
    client: TestClient,
) -> None:
    command_id = _submit_delay(client)
    client.get("/commands/next", params={"agentId": "agent-1"})

    response = client.put(
        f"/commands/{command_id}/result",
        content='{"result": {"body": NaN}, "agentId": "agent-1"}',
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 422
    assert client.get(f"/commands/{command_id}").json() == {
        "status": "RUNNING",
        "result": None,
        "agentId": "agent-1",
    }
    accepted = client.put(
        f"/commands/{command_id}/result",
        json={"result": {"body": "NaN"}, "agentId": "agent-1"},
    )
    assert accepted.status_code == 200


def test_cors_preflight_allows_any_origin_by_default(client: TestClient) -> None:
    response = client.options(
        "/commands",
        headers={
            "Origin": "http://dashboard.example",
            "Access-Control-Request-Method": "POST",
        },
    )

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "*"


def test_cors_preflight_honours_configured_origins(service: CoordinatorService) -> None:
    client = TestClient(create_app(service, cors_origins=("http://dashboard.example",)))

    allowed = client.options(
        "/commands/next",
        headers={
            "Origin": "http://dashboard.example",
            "Access-Control-Request-Method": "GET",
        },
    )
    refused = client.options(
        "/commands/next",
        headers={
            "Origin": "http://elsewhere.example",
            "Access-Control-Request-Method": "GET",
        },
    )

    assert allowed.status_code == 200
    assert allowed.headers["access-control-allow-origin"] == "http://dashboard.example"
    assert refused.status_code == 400
    assert "access-control-allow-origin" not in refused.headers

"""FastAPI surface for the coordinator.

Routes:
    POST /commands                  submit a command
    GET  /commands                  list all commands
    GET  /commands/next?agentId=    claim the oldest eligible command (204 if none)
    GET  /commands/{id}             status/result/agentId of one command
    GET  /commands/{id}/events      audit trail of one command
    PUT  /commands/{id}/result      report a result for a RUNNING command
    GET  /health
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from numbers import Real
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from command_relay import __version__
from command_relay.coordinator.models import CommandStatus, CommandType
from command_relay.coordinator.serialization import (
    command_status_to_wire,
    command_to_wire,
    event_to_wire,
    is_json_compliant,
)
from command_relay.coordinator.services import CoordinatorService
from command_relay.errors import (
    CommandNotFoundError,
    CommandRejectedError,
    CoordinatorNotReadyError,
)

logger = logging.getLogger(__name__)


class CreateCommandRequest(BaseModel):
    """Command submission body."""

    type: CommandType
    payload: dict[str, Any]


class CreateCommandResponse(BaseModel):
    command_id: str = Field(serialization_alias="commandId")


class SubmitResultRequest(BaseModel):
    """Result report body."""

    result: dict[str, Any]
    agent_id: str = Field(alias="agentId", min_length=1)


def validate_command_payload(command_type: CommandType, payload: dict[str, Any]) -> str | None:
    """Return an error message when ``payload`` does not fit ``command_type``."""

    if command_type is CommandType.DELAY:
        ms = payload.get("ms")
        if isinstance(ms, bool) or not isinstance(ms, Real):
            return "DELAY payload must have ms as number"
        if not math.isfinite(ms):
            return "DELAY payload ms must be a finite number"
        if ms < 0:
            return "DELAY payload ms must be >= 0"
        return None
    if command_type is CommandType.HTTP_GET_JSON:
        if not isinstance(payload.get("url"), str):
            return "HTTP_GET_JSON payload must have url as string"
        return None
    return f"Unsupported command type: {command_type.value}"


def get_service(request: Request) -> CoordinatorService:
    return request.app.state.service


def create_app(
    service: CoordinatorService,
    *,
    cors_origins: Sequence[str] = ("*",),
) -> FastAPI:
    """Build the HTTP app around an already-constructed service."""

    app = FastAPI(title="command-relay coordinator", version=__version__)
    app.state.service = service
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(CommandNotFoundError)
    async def _not_found(_: Request, error: CommandNotFoundError) -> JSONResponse:
        return JSONResponse(
            status_code=404,
            content={"detail": {"code": error.code, "message": str(error)}},
        )

    @app.exception_handler(CommandRejectedError)
    async def _rejected(_: Request, error: CommandRejectedError) -> JSONResponse:
        return JSONResponse(
            status_code=409,
            content={"detail": {"code": error.code, "message": str(error)}},
        )

    @app.exception_handler(CoordinatorNotReadyError)
    async def _not_ready(_: Request, error: CoordinatorNotReadyError) -> JSONResponse:
        return JSONResponse(
            status_code=503,
            content={"detail": {"code": "not_ready", "message": str(error)}},
        )

    @app.get("/health")
    def health(service: CoordinatorService = Depends(get_service)) -> dict[str, Any]:
        return {"status": "ok", "ready": service.ready}

    @app.post("/commands", status_code=201)
    def create_command(
        body: CreateCommandRequest,
        service: CoordinatorService = Depends(get_service),
    ) -> dict[str, str]:
        if not is_json_compliant(body.payload):
            raise HTTPException(status_code=400, detail="Payload must not contain NaN or Infinity")
        problem = validate_command_payload(body.type, body.payload)
        if problem is not None:
            raise HTTPException(status_code=400, detail=problem)
        command_id = service.create_command(body.type, body.payload)
        return CreateCommandResponse(command_id=command_id).model_dump(by_alias=True)

    @app.get("/commands")
    def list_commands(
        status: CommandStatus | None = None,
        service: CoordinatorService = Depends(get_service),
    ) -> list[dict[str, Any]]:
        return [command_to_wire(command) for command in service.list_commands(status=status)]

    @app.get("/commands/next", response_model=None)
    def claim_next(
        agent_id: str = Query(alias="agentId", min_length=1),
        service: CoordinatorService = Depends(get_service),
    ) -> dict[str, Any] | Response:
        command = service.claim(agent_id)
        if command is None:
            return Response(status_code=204)
        return command_to_wire(command)

    @app.get("/commands/{command_id}")
    def get_command(
        command_id: str,
        service: CoordinatorService = Depends(get_service),
    ) -> dict[str, Any]:
        command = service.get_command(command_id)
        if command is None:
            raise CommandNotFoundError(command_id)
        return command_status_to_wire(command)

    @app.get("/commands/{command_id}/events")
    def get_command_events(
        command_id: str,
        service: CoordinatorService = Depends(get_service),
    ) -> list[dict[str, Any]]:
        details = service.get_command_details(command_id)
        if details is None:
            raise CommandNotFoundError(command_id)
        return [event_to_wire(event) for event in details.events]

    @app.put("/commands/{command_id}/result")
    def submit_result(
        command_id: str,
        body: SubmitResultRequest,
        service: CoordinatorService = Depends(get_service),
    ) -> dict[str, bool]:
        if not is_json_compliant(body.result):
            raise HTTPException(status_code=422, detail="Result must not contain NaN or Infinity")
        try:
            service.submit_result(command_id, body.agent_id, body.result)
        except CommandRejectedError as error:
            logger.warning("Result rejected: %s", error)
            raise
        return {"success": True}

    return app

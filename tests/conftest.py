"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from command_relay.agent.idempotency import IdempotencyGuard
from command_relay.coordinator.repository import CommandRepository
from command_relay.coordinator.services import CoordinatorService


@pytest.fixture()
def repository(tmp_path: Path) -> Iterator[CommandRepository]:
    repo = CommandRepository(tmp_path / "commands.db")
    repo.init_schema()
    yield repo
    repo.close()


@pytest.fixture()
def service(repository: CommandRepository) -> CoordinatorService:
    """Coordinator service that already ran its startup recovery."""

    coordinator = CoordinatorService(repository=repository)
    coordinator.recover()
    return coordinator


@pytest.fixture()
def guard(tmp_path: Path) -> Iterator[IdempotencyGuard]:
    idempotency = IdempotencyGuard(tmp_path / "agent" / "idempotency.db")
    idempotency.init_schema()
    yield idempotency
    idempotency.close()

"""Agent-local durable record of executed commands."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, SQLModel, select

from command_relay.storage.common import (
    DEFAULT_BUSY_TIMEOUT_MS,
    build_sqlite_engine,
    to_db_datetime,
    to_utc_aware_datetime,
    utc_now,
)
from command_relay.storage.sqlmodel_models import ExecutionRecord

logger = logging.getLogger(__name__)


class IdempotencyGuard:
    """Insert-only set of command ids this agent has executed.

    Consulted before an executor runs and written only after it returns, so a
    crash mid-execution leaves no record and the command is re-executed later.
    """

    def __init__(self, db_path: Path, *, busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=busy_timeout_ms)

    def close(self) -> None:
        self.engine.dispose()

    def init_schema(self) -> None:
        SQLModel.metadata.create_all(self.engine, tables=[ExecutionRecord.__table__])
        logger.info("Idempotency tracking initialized at %s", self.db_path)

    def already_executed(self, command_id: str) -> bool:
        with Session(self.engine) as session:
            row = session.exec(
                select(ExecutionRecord).where(ExecutionRecord.command_id == command_id),
            ).one_or_none()
        return row is not None

    def mark_executed(self, command_id: str) -> bool:
        """Record ``command_id``; returns False when it was already recorded."""

        with Session(self.engine) as session:
            session.add(
                ExecutionRecord(command_id=command_id, executed_at=to_db_datetime(utc_now())),
            )
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                return False
        return True

    def executed_at(self, command_id: str) -> datetime | None:
        with Session(self.engine) as session:
            row = session.exec(
                select(ExecutionRecord).where(ExecutionRecord.command_id == command_id),
            ).one_or_none()
            if row is None:
                return None
            return to_utc_aware_datetime(row.executed_at)

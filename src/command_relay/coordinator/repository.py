"""Durable command store backed by SQLModel + SQLite."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any
from uuid import uuid4

from sqlalchemy import func, literal_column
from sqlalchemy import update as sa_update
from sqlmodel import Session, col, select

from command_relay.coordinator.models import (
    CLAIMABLE_STATUSES,
    CommandCreate,
    CommandDetails,
    CommandEventView,
    CommandStatus,
    CommandType,
    CommandView,
)
from command_relay.errors import (
    CommandNotFoundError,
    InvalidCommandStateError,
    OwnershipMismatchError,
)
from command_relay.storage.alembic_runner import upgrade_head
from command_relay.storage.common import (
    DEFAULT_BUSY_TIMEOUT_MS,
    build_sqlite_engine,
    to_db_datetime,
    to_utc_aware_datetime,
    utc_now,
)
from command_relay.storage.sqlmodel_models import Command, CommandEvent

logger = logging.getLogger(__name__)

_CLAIMABLE_VALUES = tuple(status.value for status in CLAIMABLE_STATUSES)
# Insertion order; breaks created_at ties so FIFO stays strict.
_INSERTION_ORDER = literal_column("commands.rowid")


class CommandRepository:
    """Command store with the three guarded lifecycle transitions."""

    def __init__(self, db_path: Path, *, busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=busy_timeout_ms)

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def init_schema(self) -> None:
        """Run schema migrations."""

        upgrade_head(self.db_path)

    def create_command(self, payload: CommandCreate) -> CommandView:
        """Insert a new PENDING command."""

        now = utc_now()
        command_id = payload.command_id or str(uuid4())
        command_type = CommandType(payload.type)
        with Session(self.engine) as session:
            row = Command(
                id=command_id,
                type=command_type.value,
                payload_json=_dump_json(payload.payload),
                status=CommandStatus.PENDING.value,
                result_json=None,
                agent_id=None,
                created_at=to_db_datetime(now),
                updated_at=to_db_datetime(now),
                assigned_at=None,
            )
            session.add(row)
            self._add_event(
                session=session,
                command_id=command_id,
                event_type="created",
                status_from=None,
                status_to=CommandStatus.PENDING,
                details={"type": command_type.value},
            )
            session.commit()
            session.refresh(row)
            return _to_command_view(row)

    def get_command(self, *, command_id: str) -> CommandView | None:
        with Session(self.engine) as session:
            row = session.exec(select(Command).where(Command.id == command_id)).one_or_none()
            if row is None:
                return None
            return _to_command_view(row)

    def list_commands(
        self,
        *,
        status: CommandStatus | None = None,
        limit: int | None = None,
    ) -> list[CommandView]:
        """List commands in creation order, optionally filtered by status."""

        with Session(self.engine) as session:
            statement = select(Command).order_by(
                col(Command.created_at).asc(),
                _INSERTION_ORDER.asc(),
            )
            if status is not None:
                statement = statement.where(Command.status == status.value)
            if limit is not None:
                statement = statement.limit(limit)
            rows = session.exec(statement).all()
            return [_to_command_view(row) for row in rows]

    def count_by_status(self) -> dict[CommandStatus, int]:
        counts = {status: 0 for status in CommandStatus}
        with Session(self.engine) as session:
            rows = session.exec(
                select(Command.status, func.count()).group_by(Command.status),
            ).all()
        for status, count in rows:
            counts[CommandStatus(status)] = int(count)
        return counts

    def claim_next_command(self, *, agent_id: str) -> CommandView | None:
        """Atomically bind the oldest PENDING/FAILED command to ``agent_id``.

        The candidate read and the bind are separated only by a guarded
        UPDATE: if another caller bound the candidate first, the UPDATE
        matches zero rows, the transaction rolls back and selection restarts.
        """

        while True:
            now = utc_now()
            with Session(self.engine) as session:
                candidate = session.exec(
                    select(Command)
                    .where(col(Command.status).in_(_CLAIMABLE_VALUES))
                    .order_by(col(Command.created_at).asc(), _INSERTION_ORDER.asc())
                    .limit(1),
                ).one_or_none()
                if candidate is None:
                    return None
                previous = CommandStatus(candidate.status)

                result = session.exec(
                    sa_update(Command)
                    .where(
                        col(Command.id) == candidate.id,
                        col(Command.status).in_(_CLAIMABLE_VALUES),
                    )
                    .values(
                        status=CommandStatus.RUNNING.value,
                        agent_id=agent_id,
                        assigned_at=to_db_datetime(now),
                        updated_at=to_db_datetime(now),
                    ),
                )
                if result.rowcount != 1:
                    session.rollback()
                    logger.debug(
                        "Lost claim race, retrying (command_id=%s agent_id=%s)",
                        candidate.id,
                        agent_id,
                    )
                    continue

                claimed = session.exec(
                    select(Command)
                    .where(Command.id == candidate.id)
                    .execution_options(populate_existing=True),
                ).one()
                self._add_event(
                    session=session,
                    command_id=claimed.id,
                    event_type="claimed",
                    status_from=previous,
                    status_to=CommandStatus.RUNNING,
                    details={"agent_id": agent_id},
                )
                session.commit()
                return _to_command_view(claimed)

    def complete_command(
        self,
        *,
        command_id: str,
        agent_id: str,
        result: dict[str, Any],
    ) -> CommandView:
        """Store the result of a RUNNING command owned by ``agent_id``.

        Raises, in precedence order, ``CommandNotFoundError``,
        ``InvalidCommandStateError`` or ``OwnershipMismatchError``; the row is
        untouched in every failure case.
        """

        while True:
            now = utc_now()
            with Session(self.engine) as session:
                row = session.exec(select(Command).where(Command.id == command_id)).one_or_none()
                if row is None:
                    raise CommandNotFoundError(command_id)
                if row.status != CommandStatus.RUNNING.value:
                    raise InvalidCommandStateError(command_id, row.status)
                if row.agent_id != agent_id:
                    raise OwnershipMismatchError(command_id, agent_id, row.agent_id)

                update = session.exec(
                    sa_update(Command)
                    .where(
                        col(Command.id) == command_id,
                        col(Command.status) == CommandStatus.RUNNING.value,
                        col(Command.agent_id) == agent_id,
                    )
                    .values(
                        status=CommandStatus.COMPLETED.value,
                        result_json=_dump_json(result),
                        updated_at=to_db_datetime(now),
                    ),
                )
                if update.rowcount != 1:
                    session.rollback()
                    continue

                self._add_event(
                    session=session,
                    command_id=command_id,
                    event_type="completed",
                    status_from=CommandStatus.RUNNING,
                    status_to=CommandStatus.COMPLETED,
                    details={"agent_id": agent_id},
                )
                session.commit()
                session.refresh(row)
                return _to_command_view(row)

    def reclaim_running_commands(self) -> list[str]:
        """Move every RUNNING command to FAILED in one bulk update.

        Clears ``agent_id`` and ``assigned_at``. Returns the reclaimed ids.
        """

        now = utc_now()
        with Session(self.engine) as session:
            result = session.exec(
                sa_update(Command)
                .where(col(Command.status) == CommandStatus.RUNNING.value)
                .values(
                    status=CommandStatus.FAILED.value,
                    agent_id=None,
                    assigned_at=None,
                    updated_at=to_db_datetime(now),
                )
                .returning(col(Command.id))
                .execution_options(synchronize_session=False),
            )
            reclaimed = [str(command_id) for command_id in result.scalars().all()]
            for command_id in reclaimed:
                self._add_event(
                    session=session,
                    command_id=command_id,
                    event_type="recovered",
                    status_from=CommandStatus.RUNNING,
                    status_to=CommandStatus.FAILED,
                    details={"reason": "coordinator_restart"},
                )
            session.commit()
        return reclaimed

    def get_command_details(self, *, command_id: str) -> CommandDetails | None:
        """Return command with its event stream."""

        with Session(self.engine) as session:
            row = session.exec(select(Command).where(Command.id == command_id)).one_or_none()
            if row is None:
                return None
            command = _to_command_view(row)
            event_rows = session.exec(
                select(CommandEvent)
                .where(CommandEvent.command_id == command_id)
                .order_by(col(CommandEvent.created_at).asc(), col(CommandEvent.id).asc()),
            ).all()

            events: list[CommandEventView] = []
            for event in event_rows:
                details: dict[str, Any] = {}
                if event.details_json:
                    parsed = json.loads(event.details_json)
                    if isinstance(parsed, dict):
                        details = parsed
                events.append(
                    CommandEventView(
                        event_id=event.id or 0,
                        command_id=event.command_id,
                        event_type=event.event_type,
                        status_from=(
                            CommandStatus(event.status_from)
                            if event.status_from is not None
                            else None
                        ),
                        status_to=(
                            CommandStatus(event.status_to) if event.status_to is not None else None
                        ),
                        created_at=to_utc_aware_datetime(event.created_at),
                        details=details,
                    ),
                )
        return CommandDetails(command=command, events=events)

    def _add_event(  # noqa: PLR0913
        self,
        *,
        session: Session,
        command_id: str,
        event_type: str,
        status_from: CommandStatus | None,
        status_to: CommandStatus | None,
        details: dict[str, object],
    ) -> None:
        session.add(
            CommandEvent(
                command_id=command_id,
                event_type=event_type,
                status_from=status_from.value if status_from is not None else None,
                status_to=status_to.value if status_to is not None else None,
                details_json=_dump_json(details) if details else None,
                created_at=to_db_datetime(utc_now()),
            ),
        )


def _dump_json(value: object) -> str:
    return json.dumps(value, ensure_ascii=False, sort_keys=True, allow_nan=False)


def _load_json_object(raw: str) -> dict[str, Any]:
    parsed = json.loads(raw)
    if not isinstance(parsed, dict):
        raise TypeError(f"Expected JSON object, got {type(parsed).__name__}")
    return parsed


def _to_command_view(row: Command) -> CommandView:
    return CommandView(
        id=row.id,
        type=CommandType(row.type),
        payload=_load_json_object(row.payload_json),
        status=CommandStatus(row.status),
        result=_load_json_object(row.result_json) if row.result_json is not None else None,
        agent_id=row.agent_id,
        created_at=to_utc_aware_datetime(row.created_at),
        updated_at=to_utc_aware_datetime(row.updated_at),
        assigned_at=(
            to_utc_aware_datetime(row.assigned_at) if row.assigned_at is not None else None
        ),
    )

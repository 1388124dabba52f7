"""CLI entrypoint for command-relay."""

import logging
import os
from pathlib import Path

import rich_click as click

from command_relay import __version__
from command_relay.config import Settings
from command_relay.agent.controllers import AgentCliController, AgentRunCommand
from command_relay.coordinator.controllers import (
    CommandInspectCommand,
    CommandListCommand,
    CommandSubmitCommand,
    CoordinatorCliController,
    CoordinatorRecoverCommand,
    CoordinatorServeCommand,
)
from command_relay.coordinator.models import CommandStatus, CommandType

click.rich_click.USE_MARKDOWN = True
_LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
COORDINATOR_CONTROLLER = CoordinatorCliController()
AGENT_CONTROLLER = AgentCliController()

_DB_PATH_OPTION = click.option(
    "--db-path",
    type=click.Path(path_type=Path),
    default=None,
    help="Coordinator SQLite DB path.",
)


@click.group()
@click.version_option(version=__version__, prog_name="command-relay")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Log level (defaults to COMMAND_RELAY_LOG_LEVEL or INFO).",
)
def command_relay(log_level: str | None) -> None:
    """Coordinator/agent command execution CLI."""

    settings = Settings.from_env()
    _configure_logging(log_level or settings.log_level, log_file=settings.log_file)


@command_relay.group()
def coordinator() -> None:
    """Coordinator service commands."""


@coordinator.command("serve")
@_DB_PATH_OPTION
@click.option("--host", default=None, help="Bind host (defaults to COMMAND_RELAY_HOST).")
@click.option(
    "--port",
    type=click.IntRange(min=1, max=65_535),
    default=None,
    help="Bind port (defaults to COMMAND_RELAY_PORT).",
)
def coordinator_serve(db_path: Path | None, host: str | None, port: int | None) -> None:
    """Run startup recovery, then serve the coordinator HTTP API."""

    COORDINATOR_CONTROLLER.serve(CoordinatorServeCommand(db_path=db_path, host=host, port=port))


@coordinator.command("recover")
@_DB_PATH_OPTION
def coordinator_recover(db_path: Path | None) -> None:
    """Mark every RUNNING command FAILED (run only while the service is down)."""

    _emit_lines(COORDINATOR_CONTROLLER.recover(CoordinatorRecoverCommand(db_path=db_path)))


@command_relay.group()
def commands() -> None:
    """Command store inspection and submission."""


@commands.command("submit")
@_DB_PATH_OPTION
@click.option(
    "--type",
    "command_type",
    type=click.Choice([item.value for item in CommandType], case_sensitive=False),
    required=True,
    help="Command type.",
)
@click.option(
    "--payload",
    "payload_json",
    required=True,
    help='JSON payload, e.g. \'{"ms": 100}\'.',
)
def commands_submit(db_path: Path | None, command_type: str, payload_json: str) -> None:
    """Insert a PENDING command."""

    _emit_lines(
        COORDINATOR_CONTROLLER.submit(
            CommandSubmitCommand(
                db_path=db_path,
                command_type=command_type,
                payload_json=payload_json,
            ),
        ),
    )


@commands.command("list")
@_DB_PATH_OPTION
@click.option(
    "--status",
    type=click.Choice([item.value for item in CommandStatus], case_sensitive=False),
    default=None,
    help="Optional status filter.",
)
def commands_list(db_path: Path | None, status: str | None) -> None:
    """List commands in creation order."""

    _emit_lines(
        COORDINATOR_CONTROLLER.list_commands(CommandListCommand(db_path=db_path, status=status)),
    )


@commands.command("show")
@_DB_PATH_OPTION
@click.argument("command_id")
def commands_show(db_path: Path | None, command_id: str) -> None:
    """Show one command with its event history."""

    _emit_lines(
        COORDINATOR_CONTROLLER.show(CommandInspectCommand(db_path=db_path, command_id=command_id)),
    )


@command_relay.group()
def agent() -> None:
    """Agent commands."""


@agent.command("run")
@click.option("--server-url", default=None, help="Coordinator base URL.")
@click.option("--agent-id", default=None, help="Agent id (defaults to agent-<uuid>).")
@click.option(
    "--poll-interval",
    "poll_interval_seconds",
    type=click.FloatRange(min=0.01),
    default=None,
    help="Seconds to sleep after an idle or failed cycle.",
)
@click.option(
    "--idempotency-db",
    "idempotency_db_path",
    type=click.Path(path_type=Path),
    default=None,
    help="Agent-local idempotency SQLite DB path.",
)
@click.option(
    "--kill-after",
    "kill_after_seconds",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Simulate a crash once the agent has run this many seconds.",
)
@click.option(
    "--random-failures",
    is_flag=True,
    default=False,
    help="Simulate a crash with 10% probability per cycle.",
)
@click.option(
    "--max-cycles",
    type=click.IntRange(min=1),
    default=None,
    help="Stop after this many poll cycles (default: run forever).",
)
def agent_run(  # noqa: PLR0913
    server_url: str | None,
    agent_id: str | None,
    poll_interval_seconds: float | None,
    idempotency_db_path: Path | None,
    kill_after_seconds: float | None,
    random_failures: bool,
    max_cycles: int | None,
) -> None:
    """Run the agent poll loop against a coordinator."""

    _emit_lines(
        AGENT_CONTROLLER.run(
            AgentRunCommand(
                server_url=server_url,
                agent_id=agent_id,
                poll_interval_seconds=poll_interval_seconds,
                idempotency_db_path=idempotency_db_path,
                kill_after_seconds=kill_after_seconds,
                random_failures=random_failures,
                max_cycles=max_cycles,
            ),
        ),
    )


def _configure_logging(level: str, log_file: Path | None = None) -> None:
    logging.basicConfig(level=level.upper(), format=_LOG_FORMAT)
    root = logging.getLogger()
    root.setLevel(level.upper())
    if log_file is None:
        return
    target = os.path.abspath(log_file)
    for handler in root.handlers:
        if isinstance(handler, logging.FileHandler) and handler.baseFilename == target:
            return
    log_file.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    root.addHandler(file_handler)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    command_relay()

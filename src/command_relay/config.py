"""Runtime configuration for coordinator and agent processes."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse
from uuid import uuid4


@dataclass(slots=True)
class CoordinatorSettings:
    """Coordinator service settings."""

    db_path: Path = Path("data/commands.db")
    host: str = "127.0.0.1"
    port: int = 3000
    busy_timeout_ms: int = 5_000
    cors_origins: tuple[str, ...] = ("*",)


@dataclass(slots=True)
class AgentSettings:
    """Agent poll-loop settings."""

    agent_id: str = field(default_factory=lambda: f"agent-{uuid4()}")
    server_url: str = "http://localhost:3000"
    poll_interval_seconds: float = 2.0
    idempotency_db_path: Path = Path("data/idempotency.db")
    request_timeout_seconds: float = 10.0
    http_executor_timeout_seconds: float = 30.0
    kill_after_seconds: float | None = None
    random_failures: bool = False


@dataclass(slots=True)
class Settings:
    """Application settings grouped by process role."""

    coordinator: CoordinatorSettings = field(default_factory=CoordinatorSettings)
    agent: AgentSettings = field(default_factory=AgentSettings)
    log_level: str = "INFO"
    log_file: Path | None = None

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        kill_after = os.getenv("COMMAND_RELAY_KILL_AFTER_SECONDS", "").strip()
        return cls(
            coordinator=CoordinatorSettings(
                db_path=db_path or Path(os.getenv("COMMAND_RELAY_DB_PATH", "data/commands.db")),
                host=os.getenv("COMMAND_RELAY_HOST", "127.0.0.1"),
                port=int(os.getenv("COMMAND_RELAY_PORT", "3000")),
                busy_timeout_ms=int(os.getenv("COMMAND_RELAY_BUSY_TIMEOUT_MS", "5000")),
                cors_origins=_env_list("COMMAND_RELAY_CORS_ORIGINS", default=("*",)),
            ),
            agent=AgentSettings(
                agent_id=os.getenv("COMMAND_RELAY_AGENT_ID", "").strip() or f"agent-{uuid4()}",
                server_url=os.getenv("COMMAND_RELAY_SERVER_URL", "http://localhost:3000"),
                poll_interval_seconds=float(
                    os.getenv("COMMAND_RELAY_POLL_INTERVAL_SECONDS", "2.0"),
                ),
                idempotency_db_path=Path(
                    os.getenv("COMMAND_RELAY_IDEMPOTENCY_DB_PATH", "data/idempotency.db"),
                ),
                request_timeout_seconds=float(
                    os.getenv("COMMAND_RELAY_REQUEST_TIMEOUT_SECONDS", "10.0"),
                ),
                http_executor_timeout_seconds=float(
                    os.getenv("COMMAND_RELAY_HTTP_EXECUTOR_TIMEOUT_SECONDS", "30.0"),
                ),
                kill_after_seconds=float(kill_after) if kill_after else None,
                random_failures=_env_bool("COMMAND_RELAY_RANDOM_FAILURES", default=False),
            ),
            log_level=os.getenv("COMMAND_RELAY_LOG_LEVEL", "INFO").upper(),
            log_file=_env_path("COMMAND_RELAY_LOG_FILE"),
        )

    def validate_for_coordinator(self) -> None:
        """Raise configuration error if coordinator settings are unusable."""

        if not 0 < self.coordinator.port < 65_536:
            raise ValueError("COMMAND_RELAY_PORT must be in 1..65535.")
        if self.coordinator.busy_timeout_ms <= 0:
            raise ValueError("COMMAND_RELAY_BUSY_TIMEOUT_MS must be > 0.")
        if not self.coordinator.cors_origins:
            raise ValueError("COMMAND_RELAY_CORS_ORIGINS must name at least one origin.")

    def validate_for_agent(self) -> None:
        """Raise configuration error if agent settings are unusable."""

        if not self.agent.agent_id.strip():
            raise ValueError("COMMAND_RELAY_AGENT_ID must not be blank.")
        parsed = urlparse(self.agent.server_url)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ValueError(
                f"Invalid COMMAND_RELAY_SERVER_URL: {self.agent.server_url!r}. "
                "Expected absolute http(s) URL.",
            )
        if self.agent.poll_interval_seconds <= 0:
            raise ValueError("COMMAND_RELAY_POLL_INTERVAL_SECONDS must be > 0.")
        if self.agent.request_timeout_seconds <= 0:
            raise ValueError("COMMAND_RELAY_REQUEST_TIMEOUT_SECONDS must be > 0.")
        if self.agent.http_executor_timeout_seconds <= 0:
            raise ValueError("COMMAND_RELAY_HTTP_EXECUTOR_TIMEOUT_SECONDS must be > 0.")
        if self.agent.kill_after_seconds is not None and self.agent.kill_after_seconds <= 0:
            raise ValueError("COMMAND_RELAY_KILL_AFTER_SECONDS must be > 0 when set.")


def _env_bool(name: str, *, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    normalized = raw.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean for {name}: {raw!r}")


def _env_list(name: str, *, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None:
        return default
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def _env_path(name: str) -> Path | None:
    raw = os.getenv(name, "").strip()
    return Path(raw) if raw else None

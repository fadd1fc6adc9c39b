"""Runtime configuration for the coordination daemons and CLI."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from mission_control.runtime.base import AgentProfile

DEFAULT_DB_URL = "sqlite:///.mission_control.db"

DEFAULT_ROSTER: tuple[AgentProfile, ...] = (
    AgentProfile(name="Jarvis", role="Squad Lead", session_key="agent:main:main"),
    AgentProfile(name="Shuri", role="Product Analyst", session_key="agent:product-analyst:main"),
    AgentProfile(name="Friday", role="Developer", session_key="agent:developer:main"),
)

_RUNTIME_KINDS = frozenset({"cli", "echo"})


@dataclass(slots=True)
class DatabaseSettings:
    url: str = DEFAULT_DB_URL
    busy_timeout_ms: int = 5_000


@dataclass(slots=True)
class ExecutionSettings:
    """Pause gate and step-log settings."""

    gate_poll_interval_seconds: float = 1.0
    gate_timeout_seconds: float = 30.0
    max_payload_chars: int = 1_000


@dataclass(slots=True)
class ChatSettings:
    poll_interval_seconds: float = 2.0
    correlation_window_ms: int = 1_000


@dataclass(slots=True)
class NotificationSettings:
    poll_interval_seconds: float = 2.0


@dataclass(slots=True)
class HeartbeatSettings:
    """Heartbeat cadence and workspace location."""

    interval_minutes: int = 60
    stagger_minutes: int = 2
    idle_sentinel: str = "HEARTBEAT_OK"
    workspace_root: Path = Path("workspace/agents")
    tick_seconds: float = 30.0


@dataclass(slots=True)
class RuntimeSettings:
    """Agent runtime selection."""

    kind: str = "echo"
    command_template: str = ""
    model: str = "default"
    timeout_seconds: int = 600
    graceful_shutdown_seconds: int = 5


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    execution: ExecutionSettings = field(default_factory=ExecutionSettings)
    chat: ChatSettings = field(default_factory=ChatSettings)
    notifications: NotificationSettings = field(default_factory=NotificationSettings)
    heartbeat: HeartbeatSettings = field(default_factory=HeartbeatSettings)
    runtime: RuntimeSettings = field(default_factory=RuntimeSettings)
    agents: tuple[AgentProfile, ...] = DEFAULT_ROSTER

    @classmethod
    def from_env(cls, db_url: str | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        return cls(
            database=DatabaseSettings(
                url=db_url or os.getenv("MISSION_CONTROL_DB_URL", DEFAULT_DB_URL),
                busy_timeout_ms=int(os.getenv("MISSION_CONTROL_DB_BUSY_TIMEOUT_MS", "5000")),
            ),
            execution=ExecutionSettings(
                gate_poll_interval_seconds=float(
                    os.getenv("MISSION_CONTROL_GATE_POLL_INTERVAL_SECONDS", "1.0"),
                ),
                gate_timeout_seconds=float(
                    os.getenv("MISSION_CONTROL_GATE_TIMEOUT_SECONDS", "30.0"),
                ),
                max_payload_chars=int(os.getenv("MISSION_CONTROL_MAX_PAYLOAD_CHARS", "1000")),
            ),
            chat=ChatSettings(
                poll_interval_seconds=float(
                    os.getenv("MISSION_CONTROL_CHAT_POLL_INTERVAL_SECONDS", "2.0"),
                ),
                correlation_window_ms=int(
                    os.getenv("MISSION_CONTROL_CHAT_CORRELATION_WINDOW_MS", "1000"),
                ),
            ),
            notifications=NotificationSettings(
                poll_interval_seconds=float(
                    os.getenv("MISSION_CONTROL_NOTIFICATION_POLL_INTERVAL_SECONDS", "2.0"),
                ),
            ),
            heartbeat=HeartbeatSettings(
                interval_minutes=int(os.getenv("MISSION_CONTROL_HEARTBEAT_INTERVAL_MINUTES", "60")),
                stagger_minutes=int(os.getenv("MISSION_CONTROL_HEARTBEAT_STAGGER_MINUTES", "2")),
                idle_sentinel=os.getenv("MISSION_CONTROL_HEARTBEAT_IDLE_SENTINEL", "HEARTBEAT_OK"),
                workspace_root=Path(
                    os.getenv("MISSION_CONTROL_WORKSPACE_ROOT", "workspace/agents"),
                ),
                tick_seconds=float(os.getenv("MISSION_CONTROL_HEARTBEAT_TICK_SECONDS", "30.0")),
            ),
            runtime=RuntimeSettings(
                kind=os.getenv("MISSION_CONTROL_RUNTIME", "echo").strip().lower(),
                command_template=os.getenv("MISSION_CONTROL_RUNTIME_COMMAND", ""),
                model=os.getenv("MISSION_CONTROL_RUNTIME_MODEL", "default"),
                timeout_seconds=int(os.getenv("MISSION_CONTROL_RUNTIME_TIMEOUT_SECONDS", "600")),
                graceful_shutdown_seconds=int(
                    os.getenv("MISSION_CONTROL_RUNTIME_GRACEFUL_SHUTDOWN_SECONDS", "5"),
                ),
            ),
            agents=_collect_agent_roster(),
        )

    def validate(self) -> None:
        """Raise configuration error for values the daemons cannot run with."""

        if not self.database.url.strip():
            raise ValueError("MISSION_CONTROL_DB_URL must not be empty.")
        if self.execution.gate_poll_interval_seconds <= 0:
            raise ValueError("MISSION_CONTROL_GATE_POLL_INTERVAL_SECONDS must be > 0.")
        if self.execution.gate_timeout_seconds <= 0:
            raise ValueError("MISSION_CONTROL_GATE_TIMEOUT_SECONDS must be > 0.")
        if self.execution.max_payload_chars <= 0:
            raise ValueError("MISSION_CONTROL_MAX_PAYLOAD_CHARS must be > 0.")
        if self.chat.poll_interval_seconds <= 0:
            raise ValueError("MISSION_CONTROL_CHAT_POLL_INTERVAL_SECONDS must be > 0.")
        if self.chat.correlation_window_ms <= 0:
            raise ValueError("MISSION_CONTROL_CHAT_CORRELATION_WINDOW_MS must be > 0.")
        if self.notifications.poll_interval_seconds <= 0:
            raise ValueError("MISSION_CONTROL_NOTIFICATION_POLL_INTERVAL_SECONDS must be > 0.")
        if self.heartbeat.interval_minutes <= 0:
            raise ValueError("MISSION_CONTROL_HEARTBEAT_INTERVAL_MINUTES must be > 0.")
        if self.heartbeat.stagger_minutes < 0:
            raise ValueError("MISSION_CONTROL_HEARTBEAT_STAGGER_MINUTES must be >= 0.")
        if not self.heartbeat.idle_sentinel.strip():
            raise ValueError("MISSION_CONTROL_HEARTBEAT_IDLE_SENTINEL must not be empty.")
        if self.runtime.kind not in _RUNTIME_KINDS:
            raise ValueError(
                f"Invalid MISSION_CONTROL_RUNTIME: {self.runtime.kind!r}. "
                f"Expected one of {sorted(_RUNTIME_KINDS)}.",
            )
        if self.runtime.kind == "cli" and not self.runtime.command_template.strip():
            raise ValueError("MISSION_CONTROL_RUNTIME_COMMAND is required for the cli runtime.")
        if self.runtime.timeout_seconds <= 0:
            raise ValueError("MISSION_CONTROL_RUNTIME_TIMEOUT_SECONDS must be > 0.")
        if self.runtime.graceful_shutdown_seconds < 0:
            raise ValueError("MISSION_CONTROL_RUNTIME_GRACEFUL_SHUTDOWN_SECONDS must be >= 0.")
        session_keys = [profile.session_key for profile in self.agents]
        if len(session_keys) != len(set(session_keys)):
            raise ValueError("MISSION_CONTROL_AGENTS contains duplicate session keys.")


def _collect_agent_roster() -> tuple[AgentProfile, ...]:
    raw = os.getenv("MISSION_CONTROL_AGENTS", "").strip()
    if not raw:
        return DEFAULT_ROSTER

    profiles: list[AgentProfile] = []
    for part in raw.split(","):
        token = part.strip()
        if not token:
            continue
        fields = [item.strip() for item in token.split("|")]
        if len(fields) not in (3, 4) or not all(fields[:3]):
            raise ValueError(
                "Invalid MISSION_CONTROL_AGENTS entry: "
                f"{token!r}. Expected format '<name>|<role>|<session_key>[|<model>]'.",
            )
        model = fields[3] if len(fields) == 4 and fields[3] else None  # noqa: PLR2004
        profiles.append(
            AgentProfile(name=fields[0], role=fields[1], session_key=fields[2], model=model),
        )
    return tuple(profiles)

"""Domain models shared by the store backends and the coordination layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from mission_control.storage.common import DEFAULT_TENANT_ID


class ExecutionState(str, Enum):
    """Per-task execution lifecycle, independent of the board status."""

    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class ActivityType(str, Enum):
    """Activity row types written by the coordination layer."""

    EXECUTION_STEP = "execution_step"
    EXECUTION_PAUSED = "execution_paused"
    EXECUTION_RESUMED = "execution_resumed"
    EXECUTION_INTERRUPTED = "execution_interrupted"
    MESSAGE_SENT = "message_sent"


class AgentStatus(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    BLOCKED = "blocked"


@dataclass(slots=True)
class AgentCreate:
    """Input payload for registering an agent."""

    name: str
    role: str
    session_key: str
    tenant_id: str = DEFAULT_TENANT_ID
    level: str = "specialist"
    agent_id: str | None = None


@dataclass(slots=True)
class AgentView:
    agent_id: str
    tenant_id: str
    name: str
    role: str
    session_key: str
    level: str
    status: AgentStatus
    current_task_id: str | None
    last_heartbeat_at: datetime | None
    created_at: datetime


@dataclass(slots=True)
class TaskCreate:
    """Input payload for creating a board task."""

    title: str
    description: str = ""
    tenant_id: str = DEFAULT_TENANT_ID
    status: str = "inbox"
    priority: str = "medium"
    task_id: str | None = None


@dataclass(slots=True)
class TaskView:
    """Readable task view; only the execution fields matter to the core."""

    task_id: str
    tenant_id: str
    title: str
    description: str
    status: str
    priority: str
    execution_state: ExecutionState
    execution_paused_at: datetime | None
    execution_resumed_at: datetime | None
    current_step_id: int | None
    created_at: datetime
    updated_at: datetime


@dataclass(slots=True)
class StepWrite:
    """Execution step insert; ``step_order`` is assigned by the store."""

    task_id: str
    tenant_id: str
    agent_id: str | None
    message: str
    originator: str
    step_status: StepStatus
    step_details: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class ActivityWrite:
    """Generic activity insert (pause/resume/interrupt markers, message events)."""

    type: ActivityType
    message: str
    task_id: str | None = None
    agent_id: str | None = None
    tenant_id: str = DEFAULT_TENANT_ID
    event_tag: str | None = None
    originator: str | None = None


@dataclass(slots=True)
class ActivityView:
    """Stored activity row; execution steps carry the ``step_*`` fields."""

    id: int
    type: str
    agent_id: str | None
    task_id: str | None
    tenant_id: str
    message: str
    event_tag: str | None
    originator: str | None
    step_status: StepStatus | None
    step_order: int | None
    step_details: dict[str, Any]
    created_at: datetime


@dataclass(slots=True)
class NotificationWrite:
    mentioned_agent_id: str
    content: str
    task_id: str | None = None
    tenant_id: str = DEFAULT_TENANT_ID
    source_message_id: int | None = None
    created_at: datetime | None = None


@dataclass(slots=True)
class NotificationView:
    id: int
    tenant_id: str
    mentioned_agent_id: str
    content: str
    task_id: str | None
    source_message_id: int | None
    delivered: bool
    delivered_at: datetime | None
    created_at: datetime

    @property
    def is_chat(self) -> bool:
        return self.task_id is None


@dataclass(slots=True)
class ThreadSubscriptionView:
    agent_id: str
    task_id: str
    subscribed_at: datetime


@dataclass(slots=True)
class TaskMessageWrite:
    task_id: str
    from_agent_id: str
    content: str
    mentions: tuple[str, ...] = ()
    created_at: datetime | None = None


@dataclass(slots=True)
class TaskMessageView:
    id: int
    task_id: str
    from_agent_id: str
    content: str
    mentions: tuple[str, ...]
    created_at: datetime


@dataclass(slots=True)
class ChatThreadCreate:
    """User-to-agent thread sets ``agent_id``; agent-to-agent sets participants."""

    tenant_id: str = DEFAULT_TENANT_ID
    agent_id: str | None = None
    participant_agent_ids: tuple[str, ...] = ()
    title: str | None = None
    thread_id: str | None = None


@dataclass(slots=True)
class ChatThreadView:
    thread_id: str
    tenant_id: str
    agent_id: str | None
    participant_agent_ids: tuple[str, ...]
    title: str | None
    created_at: datetime
    updated_at: datetime

    @property
    def is_agent_to_agent(self) -> bool:
        return self.agent_id is None and bool(self.participant_agent_ids)


@dataclass(slots=True)
class ChatMessageWrite:
    chat_thread_id: str
    content: str
    from_agent_id: str | None = None
    tenant_id: str = DEFAULT_TENANT_ID
    created_at: datetime | None = None


@dataclass(slots=True)
class ChatMessageView:
    id: int
    chat_thread_id: str
    tenant_id: str
    from_agent_id: str | None
    content: str
    created_at: datetime

    @property
    def is_human_authored(self) -> bool:
        return self.from_agent_id is None

"""Row store interface the coordination layer is written against."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import Any, Protocol

from mission_control.store.models import (
    ActivityView,
    ActivityWrite,
    AgentCreate,
    AgentStatus,
    AgentView,
    ChatMessageView,
    ChatMessageWrite,
    ChatThreadCreate,
    ChatThreadView,
    ExecutionState,
    NotificationView,
    NotificationWrite,
    StepStatus,
    StepWrite,
    TaskCreate,
    TaskMessageView,
    TaskMessageWrite,
    TaskView,
    ThreadSubscriptionView,
)


class RowStore(Protocol):
    """Typed CRUD over the coordination entities.

    Every mutating call is a single round-trip relying on the backend's own
    row-level atomicity; no call holds a lock across calls.
    """

    def init_schema(self) -> None: ...

    def close(self) -> None: ...

    # Agents
    def create_agent(self, payload: AgentCreate) -> AgentView: ...

    def get_agent(self, agent_id: str) -> AgentView | None: ...

    def get_agent_by_session_key(self, session_key: str) -> AgentView | None: ...

    def list_agents(self, *, tenant_id: str | None = None) -> list[AgentView]: ...

    def update_agent_status(
        self,
        agent_id: str,
        status: AgentStatus,
        *,
        current_task_id: str | None = None,
    ) -> AgentView | None: ...

    # Tasks
    def create_task(self, payload: TaskCreate) -> TaskView: ...

    def get_task(self, task_id: str) -> TaskView | None: ...

    def assign_task(self, task_id: str, agent_ids: Iterable[str]) -> None: ...

    def list_tasks_by_assignee(self, agent_id: str) -> list[TaskView]: ...

    def update_task_execution_state(
        self,
        task_id: str,
        state: ExecutionState,
        *,
        expected_states: Iterable[ExecutionState] | None = None,
        paused_at: datetime | None = None,
        resumed_at: datetime | None = None,
    ) -> bool:
        """Compare-and-set the execution state.

        With ``expected_states`` the write only applies when the stored state
        is one of them; without it the write is unconditional. Returns whether
        a row was updated.
        """

    def set_current_step(self, task_id: str, step_id: int) -> bool: ...

    # Execution steps and activities
    def next_step_order(self, task_id: str) -> int: ...

    def insert_step(self, payload: StepWrite) -> ActivityView:
        """Insert a step, assigning the next ``step_order`` for its task atomically."""

    def update_step(
        self,
        step_id: int,
        *,
        status: StepStatus,
        details_patch: dict[str, Any] | None = None,
    ) -> ActivityView | None: ...

    def get_step(self, step_id: int) -> ActivityView | None: ...

    def list_task_steps(self, task_id: str) -> list[ActivityView]: ...

    def insert_activity(self, payload: ActivityWrite) -> ActivityView: ...

    def list_task_activities(self, task_id: str) -> list[ActivityView]: ...

    # Notifications and subscriptions
    def insert_notification(self, payload: NotificationWrite) -> NotificationView: ...

    def mark_notification_delivered(self, notification_id: int) -> bool:
        """Flip ``delivered`` false -> true; returns False when already delivered."""

    def list_undelivered_notifications(
        self,
        agent_id: str,
        *,
        chat_only: bool = False,
        tenant_id: str | None = None,
    ) -> list[NotificationView]: ...

    def get_notification(self, notification_id: int) -> NotificationView | None: ...

    def list_thread_subscriptions(self, task_id: str) -> list[ThreadSubscriptionView]: ...

    def insert_thread_subscription_if_absent(self, agent_id: str, task_id: str) -> bool:
        """Returns True when a row was created, False when the pair already existed."""

    def insert_task_message(self, payload: TaskMessageWrite) -> TaskMessageView: ...

    # Chat
    def create_chat_thread(self, payload: ChatThreadCreate) -> ChatThreadView: ...

    def get_chat_thread(
        self,
        thread_id: str,
        *,
        tenant_id: str | None = None,
    ) -> ChatThreadView | None: ...

    def list_chat_threads_for_agent(
        self,
        agent_id: str,
        *,
        tenant_id: str | None = None,
    ) -> list[ChatThreadView]: ...

    def list_chat_messages(self, thread_id: str) -> list[ChatMessageView]: ...

    def insert_chat_message(self, payload: ChatMessageWrite) -> ChatMessageView: ...

"""In-memory row store for tests and single-process deployments."""

from __future__ import annotations

import threading
from collections.abc import Iterable
from dataclasses import replace
from datetime import datetime
from typing import Any
from uuid import uuid4

from mission_control.storage.common import to_utc_aware_datetime, utc_now
from mission_control.store.models import (
    ActivityType,
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
from mission_control.store.sql import validate_agent_create, validate_chat_thread_create


class MemoryRowStore:
    """Row store kept in process memory behind a single lock.

    Views handed out are copies, so callers never mutate stored rows.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._agents: dict[str, AgentView] = {}
        self._tasks: dict[str, TaskView] = {}
        self._assignees: dict[str, list[str]] = {}
        self._activities: dict[int, ActivityView] = {}
        self._notifications: dict[int, NotificationView] = {}
        self._subscriptions: dict[tuple[str, str], ThreadSubscriptionView] = {}
        self._task_messages: list[TaskMessageView] = []
        self._threads: dict[str, ChatThreadView] = {}
        self._chat_messages: dict[int, ChatMessageView] = {}
        self._next_id: dict[str, int] = {}

    def init_schema(self) -> None:
        return None

    def close(self) -> None:
        return None

    def _allocate_id(self, kind: str) -> int:
        value = self._next_id.get(kind, 0) + 1
        self._next_id[kind] = value
        return value

    # Agents

    def create_agent(self, payload: AgentCreate) -> AgentView:
        validate_agent_create(payload)
        with self._lock:
            if any(item.session_key == payload.session_key for item in self._agents.values()):
                raise ValueError(f"Agent session_key already registered: {payload.session_key}")
            view = AgentView(
                agent_id=payload.agent_id or str(uuid4()),
                tenant_id=payload.tenant_id,
                name=payload.name,
                role=payload.role,
                session_key=payload.session_key,
                level=payload.level,
                status=AgentStatus.IDLE,
                current_task_id=None,
                last_heartbeat_at=None,
                created_at=utc_now(),
            )
            self._agents[view.agent_id] = view
            return replace(view)

    def get_agent(self, agent_id: str) -> AgentView | None:
        with self._lock:
            view = self._agents.get(agent_id)
            return replace(view) if view is not None else None

    def get_agent_by_session_key(self, session_key: str) -> AgentView | None:
        with self._lock:
            for view in self._agents.values():
                if view.session_key == session_key:
                    return replace(view)
        return None

    def list_agents(self, *, tenant_id: str | None = None) -> list[AgentView]:
        with self._lock:
            views = [
                replace(view)
                for view in self._agents.values()
                if tenant_id is None or view.tenant_id == tenant_id
            ]
        return sorted(views, key=lambda item: item.name)

    def update_agent_status(
        self,
        agent_id: str,
        status: AgentStatus,
        *,
        current_task_id: str | None = None,
    ) -> AgentView | None:
        with self._lock:
            view = self._agents.get(agent_id)
            if view is None:
                return None
            view.status = status
            view.current_task_id = current_task_id
            view.last_heartbeat_at = utc_now()
            return replace(view)

    # Tasks

    def create_task(self, payload: TaskCreate) -> TaskView:
        now = utc_now()
        with self._lock:
            view = TaskView(
                task_id=payload.task_id or str(uuid4()),
                tenant_id=payload.tenant_id,
                title=payload.title,
                description=payload.description,
                status=payload.status,
                priority=payload.priority,
                execution_state=ExecutionState.IDLE,
                execution_paused_at=None,
                execution_resumed_at=None,
                current_step_id=None,
                created_at=now,
                updated_at=now,
            )
            self._tasks[view.task_id] = view
            return replace(view)

    def get_task(self, task_id: str) -> TaskView | None:
        with self._lock:
            view = self._tasks.get(task_id)
            return replace(view) if view is not None else None

    def assign_task(self, task_id: str, agent_ids: Iterable[str]) -> None:
        with self._lock:
            assigned = self._assignees.setdefault(task_id, [])
            for agent_id in agent_ids:
                if agent_id not in assigned:
                    assigned.append(agent_id)

    def list_tasks_by_assignee(self, agent_id: str) -> list[TaskView]:
        with self._lock:
            views = [
                replace(self._tasks[task_id])
                for task_id, assigned in self._assignees.items()
                if agent_id in assigned and task_id in self._tasks
            ]
        return sorted(views, key=lambda item: item.created_at)

    def update_task_execution_state(
        self,
        task_id: str,
        state: ExecutionState,
        *,
        expected_states: Iterable[ExecutionState] | None = None,
        paused_at: datetime | None = None,
        resumed_at: datetime | None = None,
    ) -> bool:
        expected = set(expected_states) if expected_states is not None else None
        with self._lock:
            view = self._tasks.get(task_id)
            if view is None:
                return False
            if expected is not None and view.execution_state not in expected:
                return False
            view.execution_state = state
            if paused_at is not None:
                view.execution_paused_at = to_utc_aware_datetime(paused_at)
            if resumed_at is not None:
                view.execution_resumed_at = to_utc_aware_datetime(resumed_at)
            view.updated_at = utc_now()
            return True

    def set_current_step(self, task_id: str, step_id: int) -> bool:
        with self._lock:
            view = self._tasks.get(task_id)
            if view is None:
                return False
            view.current_step_id = step_id
            view.updated_at = utc_now()
            return True

    # Execution steps and activities

    def _max_step_order(self, task_id: str) -> int:
        return max(
            (
                item.step_order or 0
                for item in self._activities.values()
                if item.task_id == task_id and item.type == ActivityType.EXECUTION_STEP.value
            ),
            default=0,
        )

    def next_step_order(self, task_id: str) -> int:
        with self._lock:
            return self._max_step_order(task_id) + 1

    def insert_step(self, payload: StepWrite) -> ActivityView:
        with self._lock:
            view = ActivityView(
                id=self._allocate_id("activity"),
                type=ActivityType.EXECUTION_STEP.value,
                agent_id=payload.agent_id,
                task_id=payload.task_id,
                tenant_id=payload.tenant_id,
                message=payload.message,
                event_tag="execution",
                originator=payload.originator,
                step_status=payload.step_status,
                step_order=self._max_step_order(payload.task_id) + 1,
                step_details=dict(payload.step_details),
                created_at=utc_now(),
            )
            self._activities[view.id] = view
            return _copy_activity(view)

    def update_step(
        self,
        step_id: int,
        *,
        status: StepStatus,
        details_patch: dict[str, Any] | None = None,
    ) -> ActivityView | None:
        with self._lock:
            view = self._activities.get(step_id)
            if view is None or view.type != ActivityType.EXECUTION_STEP.value:
                return None
            if details_patch:
                view.step_details = {**view.step_details, **details_patch}
            view.step_status = status
            return _copy_activity(view)

    def get_step(self, step_id: int) -> ActivityView | None:
        with self._lock:
            view = self._activities.get(step_id)
            if view is None or view.type != ActivityType.EXECUTION_STEP.value:
                return None
            return _copy_activity(view)

    def list_task_steps(self, task_id: str) -> list[ActivityView]:
        with self._lock:
            views = [
                _copy_activity(item)
                for item in self._activities.values()
                if item.task_id == task_id and item.type == ActivityType.EXECUTION_STEP.value
            ]
        return sorted(views, key=lambda item: item.step_order or 0)

    def insert_activity(self, payload: ActivityWrite) -> ActivityView:
        with self._lock:
            view = ActivityView(
                id=self._allocate_id("activity"),
                type=payload.type.value,
                agent_id=payload.agent_id,
                task_id=payload.task_id,
                tenant_id=payload.tenant_id,
                message=payload.message,
                event_tag=payload.event_tag,
                originator=payload.originator,
                step_status=None,
                step_order=None,
                step_details={},
                created_at=utc_now(),
            )
            self._activities[view.id] = view
            return _copy_activity(view)

    def list_task_activities(self, task_id: str) -> list[ActivityView]:
        with self._lock:
            views = [
                _copy_activity(item)
                for item in self._activities.values()
                if item.task_id == task_id
            ]
        return sorted(views, key=lambda item: (item.created_at, item.id))

    # Notifications and subscriptions

    def insert_notification(self, payload: NotificationWrite) -> NotificationView:
        with self._lock:
            view = NotificationView(
                id=self._allocate_id("notification"),
                tenant_id=payload.tenant_id,
                mentioned_agent_id=payload.mentioned_agent_id,
                content=payload.content,
                task_id=payload.task_id,
                source_message_id=payload.source_message_id,
                delivered=False,
                delivered_at=None,
                created_at=to_utc_aware_datetime(payload.created_at or utc_now()),
            )
            self._notifications[view.id] = view
            return replace(view)

    def mark_notification_delivered(self, notification_id: int) -> bool:
        with self._lock:
            view = self._notifications.get(notification_id)
            if view is None or view.delivered:
                return False
            view.delivered = True
            view.delivered_at = utc_now()
            return True

    def list_undelivered_notifications(
        self,
        agent_id: str,
        *,
        chat_only: bool = False,
        tenant_id: str | None = None,
    ) -> list[NotificationView]:
        with self._lock:
            views = [
                replace(item)
                for item in self._notifications.values()
                if item.mentioned_agent_id == agent_id
                and not item.delivered
                and (not chat_only or item.task_id is None)
                and (tenant_id is None or item.tenant_id == tenant_id)
            ]
        return sorted(views, key=lambda item: (item.created_at, item.id))

    def get_notification(self, notification_id: int) -> NotificationView | None:
        with self._lock:
            view = self._notifications.get(notification_id)
            return replace(view) if view is not None else None

    def list_thread_subscriptions(self, task_id: str) -> list[ThreadSubscriptionView]:
        with self._lock:
            views = [
                replace(item) for item in self._subscriptions.values() if item.task_id == task_id
            ]
        return sorted(views, key=lambda item: item.subscribed_at)

    def insert_thread_subscription_if_absent(self, agent_id: str, task_id: str) -> bool:
        with self._lock:
            if (agent_id, task_id) in self._subscriptions:
                return False
            self._subscriptions[(agent_id, task_id)] = ThreadSubscriptionView(
                agent_id=agent_id,
                task_id=task_id,
                subscribed_at=utc_now(),
            )
            return True

    def insert_task_message(self, payload: TaskMessageWrite) -> TaskMessageView:
        with self._lock:
            view = TaskMessageView(
                id=self._allocate_id("task_message"),
                task_id=payload.task_id,
                from_agent_id=payload.from_agent_id,
                content=payload.content,
                mentions=tuple(payload.mentions),
                created_at=to_utc_aware_datetime(payload.created_at or utc_now()),
            )
            self._task_messages.append(view)
            return replace(view)

    # Chat

    def create_chat_thread(self, payload: ChatThreadCreate) -> ChatThreadView:
        validate_chat_thread_create(payload)
        now = utc_now()
        with self._lock:
            view = ChatThreadView(
                thread_id=payload.thread_id or str(uuid4()),
                tenant_id=payload.tenant_id,
                agent_id=payload.agent_id,
                participant_agent_ids=tuple(payload.participant_agent_ids),
                title=payload.title,
                created_at=now,
                updated_at=now,
            )
            self._threads[view.thread_id] = view
            return replace(view)

    def get_chat_thread(
        self,
        thread_id: str,
        *,
        tenant_id: str | None = None,
    ) -> ChatThreadView | None:
        with self._lock:
            view = self._threads.get(thread_id)
            if view is None:
                return None
            if tenant_id is not None and view.tenant_id != tenant_id:
                return None
            return replace(view)

    def list_chat_threads_for_agent(
        self,
        agent_id: str,
        *,
        tenant_id: str | None = None,
    ) -> list[ChatThreadView]:
        with self._lock:
            views = [
                replace(item)
                for item in self._threads.values()
                if (item.agent_id == agent_id or agent_id in item.participant_agent_ids)
                and (tenant_id is None or item.tenant_id == tenant_id)
            ]
        return sorted(views, key=lambda item: item.created_at)

    def list_chat_messages(self, thread_id: str) -> list[ChatMessageView]:
        with self._lock:
            views = [
                replace(item)
                for item in self._chat_messages.values()
                if item.chat_thread_id == thread_id
            ]
        return sorted(views, key=lambda item: (item.created_at, item.id))

    def insert_chat_message(self, payload: ChatMessageWrite) -> ChatMessageView:
        with self._lock:
            thread = self._threads.get(payload.chat_thread_id)
            if thread is None:
                raise KeyError(f"Chat thread {payload.chat_thread_id} does not exist")
            view = ChatMessageView(
                id=self._allocate_id("chat_message"),
                chat_thread_id=payload.chat_thread_id,
                tenant_id=payload.tenant_id,
                from_agent_id=payload.from_agent_id,
                content=payload.content,
                created_at=to_utc_aware_datetime(payload.created_at or utc_now()),
            )
            self._chat_messages[view.id] = view
            thread.updated_at = view.created_at
            return replace(view)


def _copy_activity(view: ActivityView) -> ActivityView:
    return replace(view, step_details=dict(view.step_details))

"""Relational row store backed by SQLModel (SQLite locally, Postgres in deployment)."""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from datetime import datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import func
from sqlalchemy import update as sa_update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlmodel import Session, col, select

from mission_control.storage.alembic_runner import upgrade_head
from mission_control.storage.common import (
    build_engine,
    dump_json,
    load_json_list,
    load_json_object,
    optional_utc,
    to_db_datetime,
    to_utc_aware_datetime,
    utc_now,
)
from mission_control.storage.sqlmodel_models import (
    ActivityRow,
    AgentRow,
    ChatMessageRow,
    ChatThreadRow,
    NotificationRow,
    TaskAssigneeRow,
    TaskMessageRow,
    TaskRow,
    ThreadSubscriptionRow,
)
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

logger = logging.getLogger(__name__)

_STEP_ORDER_ATTEMPTS = 16
_STEP_ORDER_BACKOFF_SECONDS = 0.02


class SqlRowStore:
    """Row store facade backed by SQLModel + SQLAlchemy."""

    def __init__(self, db_url: str, *, busy_timeout_ms: int = 5000) -> None:
        self.db_url = db_url
        self.engine = build_engine(db_url, busy_timeout_ms=busy_timeout_ms)

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def init_schema(self) -> None:
        """Run schema migrations up to head."""

        upgrade_head(self.db_url)

    # Agents

    def create_agent(self, payload: AgentCreate) -> AgentView:
        validate_agent_create(payload)
        with Session(self.engine) as session:
            row = AgentRow(
                agent_id=payload.agent_id or str(uuid4()),
                tenant_id=payload.tenant_id,
                name=payload.name,
                role=payload.role,
                session_key=payload.session_key,
                level=payload.level,
                status=AgentStatus.IDLE.value,
                created_at=to_db_datetime(utc_now()),
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_agent_view(row)

    def get_agent(self, agent_id: str) -> AgentView | None:
        with Session(self.engine) as session:
            row = session.get(AgentRow, agent_id)
            return _to_agent_view(row) if row is not None else None

    def get_agent_by_session_key(self, session_key: str) -> AgentView | None:
        with Session(self.engine) as session:
            row = session.exec(
                select(AgentRow).where(col(AgentRow.session_key) == session_key),
            ).one_or_none()
            return _to_agent_view(row) if row is not None else None

    def list_agents(self, *, tenant_id: str | None = None) -> list[AgentView]:
        with Session(self.engine) as session:
            statement = select(AgentRow).order_by(col(AgentRow.name).asc())
            if tenant_id is not None:
                statement = statement.where(AgentRow.tenant_id == tenant_id)
            rows = session.exec(statement).all()
        return [_to_agent_view(row) for row in rows]

    def update_agent_status(
        self,
        agent_id: str,
        status: AgentStatus,
        *,
        current_task_id: str | None = None,
    ) -> AgentView | None:
        with Session(self.engine) as session:
            row = session.get(AgentRow, agent_id)
            if row is None:
                return None
            row.status = status.value
            row.current_task_id = current_task_id
            row.last_heartbeat_at = to_db_datetime(utc_now())
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_agent_view(row)

    # Tasks

    def create_task(self, payload: TaskCreate) -> TaskView:
        now = to_db_datetime(utc_now())
        with Session(self.engine) as session:
            row = TaskRow(
                task_id=payload.task_id or str(uuid4()),
                tenant_id=payload.tenant_id,
                title=payload.title,
                description=payload.description,
                status=payload.status,
                priority=payload.priority,
                execution_state=ExecutionState.IDLE.value,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_task_view(row)

    def get_task(self, task_id: str) -> TaskView | None:
        with Session(self.engine) as session:
            row = session.get(TaskRow, task_id)
            return _to_task_view(row) if row is not None else None

    def assign_task(self, task_id: str, agent_ids: Iterable[str]) -> None:
        now = to_db_datetime(utc_now())
        with Session(self.engine) as session:
            existing = set(
                session.exec(
                    select(TaskAssigneeRow.agent_id).where(
                        col(TaskAssigneeRow.task_id) == task_id,
                    ),
                ).all(),
            )
            for agent_id in dict.fromkeys(agent_ids):
                if agent_id in existing:
                    continue
                session.add(TaskAssigneeRow(task_id=task_id, agent_id=agent_id, assigned_at=now))
            session.commit()

    def list_tasks_by_assignee(self, agent_id: str) -> list[TaskView]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(TaskRow)
                .join(TaskAssigneeRow, col(TaskAssigneeRow.task_id) == col(TaskRow.task_id))
                .where(col(TaskAssigneeRow.agent_id) == agent_id)
                .order_by(col(TaskRow.created_at).asc()),
            ).all()
        return [_to_task_view(row) for row in rows]

    def update_task_execution_state(
        self,
        task_id: str,
        state: ExecutionState,
        *,
        expected_states: Iterable[ExecutionState] | None = None,
        paused_at: datetime | None = None,
        resumed_at: datetime | None = None,
    ) -> bool:
        now = to_db_datetime(utc_now())
        values: dict[str, Any] = {"execution_state": state.value, "updated_at": now}
        if paused_at is not None:
            values["execution_paused_at"] = to_db_datetime(paused_at)
        if resumed_at is not None:
            values["execution_resumed_at"] = to_db_datetime(resumed_at)

        statement = sa_update(TaskRow).where(col(TaskRow.task_id) == task_id)
        if expected_states is not None:
            statement = statement.where(
                col(TaskRow.execution_state).in_([item.value for item in expected_states]),
            )
        with Session(self.engine) as session:
            result = session.exec(statement.values(**values))
            if result.rowcount != 1:
                session.rollback()
                return False
            session.commit()
            return True

    def set_current_step(self, task_id: str, step_id: int) -> bool:
        with Session(self.engine) as session:
            result = session.exec(
                sa_update(TaskRow)
                .where(col(TaskRow.task_id) == task_id)
                .values(current_step_id=step_id, updated_at=to_db_datetime(utc_now())),
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            session.commit()
            return True

    # Execution steps and activities

    def next_step_order(self, task_id: str) -> int:
        with Session(self.engine) as session:
            return _current_max_step_order(session, task_id) + 1

    def insert_step(self, payload: StepWrite) -> ActivityView:
        """Insert a step with the next ``step_order`` for its task.

        The order is read from the current max inside the inserting
        transaction; the ``(task_id, step_order)`` unique constraint rejects a
        concurrent writer that picked the same number, and that writer retries
        against the new max. A locked database backs off before the next try.
        """

        for attempt in range(1, _STEP_ORDER_ATTEMPTS + 1):
            with Session(self.engine) as session:
                step_order = _current_max_step_order(session, payload.task_id) + 1
                row = ActivityRow(
                    type=ActivityType.EXECUTION_STEP.value,
                    agent_id=payload.agent_id,
                    task_id=payload.task_id,
                    tenant_id=payload.tenant_id,
                    message=payload.message,
                    event_tag="execution",
                    originator=payload.originator,
                    step_status=payload.step_status.value,
                    step_order=step_order,
                    step_details_json=dump_json(payload.step_details),
                    created_at=to_db_datetime(utc_now()),
                )
                session.add(row)
                try:
                    session.commit()
                except IntegrityError as error:
                    session.rollback()
                    logger.debug(
                        "Step order %s for task %s taken (attempt %s): %s",
                        step_order,
                        payload.task_id,
                        attempt,
                        error,
                    )
                    continue
                except OperationalError as error:
                    session.rollback()
                    logger.warning(
                        "Step insert for task %s hit %s (attempt %s), backing off",
                        payload.task_id,
                        error,
                        attempt,
                    )
                    time.sleep(_STEP_ORDER_BACKOFF_SECONDS * attempt)
                    continue
                session.refresh(row)
                return _to_activity_view(row)
        raise RuntimeError(
            f"Could not allocate step order for task {payload.task_id} "
            f"after {_STEP_ORDER_ATTEMPTS} attempts.",
        )

    def update_step(
        self,
        step_id: int,
        *,
        status: StepStatus,
        details_patch: dict[str, Any] | None = None,
    ) -> ActivityView | None:
        with Session(self.engine) as session:
            row = session.exec(
                select(ActivityRow).where(
                    col(ActivityRow.id) == step_id,
                    col(ActivityRow.type) == ActivityType.EXECUTION_STEP.value,
                ),
            ).one_or_none()
            if row is None:
                return None
            if details_patch:
                merged = load_json_object(row.step_details_json)
                merged.update(details_patch)
                row.step_details_json = dump_json(merged)
            row.step_status = status.value
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_activity_view(row)

    def get_step(self, step_id: int) -> ActivityView | None:
        with Session(self.engine) as session:
            row = session.exec(
                select(ActivityRow).where(
                    col(ActivityRow.id) == step_id,
                    col(ActivityRow.type) == ActivityType.EXECUTION_STEP.value,
                ),
            ).one_or_none()
            return _to_activity_view(row) if row is not None else None

    def list_task_steps(self, task_id: str) -> list[ActivityView]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(ActivityRow)
                .where(
                    col(ActivityRow.task_id) == task_id,
                    col(ActivityRow.type) == ActivityType.EXECUTION_STEP.value,
                )
                .order_by(col(ActivityRow.step_order).asc()),
            ).all()
        return [_to_activity_view(row) for row in rows]

    def insert_activity(self, payload: ActivityWrite) -> ActivityView:
        with Session(self.engine) as session:
            row = ActivityRow(
                type=payload.type.value,
                agent_id=payload.agent_id,
                task_id=payload.task_id,
                tenant_id=payload.tenant_id,
                message=payload.message,
                event_tag=payload.event_tag,
                originator=payload.originator,
                created_at=to_db_datetime(utc_now()),
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_activity_view(row)

    def list_task_activities(self, task_id: str) -> list[ActivityView]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(ActivityRow)
                .where(col(ActivityRow.task_id) == task_id)
                .order_by(col(ActivityRow.created_at).asc(), col(ActivityRow.id).asc()),
            ).all()
        return [_to_activity_view(row) for row in rows]

    # Notifications and subscriptions

    def insert_notification(self, payload: NotificationWrite) -> NotificationView:
        with Session(self.engine) as session:
            row = NotificationRow(
                tenant_id=payload.tenant_id,
                mentioned_agent_id=payload.mentioned_agent_id,
                content=payload.content,
                task_id=payload.task_id,
                source_message_id=payload.source_message_id,
                delivered=False,
                created_at=to_db_datetime(payload.created_at or utc_now()),
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_notification_view(row)

    def mark_notification_delivered(self, notification_id: int) -> bool:
        with Session(self.engine) as session:
            result = session.exec(
                sa_update(NotificationRow)
                .where(
                    col(NotificationRow.id) == notification_id,
                    col(NotificationRow.delivered).is_(False),
                )
                .values(delivered=True, delivered_at=to_db_datetime(utc_now())),
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            session.commit()
            return True

    def list_undelivered_notifications(
        self,
        agent_id: str,
        *,
        chat_only: bool = False,
        tenant_id: str | None = None,
    ) -> list[NotificationView]:
        with Session(self.engine) as session:
            statement = (
                select(NotificationRow)
                .where(
                    col(NotificationRow.mentioned_agent_id) == agent_id,
                    col(NotificationRow.delivered).is_(False),
                )
                .order_by(col(NotificationRow.created_at).asc(), col(NotificationRow.id).asc())
            )
            if chat_only:
                statement = statement.where(col(NotificationRow.task_id).is_(None))
            if tenant_id is not None:
                statement = statement.where(col(NotificationRow.tenant_id) == tenant_id)
            rows = session.exec(statement).all()
        return [_to_notification_view(row) for row in rows]

    def get_notification(self, notification_id: int) -> NotificationView | None:
        with Session(self.engine) as session:
            row = session.get(NotificationRow, notification_id)
            return _to_notification_view(row) if row is not None else None

    def list_thread_subscriptions(self, task_id: str) -> list[ThreadSubscriptionView]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(ThreadSubscriptionRow)
                .where(col(ThreadSubscriptionRow.task_id) == task_id)
                .order_by(col(ThreadSubscriptionRow.subscribed_at).asc()),
            ).all()
        return [
            ThreadSubscriptionView(
                agent_id=row.agent_id,
                task_id=row.task_id,
                subscribed_at=to_utc_aware_datetime(row.subscribed_at),
            )
            for row in rows
        ]

    def insert_thread_subscription_if_absent(self, agent_id: str, task_id: str) -> bool:
        with Session(self.engine) as session:
            existing = session.exec(
                select(ThreadSubscriptionRow).where(
                    col(ThreadSubscriptionRow.agent_id) == agent_id,
                    col(ThreadSubscriptionRow.task_id) == task_id,
                ),
            ).first()
            if existing is not None:
                return False
            session.add(
                ThreadSubscriptionRow(
                    agent_id=agent_id,
                    task_id=task_id,
                    subscribed_at=to_db_datetime(utc_now()),
                ),
            )
            try:
                session.commit()
            except IntegrityError:
                # Another worker subscribed the same pair between read and insert.
                session.rollback()
                return False
            return True

    def insert_task_message(self, payload: TaskMessageWrite) -> TaskMessageView:
        with Session(self.engine) as session:
            row = TaskMessageRow(
                task_id=payload.task_id,
                from_agent_id=payload.from_agent_id,
                content=payload.content,
                mentions_json=dump_json(list(payload.mentions)) if payload.mentions else None,
                created_at=to_db_datetime(payload.created_at or utc_now()),
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return TaskMessageView(
                id=row.id or 0,
                task_id=row.task_id,
                from_agent_id=row.from_agent_id,
                content=row.content,
                mentions=tuple(load_json_list(row.mentions_json)),
                created_at=to_utc_aware_datetime(row.created_at),
            )

    # Chat

    def create_chat_thread(self, payload: ChatThreadCreate) -> ChatThreadView:
        validate_chat_thread_create(payload)
        now = to_db_datetime(utc_now())
        with Session(self.engine) as session:
            row = ChatThreadRow(
                thread_id=payload.thread_id or str(uuid4()),
                tenant_id=payload.tenant_id,
                agent_id=payload.agent_id,
                participant_agent_ids_json=(
                    dump_json(list(payload.participant_agent_ids))
                    if payload.participant_agent_ids
                    else None
                ),
                title=payload.title,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_chat_thread_view(row)

    def get_chat_thread(
        self,
        thread_id: str,
        *,
        tenant_id: str | None = None,
    ) -> ChatThreadView | None:
        with Session(self.engine) as session:
            row = session.get(ChatThreadRow, thread_id)
            if row is None:
                return None
            if tenant_id is not None and row.tenant_id != tenant_id:
                return None
            return _to_chat_thread_view(row)

    def list_chat_threads_for_agent(
        self,
        agent_id: str,
        *,
        tenant_id: str | None = None,
    ) -> list[ChatThreadView]:
        with Session(self.engine) as session:
            statement = select(ChatThreadRow).where(
                (col(ChatThreadRow.agent_id) == agent_id)
                | col(ChatThreadRow.participant_agent_ids_json).is_not(None),
            )
            if tenant_id is not None:
                statement = statement.where(col(ChatThreadRow.tenant_id) == tenant_id)
            rows = session.exec(statement.order_by(col(ChatThreadRow.created_at).asc())).all()
        threads = [_to_chat_thread_view(row) for row in rows]
        # Participant membership lives in a JSON list; filter portably here.
        return [
            thread
            for thread in threads
            if thread.agent_id == agent_id or agent_id in thread.participant_agent_ids
        ]

    def list_chat_messages(self, thread_id: str) -> list[ChatMessageView]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(ChatMessageRow)
                .where(col(ChatMessageRow.chat_thread_id) == thread_id)
                .order_by(col(ChatMessageRow.created_at).asc(), col(ChatMessageRow.id).asc()),
            ).all()
        return [_to_chat_message_view(row) for row in rows]

    def insert_chat_message(self, payload: ChatMessageWrite) -> ChatMessageView:
        created_at = to_db_datetime(payload.created_at or utc_now())
        with Session(self.engine) as session:
            row = ChatMessageRow(
                chat_thread_id=payload.chat_thread_id,
                tenant_id=payload.tenant_id,
                from_agent_id=payload.from_agent_id,
                content=payload.content,
                created_at=created_at,
            )
            session.add(row)
            session.exec(
                sa_update(ChatThreadRow)
                .where(col(ChatThreadRow.thread_id) == payload.chat_thread_id)
                .values(updated_at=created_at),
            )
            session.commit()
            session.refresh(row)
            return _to_chat_message_view(row)


def validate_agent_create(payload: AgentCreate) -> None:
    if not payload.session_key.strip():
        raise ValueError("Agent session_key must not be empty.")
    if not payload.name.strip():
        raise ValueError("Agent name must not be empty.")


def validate_chat_thread_create(payload: ChatThreadCreate) -> None:
    if payload.agent_id is None and len(set(payload.participant_agent_ids)) < 2:  # noqa: PLR2004
        raise ValueError("Agent-to-agent threads require at least 2 participants.")


def _current_max_step_order(session: Session, task_id: str) -> int:
    current = session.exec(
        select(func.max(ActivityRow.step_order)).where(
            col(ActivityRow.task_id) == task_id,
            col(ActivityRow.type) == ActivityType.EXECUTION_STEP.value,
        ),
    ).one()
    return int(current or 0)


def _to_agent_view(row: AgentRow) -> AgentView:
    return AgentView(
        agent_id=row.agent_id,
        tenant_id=row.tenant_id,
        name=row.name,
        role=row.role,
        session_key=row.session_key,
        level=row.level,
        status=AgentStatus(row.status),
        current_task_id=row.current_task_id,
        last_heartbeat_at=optional_utc(row.last_heartbeat_at),
        created_at=to_utc_aware_datetime(row.created_at),
    )


def _to_task_view(row: TaskRow) -> TaskView:
    return TaskView(
        task_id=row.task_id,
        tenant_id=row.tenant_id,
        title=row.title,
        description=row.description,
        status=row.status,
        priority=row.priority,
        execution_state=ExecutionState(row.execution_state),
        execution_paused_at=optional_utc(row.execution_paused_at),
        execution_resumed_at=optional_utc(row.execution_resumed_at),
        current_step_id=row.current_step_id,
        created_at=to_utc_aware_datetime(row.created_at),
        updated_at=to_utc_aware_datetime(row.updated_at),
    )


def _to_activity_view(row: ActivityRow) -> ActivityView:
    return ActivityView(
        id=row.id or 0,
        type=row.type,
        agent_id=row.agent_id,
        task_id=row.task_id,
        tenant_id=row.tenant_id,
        message=row.message,
        event_tag=row.event_tag,
        originator=row.originator,
        step_status=StepStatus(row.step_status) if row.step_status is not None else None,
        step_order=row.step_order,
        step_details=load_json_object(row.step_details_json),
        created_at=to_utc_aware_datetime(row.created_at),
    )


def _to_notification_view(row: NotificationRow) -> NotificationView:
    return NotificationView(
        id=row.id or 0,
        tenant_id=row.tenant_id,
        mentioned_agent_id=row.mentioned_agent_id,
        content=row.content,
        task_id=row.task_id,
        source_message_id=row.source_message_id,
        delivered=bool(row.delivered),
        delivered_at=optional_utc(row.delivered_at),
        created_at=to_utc_aware_datetime(row.created_at),
    )


def _to_chat_thread_view(row: ChatThreadRow) -> ChatThreadView:
    return ChatThreadView(
        thread_id=row.thread_id,
        tenant_id=row.tenant_id,
        agent_id=row.agent_id,
        participant_agent_ids=tuple(load_json_list(row.participant_agent_ids_json)),
        title=row.title,
        created_at=to_utc_aware_datetime(row.created_at),
        updated_at=to_utc_aware_datetime(row.updated_at),
    )


def _to_chat_message_view(row: ChatMessageRow) -> ChatMessageView:
    return ChatMessageView(
        id=row.id or 0,
        chat_thread_id=row.chat_thread_id,
        tenant_id=row.tenant_id,
        from_agent_id=row.from_agent_id,
        content=row.content,
        created_at=to_utc_aware_datetime(row.created_at),
    )

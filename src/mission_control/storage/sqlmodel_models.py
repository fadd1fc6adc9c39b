"""SQLModel ORM tables for the coordination store."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Index,
    PrimaryKeyConstraint,
    Text,
    UniqueConstraint,
)
from sqlmodel import Field, SQLModel

from mission_control.storage.common import DEFAULT_TENANT_ID


class AgentRow(SQLModel, table=True):
    __tablename__ = "agents"  # type: ignore[bad-override]

    agent_id: str = Field(primary_key=True)
    tenant_id: str = Field(default=DEFAULT_TENANT_ID, index=True)
    name: str = Field(index=True)
    role: str
    session_key: str = Field(sa_column=Column(Text, nullable=False, unique=True))
    level: str = "specialist"
    status: str = Field(default="idle", index=True)
    current_task_id: str | None = None
    last_heartbeat_at: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class TaskRow(SQLModel, table=True):
    __tablename__ = "tasks"  # type: ignore[bad-override]

    task_id: str = Field(primary_key=True)
    tenant_id: str = Field(default=DEFAULT_TENANT_ID, index=True)
    title: str
    description: str = Field(default="", sa_column=Column(Text, nullable=False))
    status: str = Field(default="inbox", index=True)
    priority: str = "medium"
    execution_state: str = Field(default="idle", index=True)
    execution_paused_at: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
    execution_resumed_at: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
    current_step_id: int | None = None
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class TaskAssigneeRow(SQLModel, table=True):
    __tablename__ = "task_assignees"  # type: ignore[bad-override]
    __table_args__ = (PrimaryKeyConstraint("task_id", "agent_id", name="pk_task_assignees"),)

    task_id: str = Field(
        sa_column=Column(ForeignKey("tasks.task_id", ondelete="CASCADE"), nullable=False),
    )
    agent_id: str = Field(
        sa_column=Column(
            ForeignKey("agents.agent_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    assigned_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class ActivityRow(SQLModel, table=True):
    __tablename__ = "activities"  # type: ignore[bad-override]
    __table_args__ = (
        UniqueConstraint("task_id", "step_order", name="uq_activities_task_step_order"),
        Index("idx_activities_task_created", "task_id", "created_at"),
    )

    id: int | None = Field(default=None, primary_key=True)
    type: str = Field(index=True)
    agent_id: str | None = None
    task_id: str | None = Field(
        default=None,
        sa_column=Column(ForeignKey("tasks.task_id", ondelete="CASCADE"), nullable=True),
    )
    tenant_id: str = Field(default=DEFAULT_TENANT_ID, index=True)
    message: str = Field(sa_column=Column(Text, nullable=False))
    event_tag: str | None = None
    originator: str | None = None
    step_status: str | None = None
    step_order: int | None = None
    step_details_json: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class NotificationRow(SQLModel, table=True):
    __tablename__ = "notifications"  # type: ignore[bad-override]
    __table_args__ = (
        Index("idx_notifications_agent_delivered", "mentioned_agent_id", "delivered"),
    )

    id: int | None = Field(default=None, primary_key=True)
    tenant_id: str = Field(default=DEFAULT_TENANT_ID, index=True)
    mentioned_agent_id: str = Field(
        sa_column=Column(ForeignKey("agents.agent_id", ondelete="CASCADE"), nullable=False),
    )
    content: str = Field(sa_column=Column(Text, nullable=False))
    task_id: str | None = None
    source_message_id: int | None = None
    delivered: bool = False
    delivered_at: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class ThreadSubscriptionRow(SQLModel, table=True):
    __tablename__ = "thread_subscriptions"  # type: ignore[bad-override]
    __table_args__ = (
        UniqueConstraint("agent_id", "task_id", name="uq_thread_subscriptions_agent_task"),
    )

    id: int | None = Field(default=None, primary_key=True)
    agent_id: str = Field(
        sa_column=Column(ForeignKey("agents.agent_id", ondelete="CASCADE"), nullable=False),
    )
    task_id: str = Field(
        sa_column=Column(
            ForeignKey("tasks.task_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    subscribed_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class TaskMessageRow(SQLModel, table=True):
    __tablename__ = "task_messages"  # type: ignore[bad-override]

    id: int | None = Field(default=None, primary_key=True)
    task_id: str = Field(
        sa_column=Column(
            ForeignKey("tasks.task_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    from_agent_id: str
    content: str = Field(sa_column=Column(Text, nullable=False))
    mentions_json: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class ChatThreadRow(SQLModel, table=True):
    __tablename__ = "chat_threads"  # type: ignore[bad-override]

    thread_id: str = Field(primary_key=True)
    tenant_id: str = Field(default=DEFAULT_TENANT_ID, index=True)
    agent_id: str | None = Field(default=None, index=True)
    participant_agent_ids_json: str | None = Field(default=None, sa_column=Column(Text))
    title: str | None = None
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class ChatMessageRow(SQLModel, table=True):
    __tablename__ = "chat_messages"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_chat_messages_thread_created", "chat_thread_id", "created_at"),)

    id: int | None = Field(default=None, primary_key=True)
    chat_thread_id: str = Field(
        sa_column=Column(
            ForeignKey("chat_threads.thread_id", ondelete="CASCADE"),
            nullable=False,
        ),
    )
    tenant_id: str = Field(default=DEFAULT_TENANT_ID, index=True)
    from_agent_id: str | None = None
    content: str = Field(sa_column=Column(Text, nullable=False))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))

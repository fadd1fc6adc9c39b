"""Coordination baseline: agents, tasks, activities, notifications, chat."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261017_0001"
down_revision = None
branch_labels = None
depends_on = None

_DEFAULT_TENANT = "00000000-0000-0000-0000-000000000000"


def upgrade() -> None:
    op.create_table(
        "agents",
        sa.Column("agent_id", sa.String(), nullable=False),
        sa.Column("tenant_id", sa.String(), server_default=_DEFAULT_TENANT, nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("role", sa.String(), nullable=False),
        sa.Column("session_key", sa.Text(), nullable=False),
        sa.Column("level", sa.String(), server_default="specialist", nullable=False),
        sa.Column("status", sa.String(), server_default="idle", nullable=False),
        sa.Column("current_task_id", sa.String(), nullable=True),
        sa.Column("last_heartbeat_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("agent_id"),
        sa.UniqueConstraint("session_key"),
    )
    op.create_index("ix_agents_tenant_id", "agents", ["tenant_id"])
    op.create_index("ix_agents_name", "agents", ["name"])
    op.create_index("ix_agents_status", "agents", ["status"])

    op.create_table(
        "tasks",
        sa.Column("task_id", sa.String(), nullable=False),
        sa.Column("tenant_id", sa.String(), server_default=_DEFAULT_TENANT, nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("status", sa.String(), server_default="inbox", nullable=False),
        sa.Column("priority", sa.String(), server_default="medium", nullable=False),
        sa.Column("execution_state", sa.String(), server_default="idle", nullable=False),
        sa.Column("execution_paused_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("execution_resumed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("current_step_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("task_id"),
    )
    op.create_index("ix_tasks_tenant_id", "tasks", ["tenant_id"])
    op.create_index("ix_tasks_status", "tasks", ["status"])
    op.create_index("ix_tasks_execution_state", "tasks", ["execution_state"])

    op.create_table(
        "task_assignees",
        sa.Column("task_id", sa.String(), nullable=False),
        sa.Column("agent_id", sa.String(), nullable=False),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["task_id"], ["tasks.task_id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["agent_id"], ["agents.agent_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("task_id", "agent_id", name="pk_task_assignees"),
    )
    op.create_index("ix_task_assignees_agent_id", "task_assignees", ["agent_id"])

    op.create_table(
        "activities",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("agent_id", sa.String(), nullable=True),
        sa.Column("task_id", sa.String(), nullable=True),
        sa.Column("tenant_id", sa.String(), server_default=_DEFAULT_TENANT, nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("event_tag", sa.String(), nullable=True),
        sa.Column("originator", sa.String(), nullable=True),
        sa.Column("step_status", sa.String(), nullable=True),
        sa.Column("step_order", sa.Integer(), nullable=True),
        sa.Column("step_details_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["task_id"], ["tasks.task_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("task_id", "step_order", name="uq_activities_task_step_order"),
    )
    op.create_index("ix_activities_type", "activities", ["type"])
    op.create_index("ix_activities_tenant_id", "activities", ["tenant_id"])
    op.create_index("idx_activities_task_created", "activities", ["task_id", "created_at"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.String(), server_default=_DEFAULT_TENANT, nullable=False),
        sa.Column("mentioned_agent_id", sa.String(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("task_id", sa.String(), nullable=True),
        sa.Column("source_message_id", sa.Integer(), nullable=True),
        sa.Column("delivered", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["mentioned_agent_id"],
            ["agents.agent_id"],
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_notifications_tenant_id", "notifications", ["tenant_id"])
    op.create_index(
        "idx_notifications_agent_delivered",
        "notifications",
        ["mentioned_agent_id", "delivered"],
    )

    op.create_table(
        "thread_subscriptions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("agent_id", sa.String(), nullable=False),
        sa.Column("task_id", sa.String(), nullable=False),
        sa.Column("subscribed_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["agent_id"], ["agents.agent_id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["task_id"], ["tasks.task_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("agent_id", "task_id", name="uq_thread_subscriptions_agent_task"),
    )
    op.create_index("ix_thread_subscriptions_task_id", "thread_subscriptions", ["task_id"])

    op.create_table(
        "task_messages",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("task_id", sa.String(), nullable=False),
        sa.Column("from_agent_id", sa.String(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("mentions_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["task_id"], ["tasks.task_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_task_messages_task_id", "task_messages", ["task_id"])

    op.create_table(
        "chat_threads",
        sa.Column("thread_id", sa.String(), nullable=False),
        sa.Column("tenant_id", sa.String(), server_default=_DEFAULT_TENANT, nullable=False),
        sa.Column("agent_id", sa.String(), nullable=True),
        sa.Column("participant_agent_ids_json", sa.Text(), nullable=True),
        sa.Column("title", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("thread_id"),
    )
    op.create_index("ix_chat_threads_tenant_id", "chat_threads", ["tenant_id"])
    op.create_index("ix_chat_threads_agent_id", "chat_threads", ["agent_id"])

    op.create_table(
        "chat_messages",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("chat_thread_id", sa.String(), nullable=False),
        sa.Column("tenant_id", sa.String(), server_default=_DEFAULT_TENANT, nullable=False),
        sa.Column("from_agent_id", sa.String(), nullable=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["chat_thread_id"],
            ["chat_threads.thread_id"],
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_chat_messages_tenant_id", "chat_messages", ["tenant_id"])
    op.create_index(
        "idx_chat_messages_thread_created",
        "chat_messages",
        ["chat_thread_id", "created_at"],
    )


def downgrade() -> None:
    op.drop_table("chat_messages")
    op.drop_table("chat_threads")
    op.drop_table("task_messages")
    op.drop_table("thread_subscriptions")
    op.drop_table("notifications")
    op.drop_table("activities")
    op.drop_table("task_assignees")
    op.drop_table("tasks")
    op.drop_table("agents")

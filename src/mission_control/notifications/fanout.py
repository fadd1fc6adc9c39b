"""Recipient fan-out for task-thread and chat events, plus chat correlation."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import NamedTuple

from mission_control.execution.errors import NotFoundError
from mission_control.storage.common import utc_now
from mission_control.store.base import RowStore
from mission_control.store.models import (
    ActivityType,
    ActivityWrite,
    ChatMessageView,
    ChatMessageWrite,
    ChatThreadView,
    NotificationView,
    NotificationWrite,
    TaskMessageView,
    TaskMessageWrite,
)

logger = logging.getLogger(__name__)

DEFAULT_CORRELATION_WINDOW_MS = 1_000

_MENTION_PATTERN = re.compile(r"@([A-Za-z][\w-]*)")


class PendingChatMessage(NamedTuple):
    """Inbound chat message still owed a reply, with the notification that tracks it."""

    message: ChatMessageView
    thread: ChatThreadView
    notification: NotificationView


def extract_mention_names(content: str) -> list[str]:
    """Return ``@Name`` tokens in order of first appearance."""

    return list(dict.fromkeys(_MENTION_PATTERN.findall(content)))


class NotificationFanout:
    """Insert undelivered notifications for everyone an event should reach."""

    def __init__(
        self,
        store: RowStore,
        *,
        correlation_window_ms: int = DEFAULT_CORRELATION_WINDOW_MS,
    ) -> None:
        self.store = store
        self.correlation_window_ms = correlation_window_ms

    def notify_mentions(
        self,
        task_id: str,
        content: str,
        mentioned_agent_ids: Iterable[str],
        *,
        created_at: datetime | None = None,
    ) -> list[NotificationView]:
        tenant_id = self._task_tenant(task_id)
        return [
            self.store.insert_notification(
                NotificationWrite(
                    mentioned_agent_id=agent_id,
                    content=content,
                    task_id=task_id,
                    tenant_id=tenant_id,
                    created_at=created_at,
                ),
            )
            for agent_id in dict.fromkeys(mentioned_agent_ids)
        ]

    def notify_subscribers(
        self,
        task_id: str,
        content: str,
        exclude_agent_id: str | None = None,
        *,
        also_exclude: Iterable[str] = (),
        created_at: datetime | None = None,
    ) -> list[NotificationView]:
        tenant_id = self._task_tenant(task_id)
        excluded = set(also_exclude)
        if exclude_agent_id is not None:
            excluded.add(exclude_agent_id)
        return [
            self.store.insert_notification(
                NotificationWrite(
                    mentioned_agent_id=subscription.agent_id,
                    content=content,
                    task_id=task_id,
                    tenant_id=tenant_id,
                    created_at=created_at,
                ),
            )
            for subscription in self.store.list_thread_subscriptions(task_id)
            if subscription.agent_id not in excluded
        ]

    def auto_subscribe(self, agent_id: str, task_id: str) -> bool:
        """Subscribe ``agent_id`` to the task thread; an existing subscription is success."""

        return self.store.insert_thread_subscription_if_absent(agent_id, task_id)

    def resolve_mentions(self, names: Iterable[str], *, tenant_id: str) -> list[str]:
        """Map agent display names (case-insensitive) to agent ids within a tenant."""

        by_name = {
            agent.name.casefold(): agent.agent_id
            for agent in self.store.list_agents(tenant_id=tenant_id)
        }
        return [by_name[name.casefold()] for name in names if name.casefold() in by_name]

    def post_task_message(
        self,
        task_id: str,
        from_agent_id: str,
        content: str,
        mentions: Sequence[str] | None = None,
    ) -> TaskMessageView:
        """Post a comment to a task thread and fan it out.

        ``mentions`` are agent ids; when omitted they are parsed from
        ``@Name`` tokens in ``content``. Everything after the message insert
        is best-effort.
        """

        task = self.store.get_task(task_id)
        if task is None:
            raise NotFoundError("Task", task_id)
        if mentions is None:
            mentions = self.resolve_mentions(
                extract_mention_names(content),
                tenant_id=task.tenant_id,
            )
        mention_ids = tuple(dict.fromkeys(mentions))

        now = utc_now()
        message = self.store.insert_task_message(
            TaskMessageWrite(
                task_id=task_id,
                from_agent_id=from_agent_id,
                content=content,
                mentions=mention_ids,
                created_at=now,
            ),
        )

        try:
            author = self.store.get_agent(from_agent_id)
            self.store.insert_activity(
                ActivityWrite(
                    type=ActivityType.MESSAGE_SENT,
                    message=f"{author.name if author is not None else 'Agent'} commented on task",
                    task_id=task_id,
                    agent_id=from_agent_id,
                    tenant_id=task.tenant_id,
                ),
            )
        except Exception:  # noqa: BLE001
            logger.exception("Failed to record message activity for task %s", task_id)

        try:
            self.notify_mentions(task_id, content, mention_ids, created_at=now)
        except Exception:  # noqa: BLE001
            logger.exception("Failed to notify mentions on task %s", task_id)

        try:
            self.auto_subscribe(from_agent_id, task_id)
        except Exception:  # noqa: BLE001
            logger.exception("Failed to subscribe %s to task %s", from_agent_id, task_id)

        try:
            self.notify_subscribers(
                task_id,
                content,
                from_agent_id,
                also_exclude=mention_ids,
                created_at=now,
            )
        except Exception:  # noqa: BLE001
            logger.exception("Failed to notify subscribers of task %s", task_id)
        return message

    def post_chat_message(
        self,
        thread_id: str,
        content: str,
        from_agent_id: str | None = None,
    ) -> ChatMessageView:
        """Insert an inbound chat message and one chat notification per recipient.

        A human message in a user thread notifies the thread's agent. An
        agent message in an agent-to-agent thread notifies every other
        participant. Each notification carries the message id and the
        message's exact ``created_at``.
        """

        thread = self.store.get_chat_thread(thread_id)
        if thread is None:
            raise NotFoundError("Chat thread", thread_id)

        now = utc_now()
        message = self.store.insert_chat_message(
            ChatMessageWrite(
                chat_thread_id=thread_id,
                content=content,
                from_agent_id=from_agent_id,
                tenant_id=thread.tenant_id,
                created_at=now,
            ),
        )
        for recipient in _chat_recipients(thread, from_agent_id):
            try:
                self.store.insert_notification(
                    NotificationWrite(
                        mentioned_agent_id=recipient,
                        content=content,
                        task_id=None,
                        tenant_id=thread.tenant_id,
                        source_message_id=message.id,
                        created_at=message.created_at,
                    ),
                )
            except Exception:  # noqa: BLE001
                logger.exception(
                    "Failed to notify %s of chat message %s",
                    recipient,
                    message.id,
                )
        return message

    def find_unprocessed_chat_messages(
        self,
        agent_id: str,
        *,
        tenant_id: str | None = None,
    ) -> list[PendingChatMessage]:
        """Inbound chat messages for ``agent_id`` that still hold an undelivered notification.

        A notification linked through ``source_message_id`` matches only that
        message. Unlinked notifications fall back to equal content with
        ``created_at`` strictly inside the correlation window; the closest one
        wins and each notification pairs with at most one message. Results
        are in ascending ``created_at`` order.
        """

        notifications = self.store.list_undelivered_notifications(
            agent_id,
            chat_only=True,
            tenant_id=tenant_id,
        )
        if not notifications:
            return []

        inbound = sorted(
            self._inbound_messages(agent_id, tenant_id=tenant_id),
            key=lambda item: (item[0].created_at, item[0].id),
        )
        linked = {
            notification.source_message_id: notification
            for notification in notifications
            if notification.source_message_id is not None
        }
        unlinked = [item for item in notifications if item.source_message_id is None]
        used: set[int] = set()

        pending: list[PendingChatMessage] = []
        for message, thread in inbound:
            match = linked.get(message.id)
            if match is None:
                match = self._closest_unlinked(message, unlinked, used)
            if match is None:
                continue
            used.add(match.id)
            pending.append(PendingChatMessage(message=message, thread=thread, notification=match))
        return pending

    def _inbound_messages(
        self,
        agent_id: str,
        *,
        tenant_id: str | None,
    ) -> list[tuple[ChatMessageView, ChatThreadView]]:
        found: list[tuple[ChatMessageView, ChatThreadView]] = []
        for thread in self.store.list_chat_threads_for_agent(agent_id, tenant_id=tenant_id):
            user_thread = thread.agent_id == agent_id
            agent_thread = agent_id in thread.participant_agent_ids
            for message in self.store.list_chat_messages(thread.thread_id):
                if tenant_id is not None and message.tenant_id != tenant_id:
                    continue
                if user_thread and message.from_agent_id is None:
                    found.append((message, thread))
                elif agent_thread and message.from_agent_id not in (None, agent_id):
                    found.append((message, thread))
        return found

    def _closest_unlinked(
        self,
        message: ChatMessageView,
        candidates: Sequence[NotificationView],
        used: set[int],
    ) -> NotificationView | None:
        best: NotificationView | None = None
        best_gap_ms = float("inf")
        for notification in candidates:
            if notification.id in used or notification.content != message.content:
                continue
            gap_ms = abs((notification.created_at - message.created_at).total_seconds()) * 1000
            if gap_ms < self.correlation_window_ms and gap_ms < best_gap_ms:
                best = notification
                best_gap_ms = gap_ms
        return best

    def _task_tenant(self, task_id: str) -> str:
        task = self.store.get_task(task_id)
        if task is None:
            raise NotFoundError("Task", task_id)
        return task.tenant_id


def _chat_recipients(thread: ChatThreadView, from_agent_id: str | None) -> list[str]:
    if thread.agent_id is not None:
        if from_agent_id is None:
            return [thread.agent_id]
        return []
    if from_agent_id is None:
        return []
    return [agent_id for agent_id in thread.participant_agent_ids if agent_id != from_agent_id]

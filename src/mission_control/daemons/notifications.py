"""Generic delivery of task-thread notifications to agents."""

from __future__ import annotations

import logging

from mission_control.daemons.base import PollingDaemon, TickSummary
from mission_control.runtime.base import RuntimeHandle
from mission_control.runtime.factory import RuntimeFactory
from mission_control.store.base import RowStore
from mission_control.store.models import AgentView, NotificationView

logger = logging.getLogger(__name__)


def notification_prompt(notification: NotificationView) -> str:
    return f"You have a notification: {notification.content}"


class NotificationDaemon(PollingDaemon):
    """Deliver undelivered task notifications one agent turn at a time.

    Chat notifications (no ``task_id``) belong to the chat daemon and are
    left alone. A failed delivery stays undelivered for the next tick.
    """

    name = "notification-daemon"

    def __init__(
        self,
        *,
        store: RowStore,
        runtime_factory: RuntimeFactory,
        poll_interval_seconds: float = 2.0,
    ) -> None:
        super().__init__(poll_interval_seconds=poll_interval_seconds)
        self.store = store
        self.runtime_factory = runtime_factory

    def run_once(self) -> TickSummary:
        summary = TickSummary()
        for agent in self.store.list_agents():
            if self.stop_requested:
                break
            try:
                notifications = [
                    item
                    for item in self.store.list_undelivered_notifications(
                        agent.agent_id,
                        tenant_id=agent.tenant_id,
                    )
                    if not item.is_chat
                ]
            except Exception:  # noqa: BLE001
                logger.exception("Failed to load notifications for agent %s", agent.name)
                summary.failed += 1
                continue
            if notifications:
                self._deliver_for_agent(agent, notifications, summary)
        return summary

    def _deliver_for_agent(
        self,
        agent: AgentView,
        notifications: list[NotificationView],
        summary: TickSummary,
    ) -> None:
        handle: RuntimeHandle | None = None
        for notification in notifications:
            try:
                if handle is None:
                    handle = self.runtime_factory.build(
                        agent,
                        shutdown_requested=lambda: self.stop_requested,
                    )
                    if handle is None:
                        summary.skipped += len(notifications)
                        return
                self.runtime_factory.runtime.execute(handle, notification_prompt(notification))
            except Exception:  # noqa: BLE001
                logger.exception(
                    "Failed to deliver notification %s to %s",
                    notification.id,
                    agent.name,
                )
                summary.processed += 1
                summary.failed += 1
                continue
            self.store.mark_notification_delivered(notification.id)
            summary.processed += 1
            summary.succeeded += 1
            logger.info("Delivered notification %s to %s", notification.id, agent.name)

"""Chat delivery daemon: answer inbound chat messages on behalf of agents."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from mission_control.daemons.base import PollingDaemon, TickSummary
from mission_control.notifications.fanout import NotificationFanout, PendingChatMessage
from mission_control.runtime.base import ChatRole, ChatTurn
from mission_control.runtime.factory import RuntimeFactory
from mission_control.store.base import RowStore
from mission_control.store.models import AgentView, ChatMessageView, ChatMessageWrite

logger = logging.getLogger(__name__)


def build_history(
    messages: Sequence[ChatMessageView],
    *,
    agent_id: str,
    before: ChatMessageView,
) -> list[ChatTurn]:
    """Turns preceding ``before``, seen from ``agent_id``.

    The agent's own messages are ``assistant``; the operator and every other
    agent are ``human``.
    """

    cutoff = (before.created_at, before.id)
    return [
        ChatTurn(
            role=ChatRole.ASSISTANT if message.from_agent_id == agent_id else ChatRole.HUMAN,
            content=message.content,
        )
        for message in messages
        if (message.created_at, message.id) < cutoff
    ]


class ChatDaemon(PollingDaemon):
    """Poll for unprocessed chat messages per agent and post the agent's replies."""

    name = "chat-daemon"

    def __init__(
        self,
        *,
        store: RowStore,
        runtime_factory: RuntimeFactory,
        fanout: NotificationFanout | None = None,
        poll_interval_seconds: float = 2.0,
    ) -> None:
        super().__init__(poll_interval_seconds=poll_interval_seconds)
        self.store = store
        self.runtime_factory = runtime_factory
        self.fanout = fanout or NotificationFanout(store)

    def run_once(self) -> TickSummary:
        summary = TickSummary()
        for tenant_id, agents in _group_by_tenant(self.store.list_agents()).items():
            for agent in agents:
                if self.stop_requested:
                    return summary
                try:
                    pending = self.fanout.find_unprocessed_chat_messages(
                        agent.agent_id,
                        tenant_id=tenant_id,
                    )
                except Exception:  # noqa: BLE001
                    logger.exception("Failed to load chat messages for agent %s", agent.name)
                    summary.failed += 1
                    continue
                for item in pending:
                    self._process_one(agent, item, summary)
        return summary

    def process_message(self, agent: AgentView, pending: PendingChatMessage) -> ChatMessageView | None:
        """Reply to one message; ``None`` when the agent has no runtime profile."""

        handle = self.runtime_factory.build(
            agent,
            shutdown_requested=lambda: self.stop_requested,
        )
        if handle is None:
            return None

        message = pending.message
        history = build_history(
            self.store.list_chat_messages(message.chat_thread_id),
            agent_id=agent.agent_id,
            before=message,
        )
        reply = self.runtime_factory.runtime.execute(handle, message.content, history)
        saved = self.store.insert_chat_message(
            ChatMessageWrite(
                chat_thread_id=message.chat_thread_id,
                content=reply,
                from_agent_id=agent.agent_id,
                tenant_id=pending.thread.tenant_id,
            ),
        )
        if not self.store.mark_notification_delivered(pending.notification.id):
            logger.info(
                "Notification %s was already delivered by another worker",
                pending.notification.id,
            )
        return saved

    def _process_one(
        self,
        agent: AgentView,
        pending: PendingChatMessage,
        summary: TickSummary,
    ) -> None:
        try:
            saved = self.process_message(agent, pending)
        except Exception:  # noqa: BLE001
            logger.exception(
                "Agent %s failed to answer chat message %s",
                agent.name,
                pending.message.id,
            )
            summary.processed += 1
            summary.failed += 1
            return
        if saved is None:
            summary.skipped += 1
            return
        summary.processed += 1
        summary.succeeded += 1
        logger.info(
            "Agent %s replied in thread %s (message %s)",
            agent.name,
            pending.message.chat_thread_id,
            saved.id,
        )


def _group_by_tenant(agents: Sequence[AgentView]) -> dict[str, list[AgentView]]:
    grouped: dict[str, list[AgentView]] = {}
    for agent in agents:
        grouped.setdefault(agent.tenant_id, []).append(agent)
    return grouped

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime, timedelta

import allure
from conftest import JARVIS, ROSTER, SHURI, register

from mission_control.daemons.chat import ChatDaemon, build_history
from mission_control.notifications.fanout import NotificationFanout
from mission_control.runtime.base import ChatRole, ChatTurn, RuntimeHandle
from mission_control.runtime.echo import EchoRuntime
from mission_control.runtime.factory import RuntimeFactory
from mission_control.store.models import AgentCreate, ChatMessageView, ChatThreadCreate

pytestmark = [
    allure.epic("Notifications"),
    allure.feature("Chat Daemon"),
]


class _StopAwareRuntime(EchoRuntime):
    """Records whether the caller had asked to stop when each turn ran."""

    def __init__(self) -> None:
        super().__init__()
        self.stop_seen: list[bool] = []

    def execute(
        self,
        handle: RuntimeHandle,
        user_input: str,
        history: Sequence[ChatTurn] = (),
    ) -> str:
        requested = handle.shutdown_requested
        self.stop_seen.append(requested is not None and requested())
        return super().execute(handle, user_input, history)


def _daemon(store, runtime: EchoRuntime) -> ChatDaemon:
    return ChatDaemon(
        store=store,
        runtime_factory=RuntimeFactory(runtime, ROSTER),
        poll_interval_seconds=0.01,
    )


def test_build_history_maps_roles_from_agent_perspective() -> None:
    t0 = datetime(2026, 10, 17, 9, 0, tzinfo=UTC)
    messages = [
        ChatMessageView(1, "thread", "tenant", None, "hi", t0),
        ChatMessageView(2, "thread", "tenant", "jarvis", "hello", t0 + timedelta(seconds=1)),
        ChatMessageView(3, "thread", "tenant", "shuri", "me too", t0 + timedelta(seconds=2)),
        ChatMessageView(4, "thread", "tenant", None, "current", t0 + timedelta(seconds=3)),
        ChatMessageView(5, "thread", "tenant", None, "later", t0 + timedelta(seconds=4)),
    ]

    history = build_history(messages, agent_id="jarvis", before=messages[3])

    assert history == [
        ChatTurn(ChatRole.HUMAN, "hi"),
        ChatTurn(ChatRole.ASSISTANT, "hello"),
        ChatTurn(ChatRole.HUMAN, "me too"),
    ]


def test_daemon_replies_and_marks_notification_delivered(store) -> None:
    jarvis = register(store, JARVIS)
    thread = store.create_chat_thread(ChatThreadCreate(agent_id=jarvis.agent_id))
    NotificationFanout(store).post_chat_message(thread.thread_id, "Status?")
    runtime = EchoRuntime()
    daemon = _daemon(store, runtime)

    summary = daemon.run_once()

    assert (summary.processed, summary.succeeded, summary.failed) == (1, 1, 0)
    messages = store.list_chat_messages(thread.thread_id)
    assert [(item.from_agent_id, item.content) for item in messages] == [
        (None, "Status?"),
        (jarvis.agent_id, "Jarvis: Status?"),
    ]
    assert store.list_undelivered_notifications(jarvis.agent_id) == []
    assert daemon.run_once().processed == 0


def test_daemon_replays_prior_turns_as_history(store) -> None:
    jarvis = register(store, JARVIS)
    thread = store.create_chat_thread(ChatThreadCreate(agent_id=jarvis.agent_id))
    fanout = NotificationFanout(store)
    runtime = EchoRuntime()
    daemon = _daemon(store, runtime)
    fanout.post_chat_message(thread.thread_id, "one")
    daemon.run_once()

    fanout.post_chat_message(thread.thread_id, "two")
    daemon.run_once()

    assert runtime.calls[-1] == (
        JARVIS.session_key,
        "two",
        (ChatTurn(ChatRole.HUMAN, "one"), ChatTurn(ChatRole.ASSISTANT, "Jarvis: one")),
    )


def test_runtime_failure_leaves_message_for_next_tick(store) -> None:
    jarvis = register(store, JARVIS)
    thread = store.create_chat_thread(ChatThreadCreate(agent_id=jarvis.agent_id))
    NotificationFanout(store).post_chat_message(thread.thread_id, "Status?")

    summary = _daemon(store, EchoRuntime(fail_with="model down")).run_once()

    assert (summary.processed, summary.failed) == (1, 1)
    assert len(store.list_chat_messages(thread.thread_id)) == 1
    assert len(store.list_undelivered_notifications(jarvis.agent_id)) == 1

    retry = _daemon(store, EchoRuntime(reply="All green")).run_once()

    assert retry.succeeded == 1
    assert store.list_chat_messages(thread.thread_id)[-1].content == "All green"


def test_agent_without_runtime_profile_is_skipped(store) -> None:
    wong = store.create_agent(AgentCreate(name="Wong", role="Archivist", session_key="agent:wong"))
    thread = store.create_chat_thread(ChatThreadCreate(agent_id=wong.agent_id))
    NotificationFanout(store).post_chat_message(thread.thread_id, "Anyone?")

    summary = _daemon(store, EchoRuntime()).run_once()

    assert (summary.processed, summary.skipped) == (0, 1)
    assert len(store.list_undelivered_notifications(wong.agent_id)) == 1


def test_agent_to_agent_reply_does_not_ping_pong(store) -> None:
    jarvis = register(store, JARVIS)
    shuri = register(store, SHURI)
    thread = store.create_chat_thread(
        ChatThreadCreate(participant_agent_ids=(jarvis.agent_id, shuri.agent_id)),
    )
    NotificationFanout(store).post_chat_message(thread.thread_id, "Numbers ready?", jarvis.agent_id)
    runtime = EchoRuntime(reply="Yes, in the sheet")
    daemon = _daemon(store, runtime)

    first = daemon.run_once()
    second = daemon.run_once()

    assert first.succeeded == 1
    assert second.processed == 0
    assert [call[0] for call in runtime.calls] == [SHURI.session_key]
    assert store.list_chat_messages(thread.thread_id)[-1].from_agent_id == shuri.agent_id


def test_run_loop_stops_after_max_ticks(store) -> None:
    register(store, JARVIS)

    summary = _daemon(store, EchoRuntime()).run_loop(max_ticks=2)

    assert summary.ticks == 2
    assert summary.processed == 0


def test_runtime_sees_the_daemon_stop_flag(store) -> None:
    jarvis = register(store, JARVIS)
    thread = store.create_chat_thread(ChatThreadCreate(agent_id=jarvis.agent_id))
    fanout = NotificationFanout(store)
    runtime = _StopAwareRuntime()
    daemon = _daemon(store, runtime)
    fanout.post_chat_message(thread.thread_id, "one")
    daemon.run_once()

    fanout.post_chat_message(thread.thread_id, "two")
    daemon.request_stop()
    daemon.run_once()

    assert runtime.stop_seen == [False, True]

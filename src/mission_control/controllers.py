"""Controllers for mission-control CLI commands."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from mission_control.config import Settings
from mission_control.daemons.base import TickSummary
from mission_control.daemons.chat import ChatDaemon
from mission_control.daemons.heartbeat import HeartbeatScheduler, build_schedules
from mission_control.daemons.notifications import NotificationDaemon
from mission_control.execution.errors import NotFoundError
from mission_control.execution.executor import TaskExecutor
from mission_control.execution.pause_gate import PauseGate
from mission_control.execution.state_machine import ExecutionStateMachine
from mission_control.execution.step_logger import StepLogger
from mission_control.notifications.fanout import NotificationFanout
from mission_control.runtime.base import AgentProfile, AgentRuntime
from mission_control.runtime.cli_runtime import CliAgentRuntime
from mission_control.runtime.echo import EchoRuntime
from mission_control.runtime.factory import RuntimeFactory
from mission_control.store.models import (
    AgentCreate,
    ChatThreadCreate,
    TaskCreate,
    TaskView,
)
from mission_control.store.sql import SqlRowStore


@dataclass(slots=True)
class ExecutionCommand:
    """CLI input for a single execution transition."""

    db_url: str | None
    task_id: str
    agent: str | None = None
    reason: str | None = None
    result: str | None = None
    error: str | None = None


@dataclass(slots=True)
class ExecutionRunCommand:
    """CLI input for running an agent against a task."""

    db_url: str | None
    task_id: str
    agent: str
    prompt: str


@dataclass(slots=True)
class DaemonCommand:
    """CLI input for daemon execution."""

    db_url: str | None
    once: bool
    max_ticks: int | None


@dataclass(slots=True)
class TaskCreateCommand:
    db_url: str | None
    title: str
    description: str
    assignees: tuple[str, ...]


@dataclass(slots=True)
class TaskCommentCommand:
    """CLI input for posting to a task thread."""

    db_url: str | None
    task_id: str
    agent: str
    content: str


@dataclass(slots=True)
class ChatThreadCommand:
    """CLI input for chat thread creation.

    One agent makes a user thread; two or more make an agent-to-agent thread.
    """

    db_url: str | None
    agents: tuple[str, ...]
    title: str | None


@dataclass(slots=True)
class ChatSendCommand:
    db_url: str | None
    thread_id: str
    content: str
    agent: str | None


@dataclass(slots=True)
class AgentsCommand:
    db_url: str | None


class MissionControlCliController:
    """Coordinates execution, daemon and inspection CLI operations."""

    def transition(self, action: str, command: ExecutionCommand) -> list[str]:
        settings = Settings.from_env(db_url=command.db_url)
        with _store(settings) as store:
            machine = ExecutionStateMachine(
                store,
                StepLogger(store, max_payload_chars=settings.execution.max_payload_chars),
            )
            agent_id = _agent_id(store, command.agent)
            if action == "start":
                task = machine.start(command.task_id, agent_id=agent_id)
            elif action == "pause":
                task = machine.pause(command.task_id)
            elif action == "resume":
                task = machine.resume(command.task_id)
            elif action == "interrupt":
                task = machine.interrupt(command.task_id, command.reason)
            elif action == "complete":
                task = machine.complete(command.task_id, command.result, agent_id=agent_id)
            elif action == "fail":
                task = machine.fail(command.task_id, command.error or "failed", agent_id=agent_id)
            else:
                raise ValueError(f"Unsupported execution action: {action}")
        return [_task_line(task)]

    def run_task(self, command: ExecutionRunCommand) -> list[str]:
        settings = Settings.from_env(db_url=command.db_url)
        settings.validate()
        profile = _profile(settings, command.agent)
        with _store(settings) as store:
            executor = TaskExecutor(
                store=store,
                runtime=_runtime(settings),
                step_logger=StepLogger(store, max_payload_chars=settings.execution.max_payload_chars),
                pause_gate=PauseGate(
                    store,
                    poll_interval_seconds=settings.execution.gate_poll_interval_seconds,
                ),
                gate_timeout_seconds=settings.execution.gate_timeout_seconds,
            )
            reply = executor.execute(command.task_id, profile, command.prompt)
            task = store.get_task(command.task_id)
        lines = [f"Agent {profile.name} finished task {command.task_id}"]
        if task is not None:
            lines.append(_task_line(task))
        lines.append(reply)
        return lines

    def show(self, command: ExecutionCommand) -> list[str]:
        settings = Settings.from_env(db_url=command.db_url)
        with _store(settings) as store:
            task = store.get_task(command.task_id)
            if task is None:
                raise NotFoundError("Task", command.task_id)
            activities = store.list_task_activities(command.task_id)
        lines = [_task_line(task), f"Title: {task.title}"]
        lines.extend(
            f"  [{item.created_at.isoformat()}] {item.type} "
            f"{item.originator or '-'}: {item.message}"
            for item in activities
        )
        return lines

    def steps(self, command: ExecutionCommand) -> list[str]:
        settings = Settings.from_env(db_url=command.db_url)
        with _store(settings) as store:
            if store.get_task(command.task_id) is None:
                raise NotFoundError("Task", command.task_id)
            steps = StepLogger(store).list_steps(command.task_id)
        if not steps:
            return [f"No execution steps for task {command.task_id}"]
        return [
            f"#{step.step_order} {step.step_status.value if step.step_status else '-':<9} "
            f"{step.originator or '-'}: {step.message} {step.step_details or ''}".rstrip()
            for step in steps
        ]

    def run_chat_daemon(self, command: DaemonCommand) -> list[str]:
        settings = Settings.from_env(db_url=command.db_url)
        settings.validate()
        with _store(settings) as store:
            daemon = ChatDaemon(
                store=store,
                runtime_factory=_runtime_factory(settings),
                fanout=NotificationFanout(
                    store,
                    correlation_window_ms=settings.chat.correlation_window_ms,
                ),
                poll_interval_seconds=settings.chat.poll_interval_seconds,
            )
            summary = daemon.run_once() if command.once else daemon.run_loop(
                max_ticks=command.max_ticks,
            )
        return [_summary_line("Chat daemon", summary)]

    def run_notification_daemon(self, command: DaemonCommand) -> list[str]:
        settings = Settings.from_env(db_url=command.db_url)
        settings.validate()
        with _store(settings) as store:
            daemon = NotificationDaemon(
                store=store,
                runtime_factory=_runtime_factory(settings),
                poll_interval_seconds=settings.notifications.poll_interval_seconds,
            )
            summary = daemon.run_once() if command.once else daemon.run_loop(
                max_ticks=command.max_ticks,
            )
        return [_summary_line("Notification daemon", summary)]

    def run_heartbeat(self, command: DaemonCommand) -> list[str]:
        settings = Settings.from_env(db_url=command.db_url)
        settings.validate()
        with _store(settings) as store:
            scheduler = HeartbeatScheduler(
                store=store,
                runtime_factory=_runtime_factory(settings),
                schedules=build_schedules(
                    settings.agents,
                    interval_minutes=settings.heartbeat.interval_minutes,
                    stagger_minutes=settings.heartbeat.stagger_minutes,
                ),
                workspace_root=settings.heartbeat.workspace_root,
                idle_sentinel=settings.heartbeat.idle_sentinel,
                tick_seconds=settings.heartbeat.tick_seconds,
            )
            summary = scheduler.run_all() if command.once else scheduler.run_loop(
                max_ticks=command.max_ticks,
            )
        return [_summary_line("Heartbeat", summary)]

    def list_agents(self, command: AgentsCommand) -> list[str]:
        settings = Settings.from_env(db_url=command.db_url)
        with _store(settings) as store:
            agents = store.list_agents()
        if not agents:
            return ["No agents registered. Run `mission-control agents sync`."]
        return [
            f"{agent.name:<10} {agent.role:<16} {agent.status.value:<7} "
            f"{agent.session_key} id={agent.agent_id}"
            for agent in agents
        ]

    def sync_agents(self, command: AgentsCommand) -> list[str]:
        """Register roster agents missing from the store."""

        settings = Settings.from_env(db_url=command.db_url)
        settings.validate()
        lines: list[str] = []
        with _store(settings) as store:
            for profile in settings.agents:
                existing = store.get_agent_by_session_key(profile.session_key)
                if existing is not None:
                    lines.append(f"Agent exists: {existing.name} id={existing.agent_id}")
                    continue
                created = store.create_agent(
                    AgentCreate(
                        name=profile.name,
                        role=profile.role,
                        session_key=profile.session_key,
                    ),
                )
                lines.append(f"Agent registered: {created.name} id={created.agent_id}")
        return lines

    def create_task(self, command: TaskCreateCommand) -> list[str]:
        settings = Settings.from_env(db_url=command.db_url)
        with _store(settings) as store:
            assignee_ids = [_require_agent_id(store, key) for key in command.assignees]
            task = store.create_task(
                TaskCreate(title=command.title, description=command.description),
            )
            if assignee_ids:
                store.assign_task(task.task_id, assignee_ids)
        return [f"Task created: task_id={task.task_id} assignees={len(assignee_ids)}"]

    def comment(self, command: TaskCommentCommand) -> list[str]:
        settings = Settings.from_env(db_url=command.db_url)
        with _store(settings) as store:
            agent_id = _require_agent_id(store, command.agent)
            message = NotificationFanout(store).post_task_message(
                command.task_id,
                agent_id,
                command.content,
            )
        return [
            f"Message posted: id={message.id} task_id={message.task_id} "
            f"mentions={len(message.mentions)}",
        ]

    def create_chat_thread(self, command: ChatThreadCommand) -> list[str]:
        settings = Settings.from_env(db_url=command.db_url)
        with _store(settings) as store:
            agent_ids = tuple(_require_agent_id(store, key) for key in command.agents)
            if len(agent_ids) == 1:
                payload = ChatThreadCreate(agent_id=agent_ids[0], title=command.title)
            else:
                payload = ChatThreadCreate(participant_agent_ids=agent_ids, title=command.title)
            thread = store.create_chat_thread(payload)
        return [f"Chat thread created: thread_id={thread.thread_id}"]

    def send_chat(self, command: ChatSendCommand) -> list[str]:
        settings = Settings.from_env(db_url=command.db_url)
        with _store(settings) as store:
            from_agent_id = _agent_id(store, command.agent)
            message = NotificationFanout(store).post_chat_message(
                command.thread_id,
                command.content,
                from_agent_id,
            )
        return [f"Chat message sent: id={message.id} thread_id={message.chat_thread_id}"]


@contextmanager
def _store(settings: Settings) -> Iterator[SqlRowStore]:
    store = SqlRowStore(settings.database.url, busy_timeout_ms=settings.database.busy_timeout_ms)
    store.init_schema()
    try:
        yield store
    finally:
        store.close()


def _runtime(settings: Settings) -> AgentRuntime:
    if settings.runtime.kind == "cli":
        return CliAgentRuntime(
            command_template=settings.runtime.command_template,
            model=settings.runtime.model,
            timeout_seconds=settings.runtime.timeout_seconds,
            graceful_shutdown_seconds=settings.runtime.graceful_shutdown_seconds,
        )
    return EchoRuntime()


def _runtime_factory(settings: Settings) -> RuntimeFactory:
    return RuntimeFactory(
        _runtime(settings),
        settings.agents,
        workspace_root=settings.heartbeat.workspace_root,
    )


def _profile(settings: Settings, key: str) -> AgentProfile:
    for profile in settings.agents:
        if key in (profile.session_key, profile.name):
            return profile
    raise ValueError(f"Agent {key!r} is not in MISSION_CONTROL_AGENTS.")


def _agent_id(store: SqlRowStore, key: str | None) -> str | None:
    if key is None:
        return None
    return _require_agent_id(store, key)


def _require_agent_id(store: SqlRowStore, key: str) -> str:
    """Resolve an agent by session key, name or id."""

    agent = store.get_agent_by_session_key(key) or store.get_agent(key)
    if agent is None:
        agent = next(
            (item for item in store.list_agents() if item.name.casefold() == key.casefold()),
            None,
        )
    if agent is None:
        raise NotFoundError("Agent", key)
    return agent.agent_id


def _task_line(task: TaskView) -> str:
    return (
        f"Task {task.task_id}: execution={task.execution_state.value} "
        f"status={task.status} current_step={task.current_step_id or '-'}"
    )


def _summary_line(label: str, summary: TickSummary) -> str:
    return (
        f"{label} summary: ticks={max(summary.ticks, 1)} processed={summary.processed} "
        f"succeeded={summary.succeeded} failed={summary.failed} skipped={summary.skipped}"
    )

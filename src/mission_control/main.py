"""CLI entrypoint for mission-control."""

import logging
import os
from collections.abc import Callable

import rich_click as click

from mission_control import __version__
from mission_control.controllers import (
    AgentsCommand,
    ChatSendCommand,
    ChatThreadCommand,
    DaemonCommand,
    ExecutionCommand,
    ExecutionRunCommand,
    MissionControlCliController,
    TaskCommentCommand,
    TaskCreateCommand,
)
from mission_control.execution.errors import CoordinationError
from mission_control.runtime.base import AgentRuntimeError

click.rich_click.USE_MARKDOWN = True
CONTROLLER = MissionControlCliController()

_db_url_option = click.option(
    "--db-url",
    default=None,
    help="Database URL (defaults to MISSION_CONTROL_DB_URL).",
)


@click.group()
@click.version_option(version=__version__, prog_name="mission-control")
def mission_control() -> None:
    """Mission control: execution and notification coordination for agent squads."""

    logging.basicConfig(
        level=os.getenv("MISSION_CONTROL_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@mission_control.group()
def execution() -> None:
    """Per-task execution lifecycle."""


def _transition_command(action: str, help_text: str) -> None:
    @execution.command(action, help=help_text)
    @_db_url_option
    @click.argument("task_id")
    @click.option("--agent", default=None, help="Acting agent (session key, name or id).")
    @click.option("--reason", default=None, help="Interrupt reason.")
    @click.option("--result", default=None, help="Result snippet for complete.")
    @click.option("--error", default=None, help="Error message for fail.")
    def _command(  # noqa: PLR0913
        db_url: str | None,
        task_id: str,
        agent: str | None,
        reason: str | None,
        result: str | None,
        error: str | None,
    ) -> None:
        _run(
            lambda: CONTROLLER.transition(
                action,
                ExecutionCommand(
                    db_url=db_url,
                    task_id=task_id,
                    agent=agent,
                    reason=reason,
                    result=result,
                    error=error,
                ),
            ),
        )


_transition_command("start", "Move an idle task to running.")
_transition_command("pause", "Pause a running task (no-op when already paused).")
_transition_command("resume", "Resume a paused task.")
_transition_command("interrupt", "Force a task back to idle from any state.")
_transition_command("complete", "Mark a running task completed.")
_transition_command("fail", "Mark a running task failed.")


@execution.command("run")
@_db_url_option
@click.argument("task_id")
@click.option("--agent", required=True, help="Roster agent (session key or name).")
@click.option("--prompt", required=True, help="Prompt handed to the agent runtime.")
def execution_run(db_url: str | None, task_id: str, agent: str, prompt: str) -> None:
    """Run an agent against a task with pause/interrupt honored per tool call."""

    _run(
        lambda: CONTROLLER.run_task(
            ExecutionRunCommand(db_url=db_url, task_id=task_id, agent=agent, prompt=prompt),
        ),
    )


@execution.command("show")
@_db_url_option
@click.argument("task_id")
def execution_show(db_url: str | None, task_id: str) -> None:
    """Show execution state and activity history for a task."""

    _run(lambda: CONTROLLER.show(ExecutionCommand(db_url=db_url, task_id=task_id)))


@execution.command("steps")
@_db_url_option
@click.argument("task_id")
def execution_steps(db_url: str | None, task_id: str) -> None:
    """List execution steps for a task in step order."""

    _run(lambda: CONTROLLER.steps(ExecutionCommand(db_url=db_url, task_id=task_id)))


@mission_control.group()
def daemon() -> None:
    """Polling daemons."""


def _daemon_options(func: Callable[..., None]) -> Callable[..., None]:
    func = click.option(
        "--max-ticks",
        type=click.IntRange(min=1),
        default=None,
        help="Stop after this many ticks (default: run until SIGINT/SIGTERM).",
    )(func)
    func = click.option(
        "--once",
        is_flag=True,
        default=False,
        help="Run a single tick and exit.",
    )(func)
    return _db_url_option(func)


@daemon.command("chat")
@_daemon_options
def daemon_chat(db_url: str | None, once: bool, max_ticks: int | None) -> None:
    """Answer unprocessed chat messages on behalf of agents."""

    _run(
        lambda: CONTROLLER.run_chat_daemon(
            DaemonCommand(db_url=db_url, once=once, max_ticks=max_ticks),
        ),
    )


@daemon.command("notifications")
@_daemon_options
def daemon_notifications(db_url: str | None, once: bool, max_ticks: int | None) -> None:
    """Deliver undelivered task notifications to agents."""

    _run(
        lambda: CONTROLLER.run_notification_daemon(
            DaemonCommand(db_url=db_url, once=once, max_ticks=max_ticks),
        ),
    )


@daemon.command("heartbeat")
@_daemon_options
def daemon_heartbeat(db_url: str | None, once: bool, max_ticks: int | None) -> None:
    """Run staggered agent heartbeats (`--once` fires every agent now)."""

    _run(
        lambda: CONTROLLER.run_heartbeat(
            DaemonCommand(db_url=db_url, once=once, max_ticks=max_ticks),
        ),
    )


@mission_control.group()
def agents() -> None:
    """Agent roster."""


@agents.command("list")
@_db_url_option
def agents_list(db_url: str | None) -> None:
    """List registered agents and their status."""

    _run(lambda: CONTROLLER.list_agents(AgentsCommand(db_url=db_url)))


@agents.command("sync")
@_db_url_option
def agents_sync(db_url: str | None) -> None:
    """Register configured roster agents that are missing from the store."""

    _run(lambda: CONTROLLER.sync_agents(AgentsCommand(db_url=db_url)))


@mission_control.group()
def tasks() -> None:
    """Board tasks and task threads."""


@tasks.command("create")
@_db_url_option
@click.option("--title", required=True, help="Task title.")
@click.option("--description", default="", help="Task description.")
@click.option("--assign", "assignees", multiple=True, help="Assignee agent. Can be repeated.")
def tasks_create(
    db_url: str | None,
    title: str,
    description: str,
    assignees: tuple[str, ...],
) -> None:
    """Create a task and optionally assign agents."""

    _run(
        lambda: CONTROLLER.create_task(
            TaskCreateCommand(
                db_url=db_url,
                title=title,
                description=description,
                assignees=assignees,
            ),
        ),
    )


@tasks.command("comment")
@_db_url_option
@click.argument("task_id")
@click.option("--agent", required=True, help="Posting agent.")
@click.argument("content")
def tasks_comment(db_url: str | None, task_id: str, agent: str, content: str) -> None:
    """Post to a task thread; `@Name` mentions and subscribers are notified."""

    _run(
        lambda: CONTROLLER.comment(
            TaskCommentCommand(db_url=db_url, task_id=task_id, agent=agent, content=content),
        ),
    )


@mission_control.group()
def chat() -> None:
    """Chat threads."""


@chat.command("thread")
@_db_url_option
@click.option("--agent", "agent_keys", multiple=True, required=True, help="Agent. Repeat for agent-to-agent.")
@click.option("--title", default=None, help="Thread title.")
def chat_thread(db_url: str | None, agent_keys: tuple[str, ...], title: str | None) -> None:
    """Create a user thread (one agent) or an agent-to-agent thread (two or more)."""

    _run(
        lambda: CONTROLLER.create_chat_thread(
            ChatThreadCommand(db_url=db_url, agents=agent_keys, title=title),
        ),
    )


@chat.command("send")
@_db_url_option
@click.argument("thread_id")
@click.argument("content")
@click.option("--agent", default=None, help="Authoring agent (omit for the human operator).")
def chat_send(db_url: str | None, thread_id: str, content: str, agent: str | None) -> None:
    """Post a chat message and notify its recipients."""

    _run(
        lambda: CONTROLLER.send_chat(
            ChatSendCommand(db_url=db_url, thread_id=thread_id, content=content, agent=agent),
        ),
    )


def _run(action: Callable[[], list[str]]) -> None:
    try:
        lines = action()
    except (CoordinationError, AgentRuntimeError, ValueError) as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    mission_control()

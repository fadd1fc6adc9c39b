"""Staggered per-agent heartbeat: status digest in, idle/active classification out."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path

from mission_control.daemons.base import PollingDaemon, TickSummary
from mission_control.runtime.base import AgentProfile
from mission_control.runtime.factory import RuntimeFactory, agent_workspace_path
from mission_control.storage.common import utc_now
from mission_control.store.base import RowStore
from mission_control.store.models import AgentStatus, AgentView, NotificationView, TaskView

logger = logging.getLogger(__name__)

DEFAULT_IDLE_SENTINEL = "HEARTBEAT_OK"

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
_NO_TASK_MARKER = "None"


@dataclass(slots=True, frozen=True)
class HeartbeatSchedule:
    """Fire every ``interval_minutes`` at ``offset_minutes`` past each slot boundary."""

    profile: AgentProfile
    interval_minutes: int = 60
    offset_minutes: int = 0

    def next_fire_after(self, now: datetime) -> datetime:
        """First firing time strictly after ``now``."""

        interval = timedelta(minutes=self.interval_minutes)
        anchor = _EPOCH + timedelta(minutes=self.offset_minutes)
        slots_elapsed = (now.astimezone(UTC) - anchor) // interval
        return anchor + (slots_elapsed + 1) * interval


@dataclass(slots=True)
class HeartbeatOutcome:
    agent_id: str
    status: AgentStatus
    delivered: int
    response: str


def build_schedules(
    profiles: Sequence[AgentProfile],
    *,
    interval_minutes: int = 60,
    stagger_minutes: int = 2,
) -> list[HeartbeatSchedule]:
    """One schedule per profile, each offset ``stagger_minutes`` after the previous."""

    return [
        HeartbeatSchedule(
            profile=profile,
            interval_minutes=interval_minutes,
            offset_minutes=(index * stagger_minutes) % interval_minutes,
        )
        for index, profile in enumerate(profiles)
    ]


def load_working_note(workspace_root: Path, agent_name: str) -> str:
    path = agent_workspace_path(workspace_root, agent_name) / "memory" / "WORKING.md"
    try:
        return path.read_text("utf-8")
    except FileNotFoundError:
        return ""


def build_heartbeat_prompt(  # noqa: PLR0913
    *,
    agent_name: str,
    agent_role: str,
    working_note: str,
    notifications: Sequence[NotificationView],
    tasks: Sequence[TaskView],
    idle_sentinel: str = DEFAULT_IDLE_SENTINEL,
) -> str:
    note_has_task = _NO_TASK_MARKER not in working_note
    prompt = (
        f"You are {agent_name}, the {agent_role}. "
        "Check Mission Control for new tasks and notifications.\n\n"
    )
    if working_note and note_has_task:
        prompt += f"Current task state:\n{working_note}\n\n"
    if notifications:
        prompt += f"You have {len(notifications)} new notification(s). "
        prompt += "\n".join(item.content for item in notifications)
        prompt += "\n\n"
    if tasks:
        prompt += f"You have {len(tasks)} assigned task(s). "
        prompt += "Review them and start working if needed.\n\n"
    if note_has_task or notifications or tasks:
        prompt += f"Take action on the above. Otherwise, reply with {idle_sentinel}."
    else:
        prompt += f"If there's no work, reply with {idle_sentinel}."
    return prompt


class HeartbeatScheduler(PollingDaemon):
    """Drive each agent through its heartbeat on a staggered fixed cadence.

    Every notification fetched for a heartbeat is marked delivered after the
    run, with no per-message correlation.
    """

    name = "heartbeat"

    def __init__(  # noqa: PLR0913
        self,
        *,
        store: RowStore,
        runtime_factory: RuntimeFactory,
        schedules: Sequence[HeartbeatSchedule],
        workspace_root: Path,
        idle_sentinel: str = DEFAULT_IDLE_SENTINEL,
        tick_seconds: float = 30.0,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        super().__init__(poll_interval_seconds=tick_seconds)
        self.store = store
        self.runtime_factory = runtime_factory
        self.schedules = list(schedules)
        self.workspace_root = workspace_root
        self.idle_sentinel = idle_sentinel
        self._clock = clock
        self._next_fire: dict[str, datetime] = {}

    def next_fire_times(self) -> dict[str, datetime]:
        return dict(self._next_fire)

    def run_once(self) -> TickSummary:
        return self.run_due(self._clock())

    def run_due(self, now: datetime) -> TickSummary:
        """Fire every schedule whose slot has been reached by ``now``.

        The first observation only arms the schedule for its next slot.
        """

        summary = TickSummary()
        for schedule in self.schedules:
            key = schedule.profile.session_key
            due_at = self._next_fire.get(key)
            if due_at is None:
                self._next_fire[key] = schedule.next_fire_after(now)
                continue
            if now < due_at:
                continue
            self._next_fire[key] = schedule.next_fire_after(now)
            self._fire(schedule.profile, summary)
        return summary

    def run_all(self) -> TickSummary:
        """Fire every schedule immediately, regardless of its slot."""

        summary = TickSummary()
        for schedule in self.schedules:
            self._fire(schedule.profile, summary)
        return summary

    def beat(self, profile: AgentProfile) -> HeartbeatOutcome | None:
        """Run one heartbeat for ``profile``; ``None`` when the agent is not registered."""

        agent = self.store.get_agent_by_session_key(profile.session_key)
        if agent is None:
            logger.info("Agent %s not found in store, skipping heartbeat", profile.name)
            return None
        handle = self.runtime_factory.build(
            agent,
            shutdown_requested=lambda: self.stop_requested,
        )
        if handle is None:
            return None

        notifications = self.store.list_undelivered_notifications(agent.agent_id)
        tasks = self.store.list_tasks_by_assignee(agent.agent_id)
        prompt = build_heartbeat_prompt(
            agent_name=profile.name,
            agent_role=agent.role,
            working_note=load_working_note(self.workspace_root, profile.name),
            notifications=notifications,
            tasks=tasks,
            idle_sentinel=self.idle_sentinel,
        )
        response = self.runtime_factory.runtime.execute(handle, prompt)

        status = AgentStatus.IDLE if self.idle_sentinel in response else AgentStatus.ACTIVE
        self.store.update_agent_status(
            agent.agent_id,
            status,
            current_task_id=agent.current_task_id,
        )
        delivered = self._mark_all_delivered(agent, notifications)
        logger.info(
            "Heartbeat complete: %s -> %s (%d notification(s) delivered): %s",
            profile.name,
            status.value,
            delivered,
            response[:100],
        )
        return HeartbeatOutcome(
            agent_id=agent.agent_id,
            status=status,
            delivered=delivered,
            response=response,
        )

    def _fire(self, profile: AgentProfile, summary: TickSummary) -> None:
        logger.info("Heartbeat: %s", profile.name)
        try:
            outcome = self.beat(profile)
        except Exception:  # noqa: BLE001
            logger.exception("Heartbeat error for %s", profile.name)
            summary.processed += 1
            summary.failed += 1
            return
        if outcome is None:
            summary.skipped += 1
            return
        summary.processed += 1
        summary.succeeded += 1

    def _mark_all_delivered(
        self,
        agent: AgentView,
        notifications: Sequence[NotificationView],
    ) -> int:
        delivered = 0
        for notification in notifications:
            if self.store.mark_notification_delivered(notification.id):
                delivered += 1
        if delivered != len(notifications):
            logger.debug(
                "%d notification(s) for %s were already delivered elsewhere",
                len(notifications) - delivered,
                agent.name,
            )
        return delivered

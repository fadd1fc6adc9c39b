"""Polling daemons: chat delivery, notification delivery, heartbeat."""

from mission_control.daemons.base import PollingDaemon, TickSummary
from mission_control.daemons.chat import ChatDaemon
from mission_control.daemons.heartbeat import HeartbeatScheduler, HeartbeatSchedule
from mission_control.daemons.notifications import NotificationDaemon

__all__ = [
    "ChatDaemon",
    "HeartbeatSchedule",
    "HeartbeatScheduler",
    "NotificationDaemon",
    "PollingDaemon",
    "TickSummary",
]

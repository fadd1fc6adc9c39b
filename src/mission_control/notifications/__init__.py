"""Notification fan-out and chat message correlation."""

from mission_control.notifications.fanout import (
    NotificationFanout,
    PendingChatMessage,
    extract_mention_names,
)

__all__ = ["NotificationFanout", "PendingChatMessage", "extract_mention_names"]

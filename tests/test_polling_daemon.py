from __future__ import annotations

import allure
import pytest

from mission_control.daemons.base import PollingDaemon, TickSummary

pytestmark = [
    allure.epic("Notifications"),
    allure.feature("Polling Loop"),
]


class _FlakyDaemon(PollingDaemon):
    name = "flaky"

    def __init__(self) -> None:
        super().__init__(poll_interval_seconds=0.0)
        self.ticks = 0

    def run_once(self) -> TickSummary:
        self.ticks += 1
        if self.ticks == 1:
            raise RuntimeError("store offline")
        return TickSummary(processed=1, succeeded=1)


def test_polling_daemon_requires_a_tick_implementation() -> None:
    with pytest.raises(TypeError):
        PollingDaemon(poll_interval_seconds=1.0)


def test_failed_tick_is_counted_and_the_loop_continues() -> None:
    daemon = _FlakyDaemon()

    summary = daemon.run_loop(max_ticks=3)

    assert daemon.ticks == 3
    assert (summary.ticks, summary.processed, summary.succeeded, summary.failed) == (3, 2, 2, 1)


def test_stop_request_ends_the_loop_before_the_next_tick() -> None:
    daemon = _FlakyDaemon()
    daemon.request_stop()

    summary = daemon.run_loop(max_ticks=5)

    assert summary.ticks == 0
    assert daemon.ticks == 0

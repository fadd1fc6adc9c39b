"""Signal-aware fixed-interval polling loop shared by the daemons."""

from __future__ import annotations

import logging
import signal
import time
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TickSummary:
    """Aggregate per-tick counters for CLI reporting."""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    ticks: int = 0

    def add(self, other: TickSummary) -> None:
        self.processed += other.processed
        self.succeeded += other.succeeded
        self.failed += other.failed
        self.skipped += other.skipped
        self.ticks += other.ticks


class PollingDaemon(ABC):
    """One cooperative loop per process: tick, sleep, repeat until stopped.

    A tick that raises is logged and the loop goes on to the next one.
    """

    name = "daemon"

    def __init__(self, *, poll_interval_seconds: float) -> None:
        self.poll_interval_seconds = poll_interval_seconds
        self._stop_requested = False
        self._stop_signal_name: str | None = None

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    @abstractmethod
    def run_once(self) -> TickSummary:
        """Process one batch of due work."""

    def run_loop(self, *, max_ticks: int | None = None) -> TickSummary:
        """Tick until a stop is requested or ``max_ticks`` ticks have run."""

        aggregate = TickSummary()
        with self._signal_handlers():
            while not self._stop_requested:
                if max_ticks is not None and aggregate.ticks >= max_ticks:
                    break
                try:
                    summary = self.run_once()
                except Exception:  # noqa: BLE001
                    logger.exception("%s tick failed", self.name)
                    summary = TickSummary(failed=1)
                summary.ticks = 1
                aggregate.add(summary)
                if summary.processed:
                    logger.info(
                        "%s tick: processed=%d succeeded=%d failed=%d skipped=%d",
                        self.name,
                        summary.processed,
                        summary.succeeded,
                        summary.failed,
                        summary.skipped,
                    )
                if max_ticks is not None and aggregate.ticks >= max_ticks:
                    break
                self._sleep_with_stop(self.poll_interval_seconds)
        if self._stop_signal_name is not None:
            logger.info("%s stopped by %s", self.name, self._stop_signal_name)
        return aggregate

    def request_stop(self, *, signal_name: str = "request") -> None:
        self._stop_requested = True
        self._stop_signal_name = signal_name

    def _sleep_with_stop(self, seconds: float) -> None:
        deadline = time.monotonic() + seconds
        while not self._stop_requested and time.monotonic() < deadline:
            time.sleep(min(0.1, max(0.0, deadline - time.monotonic())))

    @contextmanager
    def _signal_handlers(self) -> Iterator[None]:
        if not hasattr(signal, "SIGINT"):
            yield
            return

        original_sigint = signal.getsignal(signal.SIGINT)
        original_sigterm = signal.getsignal(signal.SIGTERM)

        def _handler(signum: int, _: object | None) -> None:
            try:
                name = signal.Signals(signum).name
            except ValueError:
                name = str(signum)
            self.request_stop(signal_name=name)

        installed = True
        try:
            signal.signal(signal.SIGINT, _handler)
            signal.signal(signal.SIGTERM, _handler)
        except ValueError:
            # Signal handlers can only be installed in main thread.
            installed = False
        try:
            yield
        finally:
            if installed:
                signal.signal(signal.SIGINT, original_sigint)
                signal.signal(signal.SIGTERM, original_sigterm)

"""Trigger points for sync runs: startup, interval, manual and shutdown."""

from __future__ import annotations

import logging
import threading
from typing import Optional

from .orchestrator import SyncOrchestrator
from .protocol import SyncResult

logger = logging.getLogger("kiosksync.sync.scheduler")

MIN_INTERVAL_MINUTES = 2

STARTUP_TRIGGER = "startup-sync"
INTERVAL_TRIGGER = "interval-sync"
MANUAL_TRIGGER = "manual-sync"
SHUTDOWN_TRIGGER = "shutdown-push"


def effective_interval_minutes(configured: Optional[float]) -> float:
    try:
        minutes = float(configured) if configured is not None else float(MIN_INTERVAL_MINUTES)
    except (TypeError, ValueError):
        minutes = float(MIN_INTERVAL_MINUTES)
    return max(float(MIN_INTERVAL_MINUTES), minutes)


class SyncScheduler:
    """Runs the orchestrator in its configured mode on a background thread."""

    def __init__(
        self,
        orchestrator: SyncOrchestrator,
        enabled: bool = False,
        interval_minutes: Optional[float] = 10,
    ):
        self.orchestrator = orchestrator
        self.enabled = enabled
        self.interval_minutes = effective_interval_minutes(interval_minutes)
        self.last_result: Optional[SyncResult] = None
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def interval_seconds(self) -> float:
        return self.interval_minutes * 60.0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> bool:
        if self.running:
            return True
        if not self.enabled:
            logger.info("Sync is disabled; scheduler not started")
            return False
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="kiosksync-scheduler", daemon=True)
        self._thread.start()
        logger.info("Sync scheduler started (every %.0f min)", self.interval_minutes)
        return True

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        self._thread = None

    def run_now(self) -> SyncResult:
        return self._trigger(MANUAL_TRIGGER)

    def shutdown(self) -> Optional[SyncResult]:
        """Stop the timer and, for a satellite, push local data one last time."""
        self.stop()
        if not self.enabled or self.orchestrator.master_mode:
            return None
        try:
            return self.orchestrator.push_all(trigger=SHUTDOWN_TRIGGER)
        except Exception as exc:
            logger.warning("Shutdown push failed: %s", exc)
            return None

    def _loop(self) -> None:
        self._trigger(STARTUP_TRIGGER)
        while not self._stop.wait(self.interval_seconds):
            self._trigger(INTERVAL_TRIGGER)

    def _trigger(self, tag: str) -> SyncResult:
        try:
            result = self.orchestrator.sync_by_mode(trigger=tag)
        except Exception as exc:
            logger.exception("%s failed", tag)
            result = SyncResult(success=False, trigger=tag, message=str(exc))
        if not result.dropped:
            self.last_result = result
        return result


__all__ = [
    "INTERVAL_TRIGGER",
    "MANUAL_TRIGGER",
    "MIN_INTERVAL_MINUTES",
    "SHUTDOWN_TRIGGER",
    "STARTUP_TRIGGER",
    "SyncScheduler",
    "effective_interval_minutes",
]

"""
Scheduler module for periodic snapshot refreshes.

Calls a refresh coroutine (normally ``HostsService.refresh_now``) on a fixed
interval. A failed run is logged and the loop keeps going.
"""

import asyncio
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from custom_hosts.audit_logger import AuditLogger, LoggingMixin


HISTORY_LIMIT = 100


@dataclass
class RefreshRun:
    """Outcome of one scheduled run."""

    started_at: str
    success: bool
    entries: int = 0
    error: Optional[str] = None


class RefreshScheduler(LoggingMixin):
    """Fixed-interval runner for the snapshot refresh."""

    COMPONENT = "Scheduler"

    def __init__(
        self,
        callback: Callable[[], Awaitable[list]],
        interval_seconds: float,
        run_immediately: bool = True,
        logger: Optional[AuditLogger] = None,
        history_limit: int = HISTORY_LIMIT,
    ) -> None:
        """
        Args:
            callback: Coroutine function returning the refreshed entries
            interval_seconds: Delay between the end of one run and the next
            run_immediately: Run once before the first wait
            logger: Optional audit logger
            history_limit: Most recent runs kept in ``history``
        """
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")
        self._callback = callback
        self._interval_seconds = interval_seconds
        self._run_immediately = run_immediately
        self._logger = logger
        self._running = False
        self._history: deque[RefreshRun] = deque(maxlen=history_limit)

    @property
    def history(self) -> list[RefreshRun]:
        return list(self._history)

    @property
    def interval_seconds(self) -> float:
        return self._interval_seconds

    async def run_once(self) -> RefreshRun:
        started_at = datetime.now(timezone.utc).isoformat()
        try:
            entries = await self._callback()
        except Exception as e:
            self._log_error("Scheduled refresh failed", e)
            run = RefreshRun(started_at=started_at, success=False, error=str(e))
        else:
            self._log_info("Scheduled refresh completed", {"entries": len(entries)})
            run = RefreshRun(started_at=started_at, success=True, entries=len(entries))
        self._history.append(run)
        return run

    async def run(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """
        Run until ``stop()`` is called or ``stop_event`` is set.

        Args:
            stop_event: Optional event to signal the scheduler to stop
        """
        self._running = True
        stop_event = stop_event or asyncio.Event()
        first = True

        while self._running and not stop_event.is_set():
            if not first or self._run_immediately:
                await self.run_once()
            first = False

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self._interval_seconds)
            except asyncio.TimeoutError:
                continue

        self._running = False

    def stop(self) -> None:
        """Signal the scheduler to stop after the current wait."""
        self._running = False

    def is_running(self) -> bool:
        return self._running

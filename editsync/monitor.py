"""
editsync - Connectivity & Lifecycle Monitor

Decides when the retry queue gets drained:

- connectivity goes from offline to online,
- the app returns to the foreground while online,
- every config.drain_interval seconds while online.

Each trigger only fires when the queue is non-empty. Triggers arriving while
a drain runs are dropped, not queued; the next event or tick picks the work
up again.
"""

import asyncio
import logging
from enum import Enum
from typing import Callable, Optional

from .config import SyncConfig
from .connectivity import ConnectivityProbe, ConnectivityState
from .drainer import QueueDrainer
from .models import DrainReport
from .store import RetryQueueStore

logger = logging.getLogger(__name__)


class AppState(str, Enum):
    """Foreground/background lifecycle of the host application."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    BACKGROUND = "background"


class SyncMonitor:
    """Turns connectivity, lifecycle and timer events into coalesced drains."""

    def __init__(
        self,
        drainer: QueueDrainer,
        queue: RetryQueueStore,
        connectivity: ConnectivityState,
        config: SyncConfig,
        probe: Optional[ConnectivityProbe] = None,
        on_drain: Optional[Callable[[DrainReport], None]] = None,
    ):
        self.drainer = drainer
        self.queue = queue
        self.connectivity = connectivity
        self.config = config
        self.probe = probe
        self.on_drain = on_drain

        self.app_state = AppState.ACTIVE
        self.last_report: Optional[DrainReport] = None
        self._running = False
        self._timer_task: Optional[asyncio.Task] = None
        self._drain_task: Optional[asyncio.Task] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_draining(self) -> bool:
        return (
            self._drain_task is not None and not self._drain_task.done()
        ) or self.drainer.is_draining()

    # === Lifecycle ===

    def start(self) -> None:
        """Subscribe to connectivity changes and start the periodic timer."""
        if self._running:
            logger.warning("Sync monitor already running")
            return

        self._running = True
        self._unsubscribe = self.connectivity.subscribe(self._on_connectivity_change)
        self._timer_task = asyncio.create_task(self._periodic_loop())
        logger.info(f"Sync monitor started (interval {self.config.drain_interval}s)")

    async def stop(self) -> None:
        """Stop the timer and wait for a running drain to finish."""
        self._running = False
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

        if self._timer_task:
            self._timer_task.cancel()
            try:
                await self._timer_task
            except asyncio.CancelledError:
                pass
            self._timer_task = None

        await self.wait_idle()
        logger.info("Sync monitor stopped")

    async def wait_idle(self) -> Optional[DrainReport]:
        """Wait for a trigger-spawned drain, if any, and return its report."""
        if self._drain_task is not None:
            await asyncio.shield(self._drain_task)
        return self.last_report

    # === Triggers ===

    def _has_pending(self) -> bool:
        return self.queue.count() > 0

    def _on_connectivity_change(self, was_online: bool, is_online: bool) -> None:
        if not was_online and is_online and self._has_pending():
            self.request_drain("reconnected")

    def set_app_state(self, state: AppState) -> None:
        """Record a lifecycle transition; returning to foreground may drain."""
        previous = self.app_state
        self.app_state = state
        if (
            previous in (AppState.INACTIVE, AppState.BACKGROUND)
            and state == AppState.ACTIVE
            and self.connectivity.is_online
            and self._has_pending()
        ):
            self.request_drain("foreground")

    def request_drain(self, reason: str) -> bool:
        """Start a background drain unless one is already running."""
        if self.is_draining:
            logger.debug(f"Drain requested ({reason}) while draining; dropped")
            return False

        logger.debug(f"Drain triggered: {reason}")
        self._drain_task = asyncio.create_task(self._run_drain(reason))
        return True

    async def _run_drain(self, reason: str) -> None:
        try:
            report = await self.drainer.drain()
        except Exception as e:
            logger.error(f"Error processing sync queue ({reason}): {e}")
            return

        if report.skipped:
            return
        self.last_report = report
        if self.on_drain:
            self.on_drain(report)

    async def tick(self) -> None:
        """One periodic check: refresh connectivity, then drain if needed."""
        if self.probe is not None:
            self.connectivity.set_online(await self.probe.check())

        if self.connectivity.is_online and self._has_pending():
            self.request_drain("interval")

    async def _periodic_loop(self) -> None:
        """Main background loop."""
        while self._running:
            try:
                await asyncio.sleep(self.config.drain_interval)
                await self.tick()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in sync monitor: {e}")

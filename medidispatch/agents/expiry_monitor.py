"""
Hold expiry monitor for MediDispatch.

Frees ambulances whose hold ran out so a stuck or lost unit cannot strand
hospital capacity forever. Uses the same release path as medical staff,
flagged as automatic so the audit trail can tell them apart.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from medidispatch.agents.base_agent import BaseAgent
from medidispatch.core.allocation_engine import AllocationEngine, ReleaseResult
from medidispatch.core.config import Config
from medidispatch.core.errors import AmbulanceNotBusyError, ConflictError, DispatchError
from medidispatch.core.query_views import QueryViews

logger = logging.getLogger(__name__)


class ExpiryMonitor(BaseAgent):
    """
    Periodic scan for expired ambulance holds.

    Stopping waits for the scan in progress to finish; each release inside a
    scan is a single atomic transaction, so shutdown never leaves one half
    applied.
    """

    def __init__(
        self,
        engine: AllocationEngine,
        poll_interval: Optional[float] = None,
        views: Optional[QueryViews] = None,
    ):
        """
        Initialize the monitor.

        Args:
            engine: Allocation engine used for releases
            poll_interval: Seconds between scans (defaults to config, max 60)
            views: Query views over the same store
        """
        super().__init__(store=engine.store, name="ExpiryMonitor")
        self.engine = engine
        self.views = views or QueryViews(engine.store)
        self.poll_interval = poll_interval if poll_interval is not None else Config.get_poll_interval()
        if self.poll_interval <= 0 or self.poll_interval > Config.MAX_POLL_INTERVAL_SECONDS:
            raise ValueError(
                f"poll_interval must be in (0, {Config.MAX_POLL_INTERVAL_SECONDS}] seconds"
            )

        self._stop_event: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None

        # Statistics
        self.total_scans = 0
        self.total_auto_released = 0
        self.total_failed = 0
        self.last_scan_at: Optional[datetime] = None

    async def process(self, input_data: Any = None) -> List[ReleaseResult]:
        return await self.scan_once()

    async def scan_once(self) -> List[ReleaseResult]:
        """
        Release every busy ambulance whose hold has expired.

        Returns:
            Results of the releases performed in this scan
        """
        now = self.store.now()
        expired = self.views.expired_holds(now)
        released: List[ReleaseResult] = []
        failed = 0

        for ambulance in expired:
            try:
                result = await self.engine.release_ambulance(
                    ambulance.id, automatic=True, expected_version=ambulance.version
                )
            except (AmbulanceNotBusyError, ConflictError) as e:
                # Released or re-dispatched by someone else since the scan read it
                logger.info(f"Skipping auto-release of {ambulance.id}: {e.kind}")
                continue
            except DispatchError as e:
                # One broken record must not hold back the rest of the scan
                failed += 1
                logger.warning(f"Auto-release of {ambulance.id} failed: {e.kind} ({e.message})")
                continue
            except SQLAlchemyError:
                failed += 1
                logger.error(f"Auto-release of {ambulance.id} could not be persisted", exc_info=True)
                continue

            released.append(result)
            logger.info(
                f"AutoReleased ambulance {ambulance.vehicle_number} ({ambulance.id}); "
                f"hold expired at {ambulance.hold_expiry.isoformat()}"
            )

        self.total_scans += 1
        self.total_auto_released += len(released)
        self.total_failed += failed
        self.last_scan_at = now
        if expired:
            logger.debug(
                f"Expiry scan: {len(expired)} expired, {len(released)} released, {failed} failed"
            )
        return released

    async def on_start(self) -> None:
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name="expiry-monitor")

    async def on_stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()
        if self._task is not None:
            await self._task
            self._task = None

    async def _run(self) -> None:
        logger.info(f"Expiry monitor polling every {self.poll_interval}s")
        while not self._stop_event.is_set():
            try:
                await self.scan_once()
            except Exception as e:
                logger.error(f"Expiry scan failed: {e}", exc_info=True)

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass

    def get_status(self) -> Dict[str, Any]:
        """Get current monitor status."""
        return {
            "running": self.is_running,
            "poll_interval_seconds": self.poll_interval,
            "total_scans": self.total_scans,
            "total_auto_released": self.total_auto_released,
            "total_failed": self.total_failed,
            "last_scan_at": self.last_scan_at.isoformat() if self.last_scan_at else None,
        }

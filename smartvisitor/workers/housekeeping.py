# =======================================================================================
# smartvisitor/workers/housekeeping.py - Background Housekeeping Worker
# =======================================================================================
import asyncio
import logging
from typing import List, Optional

from ..config import config
from ..services.container import Services
from ..utils.exceptions import StorageFailureError

log = logging.getLogger("smartvisitor.workers")


class HousekeepingWorker:
    """
    Periodic tasks on the app's event loop:
    - janitor: cancels pending requests older than the expiry horizon
    - heartbeat: pings bus subscribers and drops the silent ones
    """

    def __init__(self, services: Services, janitor_interval: Optional[float] = None,
                 heartbeat_interval: Optional[float] = None):
        self.services = services
        self.janitor_interval = janitor_interval or config.JANITOR_INTERVAL_SECONDS
        self.heartbeat_interval = heartbeat_interval or config.WS_HEARTBEAT_INTERVAL
        self.running = False
        self._tasks: List[asyncio.Task] = []

    # ------------------------------------------------------------------
    # Start / Stop
    # ------------------------------------------------------------------
    def start(self) -> None:
        """Start both loops on the running event loop."""
        if self.running:
            return
        self.running = True
        self._tasks = [
            asyncio.create_task(self._janitor_loop(), name="pending-janitor"),
            asyncio.create_task(self._heartbeat_loop(), name="bus-heartbeat"),
        ]
        log.info(
            "Housekeeping started (janitor every %ss, heartbeat every %ss)",
            self.janitor_interval, self.heartbeat_interval,
        )

    async def stop(self) -> None:
        """Stop both loops and wait for them to finish."""
        self.running = False
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        log.info("Housekeeping stopped")

    # ------------------------------------------------------------------
    # Single passes
    # ------------------------------------------------------------------
    async def sweep(self) -> int:
        """One janitor pass. Returns the number of requests expired."""
        try:
            expired = await self.services.lifecycle.expire()
        except StorageFailureError as e:
            log.error("Janitor pass failed, retrying next interval: %s", e)
            return 0
        return len(expired)

    def heartbeat(self) -> int:
        """One liveness pass. Returns the number of subscribers removed."""
        return len(self.services.bus.check_liveness())

    # ------------------------------------------------------------------
    # Main loops
    # ------------------------------------------------------------------
    async def _janitor_loop(self) -> None:
        while self.running:
            await asyncio.sleep(self.janitor_interval)
            await self.sweep()

    async def _heartbeat_loop(self) -> None:
        while self.running:
            await asyncio.sleep(self.heartbeat_interval)
            self.heartbeat()

# =======================================================================================
# smartvisitor/services/stats_service.py
# =======================================================================================

import time
from typing import Dict, Any

from .event_store import EventStore
from .notification_bus import NotificationBus


class StatsService:
    """Simple counts for the admin dashboard."""

    def __init__(self, store: EventStore, bus: NotificationBus):
        self.store = store
        self.bus = bus
        self.started_at = time.monotonic()

    def uptime(self) -> float:
        return round(time.monotonic() - self.started_at, 3)

    def get_summary(self) -> Dict[str, Any]:
        summary: Dict[str, Any] = dict(self.store.counts())
        summary["connected_clients"] = len(self.bus)
        summary["uptime"] = self.uptime()
        return summary

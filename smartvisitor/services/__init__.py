# =======================================================================================
# smartvisitor/services/__init__.py - Services Package
# =======================================================================================
from .event_store import EventStore
from .pending_table import PendingRequestTable
from .notification_bus import NotificationBus, Subscriber
from .lifecycle import LifecycleController, StartOutcome
from .matching_engine import MatchingEngine, ScanOutcome
from .guest_service import GuestService
from .stats_service import StatsService
from .container import Services

__all__ = [
    "EventStore", "PendingRequestTable", "NotificationBus", "Subscriber",
    "LifecycleController", "StartOutcome", "MatchingEngine", "ScanOutcome",
    "GuestService", "StatsService", "Services",
]

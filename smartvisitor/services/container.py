# smartvisitor/services/container.py
from dataclasses import dataclass

from ..config import config
from ..database import DatabaseManager
from .event_store import EventStore
from .guest_service import GuestService
from .lifecycle import LifecycleController
from .matching_engine import MatchingEngine
from .notification_bus import NotificationBus
from .pending_table import PendingRequestTable
from .stats_service import StatsService


@dataclass
class Services:
    """Everything one running app shares; stored on app.state.services."""
    db: DatabaseManager
    store: EventStore
    bus: NotificationBus
    table: PendingRequestTable
    lifecycle: LifecycleController
    engine: MatchingEngine
    guests: GuestService
    stats: StatsService

    @classmethod
    def build(cls, db: DatabaseManager) -> "Services":
        store = EventStore(db)
        bus = NotificationBus(queue_size=config.SUBSCRIBER_QUEUE_SIZE)
        table = PendingRequestTable(store)
        lifecycle = LifecycleController(
            store, table, bus, expiry_seconds=config.PENDING_EXPIRY_SECONDS
        )
        return cls(
            db=db,
            store=store,
            bus=bus,
            table=table,
            lifecycle=lifecycle,
            engine=MatchingEngine(store, table, lifecycle, bus),
            guests=GuestService(store),
            stats=StatsService(store, bus),
        )

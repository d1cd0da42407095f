# =======================================================================================
# smartvisitor/models/events.py - Notification Bus Events
# =======================================================================================
from datetime import datetime
from typing import Literal, Dict, Any
from pydantic import BaseModel

from .enums import EventKind


class NotificationEvent(BaseModel):
    """Base for every frame pushed to bus subscribers."""
    type: str

    def to_message(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


# ========== Core state changes ==========

class BindingStarted(NotificationEvent):
    type: Literal["binding-started"] = EventKind.BINDING_STARTED.value
    requestId: int
    projectId: int
    guestId: int
    scannerId: int
    createdAt: datetime


class BindingCompleted(NotificationEvent):
    type: Literal["binding-completed"] = EventKind.BINDING_COMPLETED.value
    requestId: int
    projectId: int
    guestId: int
    tagId: str
    completedAt: datetime


class BindingCancelled(NotificationEvent):
    type: Literal["binding-cancelled"] = EventKind.BINDING_CANCELLED.value
    requestId: int


class BindingRemoved(NotificationEvent):
    type: Literal["binding-removed"] = EventKind.BINDING_REMOVED.value
    projectId: int
    guestId: int


class ScanObserved(NotificationEvent):
    type: Literal["scan-observed"] = EventKind.SCAN_OBSERVED.value
    tagId: str
    scannerMAC: str
    scannerName: str
    timestamp: datetime


# ========== Connection-level frames ==========

class ConnectionWelcome(NotificationEvent):
    type: Literal["connection"] = "connection"
    clientId: str
    message: str = "Connected to SmartVisitor Admin"
    timestamp: datetime


class Heartbeat(NotificationEvent):
    type: Literal["heartbeat"] = "heartbeat"
    timestamp: datetime


class Shutdown(NotificationEvent):
    type: Literal["shutdown"] = "shutdown"

# =======================================================================================
# smartvisitor/models/__init__.py - Models Package
# =======================================================================================
from .schemas import *
from .enums import *
from .entities import *
from .events import *

__all__ = [
    "ScanRequest", "ScanResponse", "StartAssignmentRequest", "StartAssignmentResponse",
    "CancelAssignmentRequest", "PendingAssignment", "SuccessResponse", "HealthResponse",
    "StatsResponse", "ScanClassification", "PendingStatus", "EventKind", "EVENT_KINDS",
    "Scanner", "Guest", "Binding", "PendingRequest", "NotificationEvent",
    "BindingStarted", "BindingCompleted", "BindingCancelled", "BindingRemoved",
    "ScanObserved",
]

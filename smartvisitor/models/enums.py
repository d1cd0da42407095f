# =======================================================================================
# smartvisitor/models/enums.py - Enums and Constants
# =======================================================================================
from enum import Enum
from typing import Literal

# Type aliases for better type hints
ScanClassification = Literal["matched", "observed", "unknown_scanner"]

class PendingStatus(str, Enum):
    """Lifecycle states of a pending tag assignment."""
    WAITING = "waiting"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

class EventKind(str, Enum):
    """State-change notifications published on the bus."""
    BINDING_STARTED = "binding-started"
    BINDING_COMPLETED = "binding-completed"
    BINDING_CANCELLED = "binding-cancelled"
    BINDING_REMOVED = "binding-removed"
    SCAN_OBSERVED = "scan-observed"

EVENT_KINDS = frozenset(kind.value for kind in EventKind)

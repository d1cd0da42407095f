# =======================================================================================
# smartvisitor/utils/__init__.py - Utils Package
# =======================================================================================
from .exceptions import *
from .validators import *
from .clock import utcnow, to_naive_utc

__all__ = [
    "SmartVisitorError", "UnknownScannerError", "AlreadyResolvedError",
    "NotFoundError", "StorageFailureError", "InvalidIdentifierError",
    "ScannerBusyError", "IdentifierValidator", "utcnow", "to_naive_utc",
]

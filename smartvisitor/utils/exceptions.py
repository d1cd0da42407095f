# =======================================================================================
# smartvisitor/utils/exceptions.py - Custom Exceptions
# =======================================================================================
class SmartVisitorError(Exception):
    """Base exception for the SmartVisitor tag assignment service."""
    pass

class UnknownScannerError(SmartVisitorError):
    """Raised when a scan arrives from a MAC address that is not registered."""

    def __init__(self, mac: str):
        super().__init__(f"Unknown scanner MAC: {mac}")
        self.mac = mac

class AlreadyResolvedError(SmartVisitorError):
    """Raised when a pending request is no longer waiting."""

    def __init__(self, request_id: int):
        super().__init__(f"Pending request {request_id} is already resolved")
        self.request_id = request_id

class NotFoundError(SmartVisitorError):
    """Raised when a referenced record does not exist."""
    pass

class StorageFailureError(SmartVisitorError):
    """Raised when a durable write or read fails."""
    pass

class InvalidIdentifierError(SmartVisitorError):
    """Raised when an operator action references an invalid identifier."""
    pass

class ScannerBusyError(SmartVisitorError):
    """Raised when a scanner already holds another guest's waiting request."""

    def __init__(self, scanner_id: int, request_id: int):
        super().__init__(
            f"Scanner {scanner_id} is busy with pending request {request_id}"
        )
        self.scanner_id = scanner_id
        self.request_id = request_id

# =======================================================================================
# smartvisitor/api/dependencies.py - FastAPI Dependencies
# =======================================================================================
from fastapi import HTTPException, Request, status

from ..services.container import Services
from ..utils.exceptions import (
    SmartVisitorError, InvalidIdentifierError, NotFoundError, ScannerBusyError,
    StorageFailureError, UnknownScannerError,
)

def get_services(request: Request) -> Services:
    """Dependency to get the services shared by this app instance."""
    return request.app.state.services

def http_error(error: SmartVisitorError) -> HTTPException:
    """Translate a service exception into the matching HTTP error."""
    if isinstance(error, (InvalidIdentifierError, UnknownScannerError)):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))
    if isinstance(error, ScannerBusyError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(error))
    if isinstance(error, StorageFailureError):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Storage unavailable, please retry",
        )
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(error))

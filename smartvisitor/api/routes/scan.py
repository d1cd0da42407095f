# =======================================================================================
# smartvisitor/api/routes/scan.py - Scan Ingest Endpoint
# =======================================================================================
from fastapi import APIRouter, Depends
from ...models.schemas import ScanRequest, ScanResponse
from ...services.container import Services
from ...utils.exceptions import InvalidIdentifierError, StorageFailureError
from ..dependencies import get_services, http_error

router = APIRouter()

@router.post("/tag-scan", response_model=ScanResponse)
async def handle_tag_scan(request: ScanRequest, services: Services = Depends(get_services)):
    """
    Process one tag scan forwarded by the ingest webhook.

    Always answers with a classification; only a storage failure while
    writing a binding turns into an error (503) so the ingester can retry.
    """
    try:
        scan = services.engine.build_scan(request.tag_id, request.scanner_mac, request.timestamp)
        outcome = await services.engine.process_scan(scan)
    except (InvalidIdentifierError, StorageFailureError) as e:
        raise http_error(e)

    return ScanResponse(
        success=outcome.classification != "unknown_scanner",
        classification=outcome.classification,
        message=outcome.message,
        requestId=outcome.request.id if outcome.request else None,
        guestId=outcome.binding.guest_id if outcome.binding else None,
        guestName=outcome.guest.name if outcome.guest else None,
        tagId=outcome.scan.tag_id,
    )

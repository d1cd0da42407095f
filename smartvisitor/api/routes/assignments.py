# =======================================================================================
# smartvisitor/api/routes/assignments.py - Tag Assignment Endpoints
# =======================================================================================
from typing import List
from fastapi import APIRouter, Depends, Query
from fastapi.concurrency import run_in_threadpool
from ...models.schemas import (
    CancelAssignmentRequest,
    PendingAssignment,
    StartAssignmentRequest,
    StartAssignmentResponse,
    SuccessResponse,
)
from ...services.container import Services
from ...utils.exceptions import SmartVisitorError
from ..dependencies import get_services, http_error

router = APIRouter()


@router.post("/tag-assignment/start", response_model=StartAssignmentResponse)
async def start_tag_assignment(
    request: StartAssignmentRequest, services: Services = Depends(get_services)
):
    """Bind the next scan on the scanner to the guest."""
    try:
        outcome = await services.lifecycle.start(
            request.projectId, request.guestId, request.scannerId
        )
    except SmartVisitorError as e:
        raise http_error(e)

    pending = outcome.request
    return StartAssignmentResponse(
        success=True,
        assignment=PendingAssignment(
            id=pending.id,
            projectId=pending.project_id,
            guestId=pending.guest_id,
            scannerId=pending.scanner_id,
            status=pending.status.value,
            createdAt=pending.created_at,
            guestName=outcome.guest.name,
            scannerName=outcome.scanner.name,
            scannerMac=outcome.scanner.mac_address,
        ),
        cancelled=[r.id for r in outcome.superseded],
    )


@router.post("/tag-assignment/cancel", response_model=SuccessResponse)
async def cancel_tag_assignment(
    request: CancelAssignmentRequest, services: Services = Depends(get_services)
):
    try:
        cancelled = await services.lifecycle.cancel(request.assignmentId)
    except SmartVisitorError as e:
        raise http_error(e)
    message = "Tag assignment cancelled" if cancelled else "Tag assignment was not waiting"
    return SuccessResponse(success=True, message=message)


@router.delete("/tag-assignment/{guest_id}", response_model=SuccessResponse)
async def remove_tag_assignment(
    guest_id: int,
    projectId: int = Query(..., description="Project the guest belongs to"),
    services: Services = Depends(get_services),
):
    """Clear the guest's tag and cancel anything still waiting for them."""
    try:
        removed = await services.lifecycle.remove_binding(projectId, guest_id)
    except SmartVisitorError as e:
        raise http_error(e)
    message = "Tag assignment removed" if removed else "Guest had no tag assigned"
    return SuccessResponse(success=True, message=message)


@router.get("/tag-assignments/pending", response_model=List[PendingAssignment])
async def get_pending_assignments(services: Services = Depends(get_services)):
    try:
        rows = await run_in_threadpool(services.store.list_waiting_details)
    except SmartVisitorError as e:
        raise http_error(e)
    return [
        PendingAssignment(
            id=r["id"],
            projectId=r["project_id"],
            guestId=r["guest_id"],
            scannerId=r["scanner_id"],
            status=r["status"],
            createdAt=r["created_at"],
            completedAt=r["completed_at"],
            tagId=r["tag_id"],
            guestName=r["guest_name"],
            scannerName=r["scanner_name"],
            scannerMac=r["scanner_mac"],
            projectName=r["project_name"],
        )
        for r in rows
    ]

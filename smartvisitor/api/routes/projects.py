# =======================================================================================
# smartvisitor/api/routes/projects.py - Project & Guest Endpoints
# =======================================================================================
from typing import List
from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.concurrency import run_in_threadpool
from ...models.schemas import (
    CreateGuestRequest,
    CreateProjectRequest,
    GuestOut,
    ImportGuestsResponse,
    ProjectDetail,
    ProjectOut,
    SuccessResponse,
)
from ...services.container import Services
from ...utils.exceptions import SmartVisitorError
from ..dependencies import get_services, http_error

router = APIRouter()


@router.get("/projects", response_model=List[ProjectOut])
def list_projects(services: Services = Depends(get_services)):
    try:
        return services.guests.list_projects()
    except SmartVisitorError as e:
        raise http_error(e)


@router.post("/projects", response_model=ProjectOut, status_code=201)
def create_project(request: CreateProjectRequest, services: Services = Depends(get_services)):
    try:
        return services.guests.create_project(request.name, request.description)
    except SmartVisitorError as e:
        raise http_error(e)


@router.get("/projects/{project_id}", response_model=ProjectDetail)
def get_project(project_id: int, services: Services = Depends(get_services)):
    """Project with its guests, their tags and the scanners linked to it."""
    try:
        return services.guests.get_project_detail(project_id)
    except SmartVisitorError as e:
        raise http_error(e)


@router.delete("/projects/{project_id}", response_model=SuccessResponse)
async def delete_project(project_id: int, services: Services = Depends(get_services)):
    try:
        await services.lifecycle.delete_project(project_id)
    except SmartVisitorError as e:
        raise http_error(e)
    return SuccessResponse(message=f"Project {project_id} deleted")


@router.post("/projects/{project_id}/guests", response_model=GuestOut, status_code=201)
def create_guest(
    project_id: int, request: CreateGuestRequest, services: Services = Depends(get_services)
):
    try:
        return services.guests.create_guest(project_id, request)
    except SmartVisitorError as e:
        raise http_error(e)


@router.post("/projects/{project_id}/guests/import", response_model=ImportGuestsResponse)
async def import_guests(
    project_id: int,
    file: UploadFile = File(...),
    services: Services = Depends(get_services),
):
    """
    CSV import: headers = name,email,phone,vip
    Rows without a name are skipped.
    """
    content = await file.read()
    try:
        result = await run_in_threadpool(
            services.guests.import_guests_from_csv, project_id, content
        )
    except SmartVisitorError as e:
        raise http_error(e)
    return ImportGuestsResponse(**result)


@router.delete("/projects/{project_id}/guests/{guest_id}", response_model=SuccessResponse)
async def delete_guest(project_id: int, guest_id: int, services: Services = Depends(get_services)):
    try:
        await services.lifecycle.remove_guest(project_id, guest_id)
    except SmartVisitorError as e:
        raise http_error(e)
    return SuccessResponse(message=f"Guest {guest_id} removed")

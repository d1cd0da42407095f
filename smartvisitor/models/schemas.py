
# =======================================================================================
# smartvisitor/models/schemas.py - Pydantic Models
# =======================================================================================
from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field
from .enums import ScanClassification

# ========== Scan ingest ==========
class ScanRequest(BaseModel):
    """Tag scan forwarded by the ingest webhook."""
    tag_id: str = Field(..., min_length=1, max_length=255, description="RFID tag identifier")
    scanner_mac: str = Field(..., min_length=1, max_length=32, description="MAC address of the reader")
    timestamp: Optional[datetime] = Field(None, description="Scan time reported by the reader")

class ScanResponse(BaseModel):
    """Classification of a processed scan."""
    success: bool
    classification: ScanClassification
    message: str
    requestId: Optional[int] = None
    guestId: Optional[int] = None
    guestName: Optional[str] = None
    tagId: Optional[str] = None

# ========== Tag assignment lifecycle ==========
class StartAssignmentRequest(BaseModel):
    projectId: int = Field(..., description="Project the guest belongs to")
    guestId: int = Field(..., description="Guest to bind the next scan to")
    scannerId: int = Field(..., description="Scanner that will read the tag")

class CancelAssignmentRequest(BaseModel):
    assignmentId: int

class PendingAssignment(BaseModel):
    id: int
    projectId: int
    guestId: int
    scannerId: int
    status: str
    createdAt: datetime
    completedAt: Optional[datetime] = None
    tagId: Optional[str] = None
    guestName: Optional[str] = None
    scannerName: Optional[str] = None
    scannerMac: Optional[str] = None
    projectName: Optional[str] = None

class StartAssignmentResponse(BaseModel):
    success: bool
    assignment: PendingAssignment
    cancelled: List[int] = []

class SuccessResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None

# ========== Projects / guests ==========
class CreateProjectRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None

class ProjectOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    created_at: Optional[datetime] = None

class CreateGuestRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: Optional[str] = None
    phone: Optional[str] = None
    vip: bool = False

class GuestOut(BaseModel):
    id: int
    project_id: int
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    vip: bool = False
    tag_id: Optional[str] = None
    assigned_at: Optional[datetime] = None

class ScannerOut(BaseModel):
    id: int
    name: str
    mac_address: str
    location: Optional[str] = None
    last_heartbeat: Optional[datetime] = None

class ProjectDetail(BaseModel):
    project: ProjectOut
    guests: List[GuestOut]
    scanners: List[ScannerOut]

class ImportGuestsResponse(BaseModel):
    inserted: int
    skipped: int

# ========== Recent activity ==========
class RecentBinding(BaseModel):
    tag_id: str
    timestamp: datetime
    guest_name: str
    project_name: str
    scan_type: str = "assignment"

# ========== Health / stats ==========
class HealthResponse(BaseModel):
    status: str                 # "ok" | "error"
    dataAvailable: bool
    message: Optional[str] = None

class StatsResponse(BaseModel):
    projects: int
    guests: int
    scanners: int
    assignments: int
    pending_assignments: int
    connected_clients: int
    uptime: float

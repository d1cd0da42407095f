# =======================================================================================
# smartvisitor/models/entities.py - Domain Records
# =======================================================================================
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional, Mapping, Any

from .enums import PendingStatus


@dataclass(frozen=True)
class Scanner:
    id: int
    mac_address: str
    name: str
    location: Optional[str] = None
    last_heartbeat: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Scanner":
        return cls(
            id=row["id"],
            mac_address=row["mac_address"],
            name=row["name"],
            location=row.get("location"),
            last_heartbeat=row.get("last_heartbeat"),
        )


@dataclass(frozen=True)
class Guest:
    id: int
    project_id: int
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    vip: bool = False
    tag_id: Optional[str] = None
    assigned_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Guest":
        return cls(
            id=row["id"],
            project_id=row["project_id"],
            name=row["name"],
            email=row.get("email"),
            phone=row.get("phone"),
            vip=bool(row.get("vip") or False),
            tag_id=row.get("tag_id"),
            assigned_at=row.get("assigned_at"),
        )


@dataclass(frozen=True)
class Binding:
    project_id: int
    guest_id: int
    tag_id: str
    assigned_at: datetime


@dataclass(frozen=True)
class ScanEvent:
    """One tag read reported by a scanner; never persisted as such."""
    tag_id: str
    scanner_mac: str
    timestamp: datetime


@dataclass
class PendingRequest:
    """
    "The next scan on scanner S binds its tag to guest G in project P."

    Instances live in the PendingRequestTable; everything outside the table
    only ever sees copies taken with snapshot().
    """
    id: int
    project_id: int
    guest_id: int
    scanner_id: int
    status: PendingStatus
    created_at: datetime
    completed_at: Optional[datetime] = None
    tag_id: Optional[str] = None

    @property
    def is_waiting(self) -> bool:
        return self.status is PendingStatus.WAITING

    def snapshot(self) -> "PendingRequest":
        return replace(self)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "PendingRequest":
        return cls(
            id=row["id"],
            project_id=row["project_id"],
            guest_id=row["guest_id"],
            scanner_id=row["scanner_id"],
            status=PendingStatus(row["status"]),
            created_at=row["created_at"],
            completed_at=row.get("completed_at"),
            tag_id=row.get("tag_id"),
        )

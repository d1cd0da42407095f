# =======================================================================================
# smartvisitor/services/guest_service.py - Project & Guest Management Service
# =======================================================================================
import io
import csv
import logging
from typing import Optional, List, Dict, Any, Tuple

from ..models.schemas import (
    CreateGuestRequest, GuestOut, ProjectDetail, ProjectOut, ScannerOut,
)
from ..utils.exceptions import InvalidIdentifierError, NotFoundError
from .event_store import EventStore

log = logging.getLogger("smartvisitor.guests")

_TRUTHY = {"1", "true", "yes", "y", "ja", "vip"}


class GuestService:
    """Handles project and guest bookkeeping around the tag assignment core."""

    def __init__(self, store: EventStore):
        self.store = store

    # ----------------- helpers -----------------
    @staticmethod
    def parse_vip(value: Optional[str]) -> bool:
        """CSV exports use anything from 'TRUE' to 'ja' for the VIP column."""
        if value is None:
            return False
        return value.strip().lower() in _TRUTHY

    def _require_project(self, project_id: int) -> Dict[str, Any]:
        project = self.store.get_project(project_id)
        if project is None:
            raise NotFoundError(f"Project {project_id} not found")
        return project

    # ----------------- projects -----------------
    def list_projects(self) -> List[ProjectOut]:
        return [ProjectOut(**p) for p in self.store.list_projects()]

    def create_project(self, name: str, description: Optional[str] = None) -> ProjectOut:
        project_id = self.store.create_project(name.strip(), description)
        return ProjectOut(**self.store.get_project(project_id))

    def get_project_detail(self, project_id: int) -> ProjectDetail:
        """Project with its guests (and their bound tags) and linked scanners."""
        project = self._require_project(project_id)
        guests = self.store.list_guests(project_id)
        scanners = self.store.list_project_scanners(project_id)
        return ProjectDetail(
            project=ProjectOut(**project),
            guests=[GuestOut(**vars(g)) for g in guests],
            scanners=[ScannerOut(**vars(s)) for s in scanners],
        )

    # ----------------- guests -----------------
    def create_guest(self, project_id: int, request: CreateGuestRequest) -> GuestOut:
        self._require_project(project_id)
        guest_id = self.store.create_guest(
            project_id, request.name.strip(), request.email, request.phone, request.vip
        )
        return GuestOut(**vars(self.store.get_guest(project_id, guest_id)))

    def parse_guest_csv(self, data: bytes) -> Tuple[List[Dict[str, Any]], int]:
        """
        CSV import: headers = name,email,phone,vip
        Example line: Willem van Leunen,willem@example.com,,TRUE

        Returns (rows to insert, rows skipped because the name is missing).
        """
        try:
            text_stream = io.StringIO(data.decode("utf-8-sig"))
            reader = csv.DictReader(text_stream)
            records = list(reader)
        except (UnicodeDecodeError, csv.Error) as e:
            raise InvalidIdentifierError(f"Invalid CSV: {e}")

        rows: List[Dict[str, Any]] = []
        skipped = 0
        for record in records:
            name = (record.get("name") or "").strip()
            if not name:
                skipped += 1
                continue
            rows.append(
                {
                    "name": name,
                    "email": (record.get("email") or "").strip() or None,
                    "phone": (record.get("phone") or "").strip() or None,
                    "vip": self.parse_vip(record.get("vip")),
                }
            )
        return rows, skipped

    def import_guests_from_csv(self, project_id: int, data: bytes) -> Dict[str, int]:
        """Import guests from CSV file."""
        self._require_project(project_id)
        rows, skipped = self.parse_guest_csv(data)
        inserted = self.store.create_guests(project_id, rows)
        log.info("Imported %d guest(s) into project %s (%d skipped)", inserted, project_id, skipped)
        return {"inserted": inserted, "skipped": skipped}

    # ----------------- activity -----------------
    def recent_bindings(self, limit: int = 50) -> List[Dict[str, Any]]:
        limit = max(1, min(int(limit), 500))
        return self.store.recent_bindings(limit)

# =======================================================================================
# smartvisitor/services/lifecycle.py - Tag Assignment Lifecycle
# =======================================================================================
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import List, Optional

from fastapi.concurrency import run_in_threadpool

from ..config import config
from ..models.entities import Binding, Guest, PendingRequest, Scanner
from ..models.enums import EventKind
from ..models.events import BindingCancelled, BindingCompleted, BindingRemoved, BindingStarted
from ..utils.exceptions import (
    AlreadyResolvedError, InvalidIdentifierError, NotFoundError, StorageFailureError,
)
from ..utils.validators import IdentifierValidator
from .event_store import EventStore
from .notification_bus import NotificationBus
from .pending_table import PendingRequestTable

log = logging.getLogger("smartvisitor.lifecycle")


@dataclass
class StartOutcome:
    request: PendingRequest
    guest: Guest
    scanner: Scanner
    superseded: List[PendingRequest] = field(default_factory=list)


class LifecycleController:
    """
    Drives pending requests through waiting -> completed | cancelled and
    publishes exactly one bus event per externally visible transition.
    """

    def __init__(self, store: EventStore, table: PendingRequestTable, bus: NotificationBus,
                 expiry_seconds: Optional[int] = None):
        self.store = store
        self.table = table
        self.bus = bus
        self.expiry = timedelta(seconds=expiry_seconds or config.PENDING_EXPIRY_SECONDS)
        self.validator = IdentifierValidator()

    # ----------------------------------------------------------------------
    # Operator actions
    # ----------------------------------------------------------------------
    async def start(self, project_id, guest_id, scanner_id) -> StartOutcome:
        """Open a pending request binding the next scan on the scanner to the guest."""
        project_id = self.validator.require_id(project_id, "projectId")
        guest_id = self.validator.require_id(guest_id, "guestId")
        scanner_id = self.validator.require_id(scanner_id, "scannerId")

        guest = await run_in_threadpool(self.store.get_guest, project_id, guest_id)
        if guest is None:
            project = await run_in_threadpool(self.store.get_project, project_id)
            if project is None:
                raise InvalidIdentifierError(f"Project {project_id} not found")
            raise InvalidIdentifierError(f"Guest {guest_id} not found in project {project_id}")

        scanner = await run_in_threadpool(self.store.get_scanner, scanner_id)
        if scanner is None:
            raise InvalidIdentifierError(f"Scanner {scanner_id} not found")

        request, superseded = await self.table.open(project_id, guest_id, scanner_id)

        for old in superseded:
            self._publish_cancelled(old)
        self.bus.publish_filtered(
            EventKind.BINDING_STARTED.value,
            BindingStarted(
                requestId=request.id,
                projectId=request.project_id,
                guestId=request.guest_id,
                scannerId=request.scanner_id,
                createdAt=request.created_at,
            ),
        )
        log.info("Tag assignment %s started for guest %s on scanner %s",
                 request.id, guest_id, scanner_id)
        return StartOutcome(request=request, guest=guest, scanner=scanner, superseded=superseded)

    async def cancel(self, request_id) -> bool:
        """Cancel a waiting request. Unknown or already resolved ids are a no-op."""
        request_id = self.validator.require_id(request_id, "assignmentId")
        cancelled = await self.table.cancel(request_id)
        if cancelled is None:
            log.debug("Cancel of tag assignment %s was a no-op", request_id)
            return False
        self._publish_cancelled(cancelled)
        log.info("Tag assignment %s cancelled", request_id)
        return True

    async def remove_binding(self, project_id, guest_id) -> bool:
        """
        Clear the guest's binding and cancel any waiting request for them.
        Returns True if a binding row was removed.
        """
        project_id = self.validator.require_id(project_id, "projectId")
        guest_id = self.validator.require_id(guest_id, "guestId")

        claimed, removed = await self.table.cancel_with(
            lambda r: r.project_id == project_id and r.guest_id == guest_id,
            lambda ids: self.store.remove_binding(project_id, guest_id, ids),
        )

        for old in claimed:
            self._publish_cancelled(old)
        if removed:
            self._publish_removed(project_id, guest_id)
            log.info("Tag assignment removed for guest %s in project %s", guest_id, project_id)
        return removed

    # ----------------------------------------------------------------------
    # Matching
    # ----------------------------------------------------------------------
    async def complete_match(self, request: PendingRequest) -> Binding:
        """
        Persist a request the table has already moved to completed.

        AlreadyResolvedError means the durable row was not waiting any more;
        StorageFailureError means nothing was written and the request is
        waiting again.
        """
        try:
            binding = await run_in_threadpool(
                self.store.complete_and_bind,
                request.id, request.project_id, request.guest_id,
                request.tag_id, request.completed_at,
            )
        except AlreadyResolvedError:
            log.warning("Pending request %s was resolved in storage; dropping it", request.id)
            self.table.discard(request.id)
            raise
        except StorageFailureError:
            self.table.revert([request.id])
            raise
        self.table.forget([request.id])

        self.bus.publish_filtered(
            EventKind.BINDING_COMPLETED.value,
            BindingCompleted(
                requestId=request.id,
                projectId=request.project_id,
                guestId=request.guest_id,
                tagId=binding.tag_id,
                completedAt=binding.assigned_at,
            ),
        )
        log.info("Tag %s assigned to guest %s (request %s)",
                 binding.tag_id, request.guest_id, request.id)
        return binding

    # ----------------------------------------------------------------------
    # Housekeeping and cascades
    # ----------------------------------------------------------------------
    async def expire(self) -> List[PendingRequest]:
        expired = await self.table.expire(self.expiry)
        for old in expired:
            self._publish_cancelled(old)
        return expired

    async def remove_guest(self, project_id, guest_id) -> None:
        """Delete a guest, cancelling its waiting requests first."""
        project_id = self.validator.require_id(project_id, "projectId")
        guest_id = self.validator.require_id(guest_id, "guestId")

        guest = await run_in_threadpool(self.store.get_guest, project_id, guest_id)
        if guest is None:
            raise NotFoundError(f"Guest {guest_id} not found in project {project_id}")

        claimed, _ = await self.table.cancel_with(
            lambda r: r.project_id == project_id and r.guest_id == guest_id,
            lambda ids: self.store.delete_guest(project_id, guest_id, ids),
        )

        for old in claimed:
            self._publish_cancelled(old)
        if guest.tag_id:
            self._publish_removed(project_id, guest_id)
        log.info("Guest %s removed from project %s", guest_id, project_id)

    async def delete_project(self, project_id) -> None:
        """Delete a project, cancelling every waiting request in it first."""
        project_id = self.validator.require_id(project_id, "projectId")

        project = await run_in_threadpool(self.store.get_project, project_id)
        if project is None:
            raise NotFoundError(f"Project {project_id} not found")

        claimed, _ = await self.table.cancel_with(
            lambda r: r.project_id == project_id,
            lambda ids: self.store.delete_project(project_id, ids),
        )

        for old in claimed:
            self._publish_cancelled(old)
        log.info("Project %s deleted (%d pending request(s) cancelled)", project_id, len(claimed))

    # ----------------------------------------------------------------------
    # Helpers
    # ----------------------------------------------------------------------
    def _publish_cancelled(self, request: PendingRequest) -> None:
        self.bus.publish_filtered(
            EventKind.BINDING_CANCELLED.value, BindingCancelled(requestId=request.id)
        )

    def _publish_removed(self, project_id: int, guest_id: int) -> None:
        self.bus.publish_filtered(
            EventKind.BINDING_REMOVED.value,
            BindingRemoved(projectId=project_id, guestId=guest_id),
        )

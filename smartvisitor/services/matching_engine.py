# =======================================================================================
# smartvisitor/services/matching_engine.py - Core Scan Matching Logic
# =======================================================================================
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi.concurrency import run_in_threadpool

from ..models.entities import Binding, Guest, PendingRequest, ScanEvent, Scanner
from ..models.enums import EventKind, ScanClassification
from ..models.events import ScanObserved
from ..utils.clock import to_naive_utc, utcnow
from ..utils.exceptions import AlreadyResolvedError, StorageFailureError, UnknownScannerError
from ..utils.validators import IdentifierValidator
from .event_store import EventStore
from .lifecycle import LifecycleController
from .notification_bus import NotificationBus
from .pending_table import PendingRequestTable

log = logging.getLogger("smartvisitor.matching")


@dataclass
class ScanOutcome:
    classification: ScanClassification
    scan: ScanEvent
    scanner: Optional[Scanner] = None
    request: Optional[PendingRequest] = None
    binding: Optional[Binding] = None
    guest: Optional[Guest] = None

    @property
    def message(self) -> str:
        if self.classification == "matched":
            name = self.guest.name if self.guest else f"guest {self.binding.guest_id}"
            return f"Tag assigned to {name}"
        if self.classification == "observed":
            return "Scan recorded"
        return "Scanner not registered"


class MatchingEngine:
    """Classifies each scan as completing a pending request or as an observation."""

    def __init__(self, store: EventStore, table: PendingRequestTable,
                 lifecycle: LifecycleController, bus: NotificationBus):
        self.store = store
        self.table = table
        self.lifecycle = lifecycle
        self.bus = bus

    @staticmethod
    def build_scan(tag_id: str, scanner_mac: str, timestamp=None) -> ScanEvent:
        """Normalize raw ingest fields into a ScanEvent."""
        return ScanEvent(
            tag_id=IdentifierValidator.require_tag(tag_id),
            scanner_mac=IdentifierValidator.normalize_mac(scanner_mac),
            timestamp=to_naive_utc(timestamp) if timestamp else utcnow(),
        )

    async def process_scan(self, scan: ScanEvent) -> ScanOutcome:
        """
        Run one scan through the matching pipeline:
        - resolve the scanner by MAC (unknown scanners are dropped)
        - record the scanner heartbeat
        - complete the scanner's oldest waiting request, if any
        - otherwise publish the scan as an observation
        Only StorageFailureError escapes, when a binding could not be written.
        """
        log.info("Tag scan received: %s on scanner %s", scan.tag_id, scan.scanner_mac)

        try:
            scanner = await self._resolve_scanner(scan.scanner_mac)
        except UnknownScannerError as e:
            log.warning("%s (tag %s dropped)", e, scan.tag_id)
            return ScanOutcome(classification="unknown_scanner", scan=scan)

        await self._record_heartbeat(scanner)

        pending = self.table.find_waiting_by_scanner(scanner.id)
        if pending is not None:
            outcome = await self._try_complete(scan, scanner, pending)
            if outcome is not None:
                return outcome

        self.bus.publish_filtered(
            EventKind.SCAN_OBSERVED.value,
            ScanObserved(
                tagId=scan.tag_id,
                scannerMAC=scanner.mac_address,
                scannerName=scanner.name,
                timestamp=scan.timestamp,
            ),
        )
        return ScanOutcome(classification="observed", scan=scan, scanner=scanner)

    async def _resolve_scanner(self, mac: str) -> Scanner:
        scanner = await run_in_threadpool(self.store.get_scanner_by_mac, mac)
        if scanner is None:
            raise UnknownScannerError(mac)
        return scanner

    async def _try_complete(self, scan: ScanEvent, scanner: Scanner,
                            pending: PendingRequest) -> Optional[ScanOutcome]:
        """Returns None when the request was lost to a racing scan."""
        try:
            completed = self.table.complete(pending.id, scan.tag_id)
        except AlreadyResolvedError:
            log.info("Scan %s lost the race for request %s; treating as observation",
                     scan.tag_id, pending.id)
            return None

        try:
            binding = await self.lifecycle.complete_match(completed)
        except AlreadyResolvedError:
            return None

        guest = await self._lookup_guest(binding)
        return ScanOutcome(
            classification="matched",
            scan=scan,
            scanner=scanner,
            request=completed,
            binding=binding,
            guest=guest,
        )

    async def _record_heartbeat(self, scanner: Scanner) -> None:
        try:
            await run_in_threadpool(self.store.touch_scanner, scanner.id, utcnow())
        except StorageFailureError as e:
            # matching does not depend on the heartbeat column
            log.warning("Could not record heartbeat for scanner %s: %s", scanner.id, e)

    async def _lookup_guest(self, binding: Binding) -> Optional[Guest]:
        try:
            return await run_in_threadpool(self.store.get_guest, binding.project_id, binding.guest_id)
        except StorageFailureError as e:
            log.warning("Binding stored but guest %s lookup failed: %s", binding.guest_id, e)
            return None

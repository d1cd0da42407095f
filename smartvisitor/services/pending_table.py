# =======================================================================================
# smartvisitor/services/pending_table.py - Pending Tag Assignment Registry
# =======================================================================================
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from fastapi.concurrency import run_in_threadpool

from ..models.entities import PendingRequest
from ..models.enums import PendingStatus
from ..utils.clock import utcnow
from ..utils.exceptions import AlreadyResolvedError, ScannerBusyError, SmartVisitorError
from .event_store import EventStore

log = logging.getLogger("smartvisitor.pending")

Predicate = Callable[[PendingRequest], bool]


class PendingRequestTable:
    """
    In-memory registry of outstanding tag assignment requests, mirrored to
    the pending_tag_assignments table.

    All state transitions are check-and-set operations with no await between
    the check and the write, so the event loop serializes them. A row stays
    in memory while it is waiting or while its terminal transition is being
    written; it is dropped once the durable write succeeds, and put back to
    waiting if the write fails.

    Operator-side writes (open and every cancellation) additionally run one
    at a time under a table-wide lock, so none of them can slip in between
    another's durable write and its in-memory bookkeeping. Scans never take
    the lock; complete() stays a plain compare-and-set.

    Invariant: at most one row per scanner is waiting or in flight.
    """

    def __init__(self, store: EventStore):
        self.store = store
        self._requests: Dict[int, PendingRequest] = {}
        self._settled: Dict[int, asyncio.Event] = {}
        self._write_lock = asyncio.Lock()

    # ----------------------------------------------------------------------
    # Startup
    # ----------------------------------------------------------------------
    async def load(self) -> int:
        """Rebuild the registry from durable waiting rows."""
        rows = await run_in_threadpool(self.store.load_waiting)
        self._requests = {}
        self._settled = {}
        for row in rows:
            clash = self._row_on_scanner(row.scanner_id)
            if clash is not None:
                # oldest wins; later rows on a busy scanner are left for the janitor
                log.warning(
                    "Scanner %s has several waiting requests (%s, %s); matching uses the oldest",
                    row.scanner_id, clash.id, row.id,
                )
            self._requests[row.id] = row
        log.info("Loaded %d waiting tag assignment(s)", len(rows))
        return len(rows)

    # ----------------------------------------------------------------------
    # Queries
    # ----------------------------------------------------------------------
    def find_waiting_by_scanner(self, scanner_id: int) -> Optional[PendingRequest]:
        """Oldest waiting request for the scanner, by creation time then id."""
        row = self._oldest(
            r for r in self._requests.values()
            if r.scanner_id == scanner_id and r.is_waiting
        )
        return row.snapshot() if row else None

    def get(self, request_id: int) -> Optional[PendingRequest]:
        row = self._requests.get(request_id)
        return row.snapshot() if row else None

    def waiting(self) -> List[PendingRequest]:
        rows = [r for r in self._requests.values() if r.is_waiting]
        rows.sort(key=lambda r: (r.created_at, r.id))
        return [r.snapshot() for r in rows]

    def __len__(self) -> int:
        return sum(1 for r in self._requests.values() if r.is_waiting)

    # ----------------------------------------------------------------------
    # Transitions
    # ----------------------------------------------------------------------
    async def open(self, project_id: int, guest_id: int,
                   scanner_id: int) -> Tuple[PendingRequest, List[PendingRequest]]:
        """
        Cancel the guest's waiting request(s) in this project and insert a new
        waiting row on the scanner.

        Returns (new request, superseded requests). Raises ScannerBusyError if
        the scanner holds a request for anybody else, or one that is being
        resolved right now.
        """
        async with self._write_lock:
            for row in self._requests.values():
                if row.scanner_id != scanner_id:
                    continue
                if row.is_waiting and row.project_id == project_id and row.guest_id == guest_id:
                    continue
                raise ScannerBusyError(scanner_id, row.id)

            superseded = self._claim(
                lambda r: r.project_id == project_id and r.guest_id == guest_id,
                PendingStatus.CANCELLED,
            )
            created_at = utcnow()
            try:
                request_id = await run_in_threadpool(
                    self.store.open_pending, project_id, guest_id, scanner_id,
                    created_at, [r.id for r in superseded],
                )
            except SmartVisitorError:
                self.revert(r.id for r in superseded)
                raise

            self.forget(r.id for r in superseded)
            request = PendingRequest(
                id=request_id,
                project_id=project_id,
                guest_id=guest_id,
                scanner_id=scanner_id,
                status=PendingStatus.WAITING,
                created_at=created_at,
            )
            self._requests[request_id] = request
            return request.snapshot(), superseded

    def complete(self, request_id: int, tag_id: str,
                 completed_at: Optional[datetime] = None) -> PendingRequest:
        """
        Atomic waiting -> completed. Raises AlreadyResolvedError if the row is
        unknown or no longer waiting. The caller persists the result and then
        calls forget(), or revert() if persisting failed.
        """
        row = self._requests.get(request_id)
        if row is None or not row.is_waiting:
            raise AlreadyResolvedError(request_id)
        row.status = PendingStatus.COMPLETED
        row.completed_at = completed_at or utcnow()
        row.tag_id = tag_id
        self._mark_in_flight(row.id)
        return row.snapshot()

    async def cancel(self, request_id: int) -> Optional[PendingRequest]:
        """
        waiting -> cancelled. Returns None when there was nothing to cancel.

        A row whose completion or cancellation is still being written is
        waited for first: if that write fails the row is waiting again and
        gets cancelled here.
        """
        while True:
            await self.wait_settled(request_id)
            async with self._write_lock:
                row = self._requests.get(request_id)
                if row is not None and not row.is_waiting:
                    # a scan picked it up meanwhile
                    continue
                cancelled = await self._cancel_locked(lambda r: r.id == request_id)
                return cancelled[0] if cancelled else None

    async def cancel_where(self, predicate: Predicate) -> List[PendingRequest]:
        """Cancel every waiting row matching predicate, durably."""
        async with self._write_lock:
            return await self._cancel_locked(predicate)

    async def cancel_with(self, predicate: Predicate,
                          write: Callable[[List[int]], Any]) -> Tuple[List[PendingRequest], Any]:
        """
        Cancel the waiting rows matching predicate where the durable half is
        done by `write(ids)` together with other changes (binding removal,
        guest or project deletion). `write` runs in the threadpool under the
        table lock. Returns (cancelled requests, write's result).
        """
        async with self._write_lock:
            claimed = self._claim(predicate, PendingStatus.CANCELLED)
            ids = [r.id for r in claimed]
            try:
                result = await run_in_threadpool(write, ids)
            except SmartVisitorError:
                self.revert(ids)
                raise
            self.forget(ids)
            return claimed, result

    async def expire(self, horizon: timedelta) -> List[PendingRequest]:
        """Cancel waiting rows created more than `horizon` ago."""
        cutoff = utcnow() - horizon
        expired = await self.cancel_where(lambda r: r.created_at < cutoff)
        if expired:
            log.info("Expired %d pending tag assignment(s) older than %s", len(expired), horizon)
        return expired

    async def wait_settled(self, request_id: int) -> None:
        """Wait until no durable write for the row is in flight."""
        while True:
            event = self._settled.get(request_id)
            if event is None:
                return
            await event.wait()

    def forget(self, request_ids: Iterable[int]) -> None:
        """Drop rows whose terminal state is now durable."""
        for request_id in list(request_ids):
            row = self._requests.get(request_id)
            if row is not None and not row.is_waiting:
                del self._requests[request_id]
            self._release(request_id)

    def revert(self, request_ids: Iterable[int]) -> None:
        """Put rows whose durable transition failed back to waiting."""
        for request_id in list(request_ids):
            row = self._requests.get(request_id)
            if row is not None and not row.is_waiting:
                row.status = PendingStatus.WAITING
                row.completed_at = None
                row.tag_id = None
                log.warning("Pending request %s reverted to waiting", request_id)
            self._release(request_id)

    def discard(self, request_id: int) -> None:
        """Drop a row the durable store no longer considers waiting."""
        self._requests.pop(request_id, None)
        self._release(request_id)

    # ----------------------------------------------------------------------
    # Helpers
    # ----------------------------------------------------------------------
    async def _cancel_locked(self, predicate: Predicate) -> List[PendingRequest]:
        claimed = self._claim(predicate, PendingStatus.CANCELLED)
        if not claimed:
            return []
        ids = [r.id for r in claimed]
        try:
            await run_in_threadpool(self.store.cancel_pending, ids)
        except SmartVisitorError:
            self.revert(ids)
            raise
        self.forget(ids)
        return claimed

    def _claim(self, predicate: Predicate, status: PendingStatus) -> List[PendingRequest]:
        claimed = []
        for row in sorted(self._requests.values(), key=lambda r: (r.created_at, r.id)):
            if row.is_waiting and predicate(row):
                row.status = status
                self._mark_in_flight(row.id)
                claimed.append(row.snapshot())
        return claimed

    def _mark_in_flight(self, request_id: int) -> None:
        self._settled.setdefault(request_id, asyncio.Event())

    def _release(self, request_id: int) -> None:
        event = self._settled.pop(request_id, None)
        if event is not None:
            event.set()

    def _row_on_scanner(self, scanner_id: int) -> Optional[PendingRequest]:
        return self._oldest(r for r in self._requests.values() if r.scanner_id == scanner_id)

    @staticmethod
    def _oldest(rows: Iterable[PendingRequest]) -> Optional[PendingRequest]:
        return min(rows, key=lambda r: (r.created_at, r.id), default=None)

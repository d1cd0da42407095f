from datetime import timedelta

import pytest

from smartvisitor.models.enums import PendingStatus
from smartvisitor.services.pending_table import PendingRequestTable
from smartvisitor.utils.clock import utcnow
from smartvisitor.utils.exceptions import (
    AlreadyResolvedError, InvalidIdentifierError, ScannerBusyError, StorageFailureError,
)


@pytest.mark.asyncio
async def test_open_registers_waiting_request(services, seed):
    request, superseded = await services.table.open(seed["project"], seed["guest"], seed["scanner"])

    assert request.status is PendingStatus.WAITING
    assert superseded == []
    assert services.table.find_waiting_by_scanner(seed["scanner"]).id == request.id
    assert [r.id for r in services.store.load_waiting()] == [request.id]


@pytest.mark.asyncio
async def test_reopen_for_same_guest_cancels_previous(services, seed):
    first, _ = await services.table.open(seed["project"], seed["guest"], seed["scanner"])
    second, superseded = await services.table.open(seed["project"], seed["guest"], seed["scanner"])

    assert [r.id for r in superseded] == [first.id]
    assert services.table.get(first.id) is None
    assert [r.id for r in services.table.waiting()] == [second.id]
    assert [r.id for r in services.store.load_waiting()] == [second.id]


@pytest.mark.asyncio
async def test_busy_scanner_rejects_other_guest(services, seed):
    held, _ = await services.table.open(seed["project"], seed["guest"], seed["scanner"])

    with pytest.raises(ScannerBusyError) as exc:
        await services.table.open(seed["project"], seed["other_guest"], seed["scanner"])

    assert exc.value.request_id == held.id
    assert len(services.table) == 1


@pytest.mark.asyncio
async def test_complete_is_compare_and_set(services, seed):
    request, _ = await services.table.open(seed["project"], seed["guest"], seed["scanner"])

    done = services.table.complete(request.id, "Q3000E28")
    assert done.status is PendingStatus.COMPLETED
    assert done.tag_id == "Q3000E28"

    with pytest.raises(AlreadyResolvedError):
        services.table.complete(request.id, "OTHER")
    assert services.table.find_waiting_by_scanner(seed["scanner"]) is None


@pytest.mark.asyncio
async def test_revert_puts_row_back_to_waiting(services, seed):
    request, _ = await services.table.open(seed["project"], seed["guest"], seed["scanner"])
    services.table.complete(request.id, "Q3000E28")

    services.table.revert([request.id])

    restored = services.table.find_waiting_by_scanner(seed["scanner"])
    assert restored.id == request.id
    assert restored.tag_id is None
    assert restored.completed_at is None


@pytest.mark.asyncio
async def test_cancel_unknown_or_terminal_is_noop(services, seed):
    request, _ = await services.table.open(seed["project"], seed["guest"], seed["scanner"])

    assert await services.table.cancel(9999) is None
    assert (await services.table.cancel(request.id)).id == request.id
    assert await services.table.cancel(request.id) is None
    assert services.store.load_waiting() == []


@pytest.mark.asyncio
async def test_find_waiting_prefers_oldest(services, seed):
    # two rows on one scanner can only come from storage
    created = services.store.open_pending(seed["project"], seed["guest"], seed["scanner"],
                                          created_at=_at(0))
    older = services.store.open_pending(seed["project"], seed["other_guest"], seed["scanner"],
                                        created_at=_at(-60))
    table = PendingRequestTable(services.store)

    assert await table.load() == 2
    assert table.find_waiting_by_scanner(seed["scanner"]).id == older
    assert created != older


@pytest.mark.asyncio
async def test_expire_cancels_old_rows_only(services, seed):
    old, _ = await services.table.open(seed["project"], seed["guest"], seed["scanner"])
    fresh, _ = await services.table.open(seed["project"], seed["other_guest"], seed["other_scanner"])
    services.table._requests[old.id].created_at -= timedelta(hours=2)

    expired = await services.table.expire(timedelta(hours=1))

    assert [r.id for r in expired] == [old.id]
    assert [r.id for r in services.table.waiting()] == [fresh.id]
    assert [r.id for r in services.store.load_waiting()] == [fresh.id]


@pytest.mark.asyncio
async def test_failed_open_keeps_previous_request(services, seed, monkeypatch):
    first, _ = await services.table.open(seed["project"], seed["guest"], seed["scanner"])

    def broken(*args, **kwargs):
        raise StorageFailureError("disk full")

    monkeypatch.setattr(services.store, "open_pending", broken)
    with pytest.raises(StorageFailureError):
        await services.table.open(seed["project"], seed["guest"], seed["scanner"])

    assert [r.id for r in services.table.waiting()] == [first.id]


@pytest.mark.asyncio
async def test_open_for_deleted_guest_writes_nothing(services, seed):
    services.store.delete_guest(seed["project"], seed["guest"])

    with pytest.raises(InvalidIdentifierError, match="not found in project"):
        await services.table.open(seed["project"], seed["guest"], seed["scanner"])

    assert len(services.table) == 0
    assert services.store.load_waiting() == []


def _at(offset_seconds):
    return utcnow() + timedelta(seconds=offset_seconds)

import asyncio
import threading
import time

import pytest

from conftest import SCANNER_MAC, drain
from smartvisitor.utils.exceptions import (
    InvalidIdentifierError, NotFoundError, ScannerBusyError, StorageFailureError,
)

TAG = "Q3000E28011700000000"


@pytest.mark.asyncio
async def test_start_publishes_binding_started(services, seed, events):
    outcome = await services.lifecycle.start(seed["project"], seed["guest"], seed["scanner"])

    assert outcome.guest.name == "Willem van Leunen"
    assert outcome.scanner.mac_address == SCANNER_MAC
    [message] = drain(events)
    assert message["type"] == "binding-started"
    assert message["requestId"] == outcome.request.id
    assert message["scannerId"] == seed["scanner"]


@pytest.mark.asyncio
async def test_restart_cancels_prior_request_first(services, seed, events):
    first = await services.lifecycle.start(seed["project"], seed["guest"], seed["scanner"])
    second = await services.lifecycle.start(seed["project"], seed["guest"], seed["other_scanner"])

    assert [r.id for r in second.superseded] == [first.request.id]
    messages = drain(events)
    assert [m["type"] for m in messages] == [
        "binding-started", "binding-cancelled", "binding-started",
    ]
    assert messages[1]["requestId"] == first.request.id
    assert [r.id for r in services.table.waiting()] == [second.request.id]


@pytest.mark.asyncio
async def test_start_rejects_bad_identifiers(services, seed):
    with pytest.raises(InvalidIdentifierError, match="Project 999 not found"):
        await services.lifecycle.start(999, seed["guest"], seed["scanner"])
    with pytest.raises(InvalidIdentifierError, match="not found in project"):
        await services.lifecycle.start(seed["project"], 999, seed["scanner"])
    with pytest.raises(InvalidIdentifierError, match="Scanner 999 not found"):
        await services.lifecycle.start(seed["project"], seed["guest"], 999)
    with pytest.raises(InvalidIdentifierError):
        await services.lifecycle.start(seed["project"], 0, seed["scanner"])
    assert len(services.table) == 0


@pytest.mark.asyncio
async def test_start_on_busy_scanner_fails(services, seed, events):
    await services.lifecycle.start(seed["project"], seed["guest"], seed["scanner"])
    drain(events)

    with pytest.raises(ScannerBusyError):
        await services.lifecycle.start(seed["project"], seed["other_guest"], seed["scanner"])
    assert drain(events) == []


@pytest.mark.asyncio
async def test_double_cancel_notifies_once(services, seed, events):
    outcome = await services.lifecycle.start(seed["project"], seed["guest"], seed["scanner"])
    drain(events)

    assert await services.lifecycle.cancel(outcome.request.id) is True
    assert await services.lifecycle.cancel(outcome.request.id) is False

    assert [m["type"] for m in drain(events)] == ["binding-cancelled"]


@pytest.mark.asyncio
async def test_cancelled_request_is_never_matched(services, seed):
    outcome = await services.lifecycle.start(seed["project"], seed["guest"], seed["scanner"])
    await services.lifecycle.cancel(outcome.request.id)

    result = await services.engine.process_scan(services.engine.build_scan(TAG, SCANNER_MAC))

    assert result.classification == "observed"


@pytest.mark.asyncio
async def test_remove_binding_clears_tag_and_pending(services, seed, events):
    await services.lifecycle.start(seed["project"], seed["guest"], seed["scanner"])
    await services.engine.process_scan(services.engine.build_scan(TAG, SCANNER_MAC))
    pending = await services.lifecycle.start(seed["project"], seed["guest"], seed["scanner"])
    drain(events)

    assert await services.lifecycle.remove_binding(seed["project"], seed["guest"]) is True

    messages = drain(events)
    assert [m["type"] for m in messages] == ["binding-cancelled", "binding-removed"]
    assert messages[0]["requestId"] == pending.request.id
    assert services.store.get_guest(seed["project"], seed["guest"]).tag_id is None
    assert len(services.table) == 0


@pytest.mark.asyncio
async def test_remove_binding_without_tag_is_quiet(services, seed, events):
    assert await services.lifecycle.remove_binding(seed["project"], seed["guest"]) is False
    assert drain(events) == []


@pytest.mark.asyncio
async def test_expire_emits_one_cancel_per_request(services, seed, events):
    lifecycle = services.lifecycle
    a = await lifecycle.start(seed["project"], seed["guest"], seed["scanner"])
    b = await lifecycle.start(seed["project"], seed["other_guest"], seed["other_scanner"])
    drain(events)
    for request in (a.request, b.request):
        services.table._requests[request.id].created_at -= lifecycle.expiry * 2

    expired = await lifecycle.expire()

    assert sorted(r.id for r in expired) == sorted([a.request.id, b.request.id])
    messages = drain(events)
    assert [m["type"] for m in messages] == ["binding-cancelled", "binding-cancelled"]
    assert services.store.load_waiting() == []


@pytest.mark.asyncio
async def test_remove_guest_cascades(services, seed, events):
    outcome = await services.lifecycle.start(seed["project"], seed["guest"], seed["scanner"])
    drain(events)

    await services.lifecycle.remove_guest(seed["project"], seed["guest"])

    messages = drain(events)
    assert messages == [{"type": "binding-cancelled", "requestId": outcome.request.id}]
    assert services.store.get_guest(seed["project"], seed["guest"]) is None
    assert len(services.table) == 0

    with pytest.raises(NotFoundError):
        await services.lifecycle.remove_guest(seed["project"], seed["guest"])


@pytest.mark.asyncio
async def test_delete_project_cancels_everything(services, seed, events):
    await services.lifecycle.start(seed["project"], seed["guest"], seed["scanner"])
    await services.lifecycle.start(seed["project"], seed["other_guest"], seed["other_scanner"])
    drain(events)

    await services.lifecycle.delete_project(seed["project"])

    assert [m["type"] for m in drain(events)] == ["binding-cancelled", "binding-cancelled"]
    assert services.store.get_project(seed["project"]) is None
    assert services.store.counts()["pending_assignments"] == 0
    assert len(services.table) == 0


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "method, action",
    [
        ("remove_binding", lambda lifecycle, seed: lifecycle.remove_binding(seed["project"], seed["guest"])),
        ("delete_guest", lambda lifecycle, seed: lifecycle.remove_guest(seed["project"], seed["guest"])),
        ("delete_project", lambda lifecycle, seed: lifecycle.delete_project(seed["project"])),
    ],
)
async def test_failed_cascade_keeps_request_waiting(services, seed, events, monkeypatch,
                                                    method, action):
    outcome = await services.lifecycle.start(seed["project"], seed["guest"], seed["scanner"])
    drain(events)

    def broken(*args, **kwargs):
        raise StorageFailureError("connection lost")

    monkeypatch.setattr(services.store, method, broken)
    with pytest.raises(StorageFailureError):
        await action(services.lifecycle, seed)

    assert [r.id for r in services.table.waiting()] == [outcome.request.id]
    assert [r.id for r in services.store.load_waiting()] == [outcome.request.id]
    assert services.store.get_guest(seed["project"], seed["guest"]) is not None
    assert drain(events) == []


def _stalled(real, entered, error=None, delay=0.2):
    """Wrap a store method so the test can act while the write is in flight."""
    def wrapper(*args, **kwargs):
        entered.set()
        time.sleep(delay)
        if error is not None:
            raise error
        return real(*args, **kwargs)
    return wrapper


@pytest.mark.asyncio
async def test_delete_project_waits_for_in_flight_start(services, seed, events, monkeypatch):
    entered = threading.Event()
    monkeypatch.setattr(services.store, "open_pending",
                        _stalled(services.store.open_pending, entered))

    start = asyncio.create_task(
        services.lifecycle.start(seed["project"], seed["guest"], seed["scanner"])
    )
    assert await asyncio.to_thread(entered.wait, 5)
    await services.lifecycle.delete_project(seed["project"])
    outcome = await start

    messages = drain(events)
    assert [m["type"] for m in messages] == ["binding-started", "binding-cancelled"]
    assert messages[1]["requestId"] == outcome.request.id
    assert services.table.waiting() == []
    assert services.store.load_waiting() == []


@pytest.mark.asyncio
async def test_start_after_guest_removal_leaves_nothing_behind(services, seed, events, monkeypatch):
    entered = threading.Event()
    monkeypatch.setattr(services.store, "delete_guest",
                        _stalled(services.store.delete_guest, entered))

    removal = asyncio.create_task(services.lifecycle.remove_guest(seed["project"], seed["guest"]))
    assert await asyncio.to_thread(entered.wait, 5)
    with pytest.raises(InvalidIdentifierError, match="not found in project"):
        await services.lifecycle.start(seed["project"], seed["guest"], seed["scanner"])
    await removal

    assert services.table.waiting() == []
    assert services.store.counts()["pending_assignments"] == 0
    assert drain(events) == []


@pytest.mark.asyncio
async def test_cancel_during_failed_restart_still_cancels(services, seed, events, monkeypatch):
    first = await services.lifecycle.start(seed["project"], seed["guest"], seed["scanner"])
    drain(events)
    entered = threading.Event()
    monkeypatch.setattr(services.store, "open_pending",
                        _stalled(services.store.open_pending, entered,
                                 error=StorageFailureError("connection lost")))

    restart = asyncio.create_task(
        services.lifecycle.start(seed["project"], seed["guest"], seed["scanner"])
    )
    assert await asyncio.to_thread(entered.wait, 5)
    assert await services.lifecycle.cancel(first.request.id) is True
    with pytest.raises(StorageFailureError):
        await restart

    assert services.table.waiting() == []
    assert services.store.load_waiting() == []
    assert drain(events) == [{"type": "binding-cancelled", "requestId": first.request.id}]


@pytest.mark.asyncio
async def test_cancel_during_failed_completion_still_cancels(services, seed, events, monkeypatch):
    outcome = await services.lifecycle.start(seed["project"], seed["guest"], seed["scanner"])
    drain(events)
    entered = threading.Event()
    monkeypatch.setattr(services.store, "complete_and_bind",
                        _stalled(services.store.complete_and_bind, entered,
                                 error=StorageFailureError("connection lost")))

    scan = asyncio.create_task(
        services.engine.process_scan(services.engine.build_scan(TAG, SCANNER_MAC))
    )
    assert await asyncio.to_thread(entered.wait, 5)
    assert await services.lifecycle.cancel(outcome.request.id) is True
    with pytest.raises(StorageFailureError):
        await scan

    assert services.table.waiting() == []
    assert services.store.load_waiting() == []
    assert services.store.get_guest(seed["project"], seed["guest"]).tag_id is None
    assert [m["type"] for m in drain(events)] == ["binding-cancelled"]

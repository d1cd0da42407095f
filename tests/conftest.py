# tests/conftest.py
"""
Shared fixtures: a throwaway SQLite database seeded with one project,
one guest and one scanner linked to the project.
"""

import pytest

from smartvisitor.database import DatabaseManager
from smartvisitor.services.container import Services
from smartvisitor.services.event_store import EventStore

SCANNER_MAC = "F0:F5:BD:54:36:A8"
OTHER_MAC = "AA:BB:CC:DD:EE:01"


@pytest.fixture
def db(tmp_path):
    manager = DatabaseManager(f"sqlite:///{tmp_path / 'smartvisitor_test.db'}")
    manager.create_schema()
    yield manager
    manager.dispose()


@pytest.fixture
def store(db):
    return EventStore(db)


@pytest.fixture
def seed(store):
    """Ids of the seeded rows."""
    project_id = store.create_project("Lowlands 2025", "Backstage guests")
    guest_id = store.create_guest(project_id, "Willem van Leunen", "willem@example.com")
    other_guest_id = store.create_guest(project_id, "Sanne de Vries", vip=True)
    scanner_id = store.create_scanner("Entrance", SCANNER_MAC, "Gate A")
    other_scanner_id = store.create_scanner("Backstage", OTHER_MAC, "Gate B")
    store.link_scanner(project_id, scanner_id)
    store.link_scanner(project_id, other_scanner_id)
    return {
        "project": project_id,
        "guest": guest_id,
        "other_guest": other_guest_id,
        "scanner": scanner_id,
        "other_scanner": other_scanner_id,
    }


@pytest.fixture
def services(db, seed):
    return Services.build(db)


@pytest.fixture
def events(services):
    """Unfiltered subscriber registered on the bus."""
    return services.bus.create_subscriber()


def drain(subscriber):
    """Everything currently queued for a subscriber, oldest first."""
    messages = []
    while not subscriber.queue.empty():
        message = subscriber.queue.get_nowait()
        if message is not None:
            messages.append(message)
    return messages

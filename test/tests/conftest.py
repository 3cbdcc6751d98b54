"""
Project: Restaurant POS (restopos)

Description:
Shared fixtures. State-machine tests run against the in-memory store with a
recording print sink and a hand-driven clock; API tests run the Flask app
against an in-memory SQLite database.
"""

from datetime import datetime, timedelta, timezone

import pytest

from restopos.app import create_app
from restopos.coordinator import PosCoordinator
from restopos.models import db
from restopos.printing import TicketSink
from restopos.repository import MemoryRepository


class Clock:
    def __init__(self):
        self.now = datetime(2026, 3, 14, 18, 30, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class RecordingSink(TicketSink):
    def __init__(self, accept=True):
        self.accept = accept
        self.tickets = []

    def emit(self, kind, ticket):
        self.tickets.append((kind, ticket))
        return self.accept


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def repo():
    return MemoryRepository()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def coordinator(repo, sink, clock):
    return PosCoordinator(repo, sink, clock=clock)


@pytest.fixture
def pos(coordinator):
    """A coordinator with a small menu, three tables and no register."""
    coordinator.add_category("Arroces")
    coordinator.add_category("Bebidas")
    coordinator.add_menu_item({"name": "Chaufa", "price": 15.00, "category": "Arroces"})
    coordinator.add_menu_item({"name": "Chicha", "price": 8.00, "category": "Bebidas"})
    for number in (1, 2, 3):
        coordinator.add_table(number)
    return coordinator


@pytest.fixture
def dish(pos):
    def lookup(name):
        return next(m.id for m in pos.state.menu_items if m.name == name)

    return lookup


@pytest.fixture
def app():
    app = create_app(testing=True)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()

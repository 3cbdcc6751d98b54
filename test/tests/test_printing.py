"""
Project: Restaurant POS (restopos)

Description:
Kitchen and receipt tickets, and print or store failures that must not
block the order workflow.
"""

from decimal import Decimal

import requests

from restopos.coordinator import PosCoordinator
from restopos.errors import RepositoryError
from restopos.printing import HttpTicketSink, Ticket, TicketLine
from restopos.repository import MemoryRepository


class _Response:
    def __init__(self, status=200):
        self.status = status

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status} error")


class _Session:
    def __init__(self, fail=None, status=200):
        self.fail = fail
        self.status = status
        self.calls = []

    def post(self, url, json=None, timeout=None):
        self.calls.append((url, json, timeout))
        if self.fail:
            raise self.fail
        return _Response(self.status)


def _ticket():
    return Ticket(
        order_number="MESA-2-abc123",
        items=(TicketLine("Chaufa", 2, "sin cebolla"),),
        table="Mesa 2",
        waiter="Rosa",
        time="14/03/2026 13:30:00",
        total=Decimal("30.00"),
        payment_method="efectivo",
    )


def test_http_sink_posts_to_relay():
    session = _Session()
    sink = HttpTicketSink("http://printer:3001/", timeout=2, session=session)

    assert sink.emit("receipt", _ticket()) is True

    url, body, timeout = session.calls[0]
    assert url == "http://printer:3001/print-receipt"
    assert timeout == 2
    assert body["orderNumber"] == "MESA-2-abc123"
    assert body["items"] == [{"name": "Chaufa", "quantity": 2, "notes": "sin cebolla"}]
    assert body["total"] == 30.0
    assert body["paymentMethod"] == "efectivo"


def test_http_sink_reports_unreachable_relay():
    sink = HttpTicketSink("http://printer:3001", session=_Session(fail=requests.ConnectionError("down")))
    assert sink.emit("kitchen", _ticket()) is False


def test_http_sink_reports_relay_error():
    sink = HttpTicketSink("http://printer:3001", session=_Session(status=500))
    assert sink.emit("kitchen", _ticket()) is False


def test_failed_print_does_not_block_close(pos, dish, sink):
    pos.open_register(0)
    pos.stage_item(2, dish("Chaufa"))
    order = pos.submit_table_order(2, "w1", "Rosa").result
    sink.accept = False

    outcome = pos.close_order(order.id, "efectivo")

    assert outcome.result.status == "cerrada"
    assert outcome.warnings == (f"receipt ticket MESA-2-{order.id[-6:]} was not printed",)
    assert pos.state.order(order.id).status == "cerrada"


class _ReadOnly(MemoryRepository):
    def create_order(self, order):
        raise RepositoryError("disk full")


def test_store_failure_becomes_warning(sink, clock):
    pos = PosCoordinator(_ReadOnly(), sink, clock=clock)
    pos.add_category("Bebidas")
    chicha = pos.add_menu_item({"name": "Chicha", "price": 8, "category": "Bebidas"}).result

    outcome = pos.create_takeaway_order([{"menu_item_id": chicha.id}])

    assert outcome.result.total == Decimal("8.00")
    assert outcome.warnings == ("CreateOrderRecord: disk full",)
    assert pos.state.order(outcome.result.id).is_open
    assert sink.tickets[-1][0] == "kitchen"

"""
Project: Restaurant POS (restopos)

Description:
Order lifecycle: submitting staged lines, kitchen progress per item and
closing an order against the open cash register.
"""

from decimal import Decimal

import pytest

from restopos.coordinator import PosCoordinator
from restopos.errors import (
    AlreadyClosedError,
    InvalidTransitionError,
    RegisterClosedError,
    ValidationError,
)


def _submit(pos, dish, table=1):
    pos.stage_item(table, dish("Chaufa"), 1)
    pos.stage_item(table, dish("Chicha"), 2)
    return pos.submit_table_order(table, "w1", "Rosa").result


def test_submit_builds_order_from_staged_lines(pos, dish, repo, sink):
    order = _submit(pos, dish)

    assert order.total == Decimal("31.00")
    assert order.status == "abierta"
    assert [i.status for i in order.items] == ["nuevo", "nuevo"]
    assert all(i.order_id == order.id for i in order.items)

    table = pos.state.table(1)
    assert table.current_order == ()
    assert table.status == "ocupada"
    assert table.waiter_name == "Rosa"

    assert repo.orders[order.id].total == Decimal("31.00")
    kind, ticket = sink.tickets[-1]
    assert kind == "kitchen"
    assert ticket.to_payload()["orderNumber"] == f"MESA-1-{order.id[-6:]}"
    assert ticket.to_payload()["items"][1] == {"name": "Chicha", "quantity": 2}


def test_submitting_empty_table_is_rejected(pos):
    before, commits = pos.state, pos.version
    with pytest.raises(ValidationError):
        pos.submit_table_order(2, "w1", "Rosa")
    assert pos.state is before
    assert pos.version == commits


def test_close_applies_discount_and_books_sale(pos, dish, repo, sink):
    pos.open_register(100)
    order = _submit(pos, dish)

    closed = pos.close_order(order.id, "efectivo", discount=1.00, tip=0).result

    assert closed.total == Decimal("30.00")
    assert closed.status == "cerrada"
    stored = repo.orders[order.id]
    assert stored.total == Decimal("30.00")
    assert stored.payment_method == "efectivo"
    assert stored.closed_at is not None

    register = pos.state.cash_register
    assert register.current_amount == Decimal("130.00")
    assert register.total_sales == Decimal("30.00")
    assert repo.registers[register.id].current_amount == Decimal("130.00")
    assert pos.state.daily_sales == Decimal("30.00")
    assert pos.state.closed_orders == 1

    kind, ticket = sink.tickets[-1]
    assert kind == "receipt"
    assert ticket.to_payload()["total"] == 30.0
    assert ticket.to_payload()["paymentMethod"] == "efectivo"


def test_closed_total_is_items_minus_discount_plus_tip(pos, dish):
    pos.open_register(0)
    order = _submit(pos, dish)
    closed = pos.close_order(order.id, "tarjeta", discount="2.50", tip="4").result
    assert closed.total == order.total - Decimal("2.50") + Decimal("4.00")


def test_item_status_moves_forward_only(pos, dish, clock):
    order = _submit(pos, dish)
    item_id = order.items[0].id

    clock.advance(minutes=2)
    started = clock.now
    pos.advance_item_status(order.id, item_id, "preparando")
    clock.advance(minutes=5)
    updated = pos.advance_item_status(order.id, item_id, "listo").result

    item = updated.item(item_id)
    assert item.status == "listo"
    assert item.start_time == started

    with pytest.raises(InvalidTransitionError):
        pos.advance_item_status(order.id, item_id, "preparando")


def test_item_cannot_skip_preparation(pos, dish):
    order = _submit(pos, dish)
    with pytest.raises(InvalidTransitionError):
        pos.advance_item_status(order.id, order.items[0].id, "listo")


def test_item_progress_is_persisted(pos, dish, repo):
    order = _submit(pos, dish)
    item_id = order.items[1].id
    pos.advance_item_status(order.id, item_id, "preparando")
    assert repo.orders[order.id].item(item_id).status == "preparando"


def test_closed_order_cannot_change(pos, dish):
    pos.open_register(50)
    order = _submit(pos, dish)
    pos.close_order(order.id, "yape")
    register = pos.state.cash_register

    with pytest.raises(AlreadyClosedError):
        pos.close_order(order.id, "yape")
    with pytest.raises(InvalidTransitionError):
        pos.advance_item_status(order.id, order.items[0].id, "preparando")
    assert pos.state.cash_register == register


def test_unknown_payment_method(pos, dish):
    pos.open_register(0)
    order = _submit(pos, dish)
    with pytest.raises(ValidationError):
        pos.close_order(order.id, "bitcoin")
    assert pos.state.order(order.id).is_open


def test_close_without_open_register(pos, dish, repo):
    order = _submit(pos, dish)
    with pytest.raises(RegisterClosedError):
        pos.close_order(order.id, "efectivo")
    assert pos.state.order(order.id).is_open
    assert repo.orders[order.id].status == "abierta"


def test_negative_total_guard(repo, sink, clock):
    strict = PosCoordinator(repo, sink, clock=clock, allow_negative_totals=False)
    strict.add_category("Bebidas")
    strict.add_menu_item({"name": "Chicha", "price": 8, "category": "Bebidas"})
    chicha = strict.state.menu_items[0].id
    strict.open_register(0)
    order = strict.create_takeaway_order([{"menu_item_id": chicha}]).result

    with pytest.raises(ValidationError):
        strict.close_order(order.id, "efectivo", discount=10)
    assert strict.state.order(order.id).is_open


def test_negative_total_allowed_by_default(pos, dish):
    pos.open_register(0)
    order = pos.create_takeaway_order([{"menu_item_id": dish("Chicha")}]).result
    closed = pos.close_order(order.id, "efectivo", discount=10).result
    assert closed.total == Decimal("-2.00")


def test_takeaway_order(pos, dish, sink):
    pos.open_register(0)
    order = pos.create_takeaway_order(
        [{"menu_item_id": dish("Chaufa"), "quantity": 2, "notes": "sin cebolla"}], "caja-1"
    ).result

    assert order.table_number == 0
    assert order.is_takeaway
    assert order.waiter_name == "Para Llevar"
    assert order.total == Decimal("30.00")
    assert order.items[0].notes == "sin cebolla"
    assert sink.tickets[-1][1].order_number.startswith("LLEVAR-")

    pos.close_order(order.id, "plin")
    assert [t.status for t in pos.state.tables] == ["libre", "libre", "libre"]


def test_takeaway_rejects_unavailable_dish(pos, dish):
    pos.toggle_availability(dish("Chaufa"))
    with pytest.raises(ValidationError):
        pos.create_takeaway_order([{"menu_item_id": dish("Chaufa")}])


def test_menu_price_change_leaves_open_order_alone(pos, dish):
    order = _submit(pos, dish)
    pos.update_menu_item(dish("Chaufa"), {"price": 99})
    assert pos.state.order(order.id).total == Decimal("31.00")


def test_second_device_cannot_book_the_same_payment(repo, sink, clock):
    first = PosCoordinator(repo, clock=clock)
    first.add_category("Bebidas")
    chicha = first.add_menu_item({"name": "Chicha", "price": 8, "category": "Bebidas"}).result
    register = first.open_register(100).result
    order = first.create_takeaway_order([{"menu_item_id": chicha.id}]).result

    second = PosCoordinator(repo, sink, clock=clock)
    second.sync()
    first.close_order(order.id, "efectivo")

    outcome = second.close_order(order.id, "tarjeta")

    assert any("already closed" in w for w in outcome.warnings)
    assert repo.registers[register.id].current_amount == Decimal("108.00")
    assert repo.orders[order.id].payment_method == "efectivo"
    assert sink.tickets == []

    second.sync()
    assert second.state.cash_register.current_amount == Decimal("108.00")
    assert second.state.order(order.id).payment_method == "efectivo"

"""Table state machine.

libre -> ocupada -> servido -> cuenta -> limpieza -> libre

A table's ``current_order`` is local staging only: it is built here, turned
into an Order by ``orders.submit_table_order`` and never written to the store.
Only status and capacity are persisted.
"""

from __future__ import annotations

from dataclasses import replace
from uuid import uuid4

from restopos.domain import OrderItem, Table, parse_quantity
from restopos.effects import DeleteTable, PersistTable, Transition
from restopos.errors import (
    InvalidStateError,
    NotFoundError,
    NotReadyError,
    ValidationError,
)

# Tables that still accept new dishes. Adding to a served table starts a new
# round and puts it back to ocupada.
STAGING_STATUSES = ("libre", "ocupada", "servido")


def _require_status(table: Table, allowed, action: str) -> None:
    if table.status not in allowed:
        raise InvalidStateError(f"table {table.number} is {table.status}; cannot {action}")


def _staged_line(table: Table, line_id: str) -> OrderItem:
    for line in table.current_order:
        if line.id == line_id:
            return line
    raise NotFoundError(f"line {line_id} is not staged on table {table.number}")


def _restage(state, table: Table, lines: tuple):
    changes = {"current_order": lines}
    if not lines and not state.open_orders_for(table.number):
        changes.update(status="libre", order_start_time=None)
    return state.with_table(replace(table, **changes))


def stage_item(state, table_number, menu_item_id, quantity=1, notes=None, now=None) -> Transition:
    table = state.table(table_number)
    _require_status(table, STAGING_STATUSES, "add items")
    line = OrderItem.snapshot(state.menu_item(menu_item_id), quantity, notes)
    updated = replace(
        table,
        current_order=table.current_order + (line,),
        status="ocupada",
        order_start_time=table.order_start_time or now,
    )
    return Transition(state.with_table(updated), (), line)


def update_staged_quantity(state, table_number, line_id, quantity) -> Transition:
    table = state.table(table_number)
    _staged_line(table, line_id)
    quantity = parse_quantity(quantity)
    if quantity <= 0:
        lines = tuple(line for line in table.current_order if line.id != line_id)
    else:
        lines = tuple(
            replace(line, quantity=quantity) if line.id == line_id else line
            for line in table.current_order
        )
    new_state = _restage(state, table, lines)
    return Transition(new_state, (), new_state.table(table_number))


def remove_staged_item(state, table_number, line_id) -> Transition:
    return update_staged_quantity(state, table_number, line_id, 0)


def set_customer_count(state, table_number, count) -> Transition:
    table = state.table(table_number)
    count = parse_quantity(count)
    if count < 1:
        raise ValidationError("customer_count must be at least 1")
    updated = replace(table, customer_count=count)
    return Transition(state.with_table(updated), (), updated)


def mark_served(state, table_number) -> Transition:
    table = state.table(table_number)
    _require_status(table, ("ocupada",), "mark as served")
    open_orders = state.open_orders_for(table_number)
    if not open_orders:
        raise NotReadyError(f"table {table_number} has no open order")
    if not all(order.all_items_ready for order in open_orders):
        raise NotReadyError("not every dish is ready; check with the kitchen")
    updated = replace(table, status="servido")
    return Transition(state.with_table(updated), (PersistTable(updated),), updated)


def request_bill(state, table_number) -> Transition:
    table = state.table(table_number)
    _require_status(table, ("servido",), "request the bill before it is served")
    updated = replace(table, status="cuenta")
    return Transition(state.with_table(updated), (PersistTable(updated),), updated)


def vacate(state, table_number):
    """Send a paid table to limpieza and drop its staging fields.

    Returns ``(state, effects)``. Nothing happens while another open order
    still sits on the table, or when the table no longer exists.
    """
    try:
        table = state.table(table_number)
    except NotFoundError:
        return state, ()
    if state.open_orders_for(table_number):
        return state, ()
    updated = replace(
        table,
        status="limpieza",
        current_order=(),
        waiter_name=None,
        customer_count=None,
        order_start_time=None,
    )
    return state.with_table(updated), (PersistTable(updated),)


def release_table(state, table_number) -> Transition:
    table = state.table(table_number)
    _require_status(table, ("limpieza",), "release it")
    updated = replace(table, status="libre")
    return Transition(state.with_table(updated), (PersistTable(updated),), updated)


def add_table(state, number, capacity=4) -> Transition:
    number = parse_quantity(number)
    capacity = parse_quantity(capacity)
    if number < 1:
        raise ValidationError("table number must be greater than 0")
    if capacity < 1:
        raise ValidationError("capacity must be greater than 0")
    if any(t.number == number for t in state.tables):
        raise ValidationError(f"table {number} already exists")
    table = Table(id=uuid4().hex, number=number, capacity=capacity)
    new_state = replace(state, tables=state.tables + (table,))
    return Transition(new_state, (PersistTable(table, created=True),), table)


def remove_table(state, table_number) -> Transition:
    table = state.table(table_number)
    if table.is_staging or state.open_orders_for(table_number):
        raise InvalidStateError(f"table {table_number} has an order in progress")
    new_state = replace(state, tables=tuple(t for t in state.tables if t.number != table_number))
    return Transition(new_state, (DeleteTable(table.id),), table)

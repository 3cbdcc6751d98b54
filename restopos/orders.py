"""Order state machine.

Orders go abierta -> cerrada exactly once. Their items go
nuevo -> preparando -> listo and never back.
"""

from __future__ import annotations

from dataclasses import replace
from uuid import uuid4

from restopos import cash, tables
from restopos.domain import (
    PAYMENT_METHODS,
    TAKEAWAY_LABEL,
    TAKEAWAY_TABLE,
    ZERO,
    Order,
    OrderItem,
    items_total,
    money,
    parse_quantity,
)
from restopos.effects import (
    CloseOrderRecord,
    CreateOrderRecord,
    EmitTicket,
    PersistOrder,
    PersistTable,
    Transition,
)
from restopos.errors import (
    AlreadyClosedError,
    InvalidTransitionError,
    ValidationError,
)
from restopos.printing import kitchen_ticket, receipt_ticket

LEGAL_ITEM_TRANSITIONS = {("nuevo", "preparando"), ("preparando", "listo")}
CLOSED_ORDER_FIELDS = ("status", "payment_method", "discount", "tip", "total", "closed_at")


def all_items_ready(order: Order) -> bool:
    return order.all_items_ready


def create_order(state, table_number, items, waiter_id, waiter_name, customer_count, now) -> Transition:
    """Turn staged lines into an open Order.

    The caller owns the table side: marking it ocupada and clearing its
    staging list.
    """
    items = tuple(items)
    if not items:
        raise ValidationError("cannot submit an empty order")
    customer_count = parse_quantity(customer_count or 1)
    if customer_count < 1:
        raise ValidationError("customer_count must be at least 1")
    order_id = uuid4().hex
    stamped = tuple(replace(item, order_id=order_id, status="nuevo", start_time=None) for item in items)
    order = Order(
        id=order_id,
        table_number=table_number,
        items=stamped,
        total=items_total(stamped),
        status="abierta",
        timestamp=now,
        waiter_id=waiter_id,
        waiter_name=waiter_name,
        customer_count=customer_count,
    )
    new_state = replace(state, orders=state.orders + (order,))
    return Transition(new_state, (CreateOrderRecord(order),), order)


def submit_table_order(state, table_number, waiter_id, waiter_name, customer_count=None, now=None) -> Transition:
    """Send a table's staged lines to the kitchen."""
    table = state.table(table_number)
    customer_count = customer_count or table.customer_count or 1
    created = create_order(
        state, table.number, table.current_order, waiter_id, waiter_name, customer_count, now
    )
    order = created.result
    updated = replace(
        table,
        current_order=(),
        status="ocupada",
        waiter_name=waiter_name,
        customer_count=order.customer_count,
    )
    effects = created.effects + (
        PersistTable(updated),
        EmitTicket("kitchen", kitchen_ticket(order, now)),
    )
    return Transition(created.state.with_table(updated), effects, order)


def create_takeaway_order(state, lines, cashier_id, now) -> Transition:
    """Build a Para Llevar order (table 0) straight from menu item ids."""
    items = []
    for line in lines or ():
        menu_item_id = line.get("menu_item_id")
        if not menu_item_id:
            raise ValidationError("each line needs a menu_item_id")
        menu_item = state.menu_item(str(menu_item_id))
        items.append(OrderItem.snapshot(menu_item, line.get("quantity", 1), line.get("notes")))
    created = create_order(
        state, TAKEAWAY_TABLE, items, cashier_id or "cajero", TAKEAWAY_LABEL, 1, now
    )
    order = created.result
    effects = created.effects + (EmitTicket("kitchen", kitchen_ticket(order, now)),)
    return Transition(created.state, effects, order)


def advance_item_status(state, order_id, item_id, next_status, now) -> Transition:
    order = state.order(order_id)
    if not order.is_open:
        raise InvalidTransitionError(f"order {order_id} is closed")
    item = order.item(item_id)
    if (item.status, next_status) not in LEGAL_ITEM_TRANSITIONS:
        raise InvalidTransitionError(f"cannot move item from {item.status} to {next_status}")
    changes = {"status": next_status}
    if next_status == "preparando" and item.start_time is None:
        changes["start_time"] = now
    advanced = replace(item, **changes)
    updated = replace(order, items=tuple(advanced if i.id == item_id else i for i in order.items))
    return Transition(state.with_order(updated), (PersistOrder(updated, ("items",)),), updated)


def close_order(
    state,
    order_id,
    payment_method,
    discount=0,
    tip=0,
    now=None,
    allow_negative_total: bool = True,
) -> Transition:
    """Take payment: close the order, book the sale and free the table."""
    order = state.order(order_id)
    if not order.is_open:
        raise AlreadyClosedError(f"order {order_id} is already closed")
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of {', '.join(PAYMENT_METHODS)}")
    discount = money(discount or 0, "discount")
    tip = money(tip or 0, "tip")
    if discount < ZERO or tip < ZERO:
        raise ValidationError("discount and tip cannot be negative")

    final_total = order.total - discount + tip
    if final_total < ZERO and not allow_negative_total:
        raise ValidationError("discount is larger than the order total")
    register, sale = cash.record_sale(state.cash_register, final_total)

    closed = replace(
        order,
        status="cerrada",
        payment_method=payment_method,
        discount=discount,
        tip=tip,
        total=final_total,
        closed_at=now,
    )
    new_state = replace(
        state.with_order(closed),
        cash_register=register,
        daily_sales=state.daily_sales + final_total,
        closed_orders=state.closed_orders + 1,
    )
    effects = [CloseOrderRecord(closed, CLOSED_ORDER_FIELDS), sale]
    if not closed.is_takeaway:
        new_state, table_effects = tables.vacate(new_state, closed.table_number)
        effects.extend(table_effects)
    effects.append(EmitTicket("receipt", receipt_ticket(closed, now)))
    return Transition(new_state, tuple(effects), closed)


def vacated_tables(transition: Transition) -> tuple:
    """Numbers of the tables a transition left in limpieza."""
    return tuple(
        effect.table.number
        for effect in transition.effects
        if isinstance(effect, PersistTable) and effect.table.status == "limpieza"
    )

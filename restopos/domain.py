"""Domain records shared by the state machines, the repository and the API.

All records are frozen dataclasses. Transitions never mutate a record in
place; they build a new one with ``dataclasses.replace`` so a rejected
transition cannot leave a half-applied change behind.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional
from uuid import uuid4

from restopos.errors import NotFoundError, ValidationError

TABLE_STATUSES = ("libre", "ocupada", "servido", "cuenta", "limpieza")
ITEM_STATUSES = ("nuevo", "preparando", "listo")
ORDER_STATUSES = ("abierta", "cerrada")
PAYMENT_METHODS = ("efectivo", "tarjeta", "yape", "plin")

TAKEAWAY_TABLE = 0
TAKEAWAY_LABEL = "Para Llevar"

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def money(value, field_name: str = "amount") -> Decimal:
    """Coerce request or store input to a two-place Decimal."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field_name} must be a number")
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field_name} must be a number") from None
    if not amount.is_finite():
        raise ValidationError(f"{field_name} must be a finite number")
    return amount.quantize(CENT)


def parse_instant(value) -> Optional[datetime]:
    """Read an ISO-8601 string (or datetime) as an aware UTC instant."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        instant = value
    else:
        instant = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant


def parse_quantity(value) -> int:
    if isinstance(value, bool):
        raise ValidationError("quantity must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError("quantity must be an integer") from None


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _float(value: Optional[Decimal]) -> Optional[float]:
    return float(value) if value is not None else None


@dataclass(frozen=True)
class Category:
    id: str
    name: str
    order_index: int = 0

    def to_dict(self):
        return {"id": self.id, "name": self.name, "order_index": self.order_index}


@dataclass(frozen=True)
class MenuItem:
    id: str
    name: str
    price: Decimal
    category: str
    description: str = ""
    preparation_time: int = 0
    is_spicy: bool = False
    is_vegetarian: bool = False
    available: bool = True

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "price": float(self.price),
            "category": self.category,
            "description": self.description,
            "preparation_time": self.preparation_time,
            "is_spicy": self.is_spicy,
            "is_vegetarian": self.is_vegetarian,
            "available": self.available,
        }


@dataclass(frozen=True)
class OrderItem:
    """One order line: a snapshot of a menu item plus kitchen progress.

    ``id`` identifies the line, not the dish, so the same dish staged twice
    (say with different notes) stays two separately trackable lines.
    """

    id: str
    menu_item_id: str
    name: str
    price: Decimal
    quantity: int = 1
    notes: Optional[str] = None
    status: str = "nuevo"
    order_id: Optional[str] = None
    start_time: Optional[datetime] = None
    category: str = ""
    preparation_time: int = 0

    @classmethod
    def snapshot(cls, menu_item: MenuItem, quantity=1, notes=None) -> "OrderItem":
        """Copy name and price now so later menu edits leave the line alone."""
        quantity = parse_quantity(quantity)
        if quantity < 1:
            raise ValidationError("quantity must be at least 1")
        if not menu_item.available:
            raise ValidationError(f"{menu_item.name} is not available")
        return cls(
            id=uuid4().hex,
            menu_item_id=menu_item.id,
            name=menu_item.name,
            price=menu_item.price,
            quantity=quantity,
            notes=(notes or "").strip() or None,
            category=menu_item.category,
            preparation_time=menu_item.preparation_time,
        )

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity

    def to_record(self) -> dict:
        """Encoding used inside the persisted ``items`` blob."""
        return {
            "id": self.id,
            "menu_item_id": self.menu_item_id,
            "name": self.name,
            "price": str(self.price),
            "quantity": self.quantity,
            "notes": self.notes,
            "status": self.status,
            "order_id": self.order_id,
            "start_time": _iso(self.start_time),
            "category": self.category,
            "preparation_time": self.preparation_time,
        }

    @classmethod
    def from_record(cls, data: dict) -> "OrderItem":
        return cls(
            id=str(data["id"]),
            menu_item_id=str(data.get("menu_item_id") or data["id"]),
            name=data["name"],
            price=money(data["price"], "price"),
            quantity=int(data.get("quantity", 1)),
            notes=data.get("notes") or None,
            status=data.get("status", "nuevo"),
            order_id=data.get("order_id"),
            start_time=parse_instant(data.get("start_time")),
            category=data.get("category", ""),
            preparation_time=int(data.get("preparation_time", 0)),
        )

    def to_dict(self):
        data = self.to_record()
        data["price"] = float(self.price)
        data["line_total"] = float(self.line_total)
        return data


def dump_items(items) -> str:
    """Serialize an item sequence into the single JSON blob the store keeps."""
    return json.dumps([item.to_record() for item in items])


def load_items(raw) -> tuple:
    if raw is None or raw == "":
        return ()
    records = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
    return tuple(OrderItem.from_record(record) for record in records)


def items_total(items) -> Decimal:
    return sum((item.line_total for item in items), ZERO)


@dataclass(frozen=True)
class Table:
    id: str
    number: int
    capacity: int = 4
    status: str = "libre"
    current_order: tuple = ()
    waiter_name: Optional[str] = None
    customer_count: Optional[int] = None
    order_start_time: Optional[datetime] = None

    @property
    def total(self) -> Decimal:
        # Staged lines only; a submitted order carries its own total.
        return items_total(self.current_order)

    @property
    def is_staging(self) -> bool:
        return bool(self.current_order)

    def to_dict(self):
        return {
            "id": self.id,
            "number": self.number,
            "capacity": self.capacity,
            "status": self.status,
            "current_order": [item.to_dict() for item in self.current_order],
            "total": float(self.total),
            "waiter_name": self.waiter_name,
            "customer_count": self.customer_count,
            "order_start_time": _iso(self.order_start_time),
        }


@dataclass(frozen=True)
class Order:
    id: str
    table_number: int
    items: tuple
    total: Decimal
    status: str = "abierta"
    timestamp: Optional[datetime] = None
    waiter_id: Optional[str] = None
    waiter_name: Optional[str] = None
    customer_count: int = 1
    payment_method: Optional[str] = None
    discount: Decimal = ZERO
    tip: Decimal = ZERO
    closed_at: Optional[datetime] = None

    @property
    def subtotal(self) -> Decimal:
        return items_total(self.items)

    @property
    def is_open(self) -> bool:
        return self.status == "abierta"

    @property
    def is_takeaway(self) -> bool:
        return self.table_number == TAKEAWAY_TABLE

    @property
    def all_items_ready(self) -> bool:
        return all(item.status == "listo" for item in self.items)

    def item(self, item_id: str) -> OrderItem:
        for item in self.items:
            if item.id == item_id:
                return item
        raise NotFoundError(f"item {item_id} not found in order {self.id}")

    def to_dict(self):
        return {
            "id": self.id,
            "table_number": self.table_number,
            "items": [item.to_dict() for item in self.items],
            "total": float(self.total),
            "status": self.status,
            "timestamp": _iso(self.timestamp),
            "waiter_id": self.waiter_id,
            "waiter_name": self.waiter_name,
            "customer_count": self.customer_count,
            "payment_method": self.payment_method,
            "discount": float(self.discount),
            "tip": float(self.tip),
            "closed_at": _iso(self.closed_at),
            "all_items_ready": self.all_items_ready,
        }


@dataclass(frozen=True)
class CashRegister:
    id: Optional[str] = None
    is_open: bool = False
    initial_amount: Decimal = ZERO
    current_amount: Decimal = ZERO
    total_sales: Decimal = ZERO
    opened_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    opened_by: Optional[str] = None
    counted_amount: Optional[Decimal] = None
    difference: Optional[Decimal] = None

    def to_dict(self):
        return {
            "id": self.id,
            "is_open": self.is_open,
            "initial_amount": float(self.initial_amount),
            "current_amount": float(self.current_amount),
            "total_sales": float(self.total_sales),
            "opened_at": _iso(self.opened_at),
            "closed_at": _iso(self.closed_at),
            "opened_by": self.opened_by,
            "counted_amount": _float(self.counted_amount),
            "difference": _float(self.difference),
        }


@dataclass(frozen=True)
class Settings:
    id: Optional[str] = None
    cash_initial_amount: Decimal = ZERO
    restaurant_name: str = ""
    restaurant_address: str = ""
    restaurant_phone: str = ""

    def to_dict(self):
        return {
            "id": self.id,
            "cash_initial_amount": float(self.cash_initial_amount),
            "restaurant_name": self.restaurant_name,
            "restaurant_address": self.restaurant_address,
            "restaurant_phone": self.restaurant_phone,
        }


@dataclass(frozen=True)
class PosState:
    """Everything one device knows about the restaurant right now."""

    menu_items: tuple = ()
    categories: tuple = ()
    tables: tuple = ()
    orders: tuple = ()
    cash_register: CashRegister = CashRegister()
    daily_sales: Decimal = ZERO
    closed_orders: int = 0
    settings: Settings = Settings()

    @property
    def avg_order_value(self) -> Decimal:
        if not self.closed_orders:
            return ZERO
        return (self.daily_sales / self.closed_orders).quantize(CENT)

    def table(self, number: int) -> Table:
        for table in self.tables:
            if table.number == number:
                return table
        raise NotFoundError(f"table {number} not found")

    def order(self, order_id: str) -> Order:
        for order in self.orders:
            if order.id == order_id:
                return order
        raise NotFoundError(f"order {order_id} not found")

    def menu_item(self, item_id: str) -> MenuItem:
        for item in self.menu_items:
            if item.id == item_id:
                return item
        raise NotFoundError(f"menu item {item_id} not found")

    def open_orders_for(self, table_number: int) -> tuple:
        return tuple(o for o in self.orders if o.table_number == table_number and o.is_open)

    def with_table(self, table: Table) -> "PosState":
        tables = tuple(table if t.number == table.number else t for t in self.tables)
        return replace(self, tables=tables)

    def with_order(self, order: Order) -> "PosState":
        orders = tuple(order if o.id == order.id else o for o in self.orders)
        return replace(self, orders=orders)

    def to_dict(self):
        return {
            "menu_items": [m.to_dict() for m in self.menu_items],
            "categories": [c.to_dict() for c in self.categories],
            "tables": [t.to_dict() for t in self.tables],
            "orders": [o.to_dict() for o in self.orders],
            "cash_register": self.cash_register.to_dict(),
            "daily_sales": float(self.daily_sales),
            "settings": self.settings.to_dict(),
            "stats": {
                "today_orders": self.closed_orders,
                "avg_order_value": float(self.avg_order_value),
            },
        }

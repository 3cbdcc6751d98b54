"""
Project: Restaurant POS (restopos)

Description:
SQLAlchemy models for the shared store every device reads and writes:
menu, categories, tables, orders, cash registers and settings.
Order lines are kept as one JSON text column per order.
"""

from flask_sqlalchemy import SQLAlchemy

from restopos import domain
from restopos.domain import load_items, money, parse_instant

db = SQLAlchemy()


def _money(value):
    return money(value if value is not None else 0)


class Category(db.Model):
    __tablename__ = "categories"
    id = db.Column(db.String(32), primary_key=True)
    name = db.Column(db.String(80), unique=True, nullable=False)
    order_index = db.Column(db.Integer, default=0)

    def to_domain(self):
        return domain.Category(id=self.id, name=self.name, order_index=self.order_index or 0)


class MenuItem(db.Model):
    __tablename__ = "menu_items"
    id = db.Column(db.String(32), primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    price = db.Column(db.Numeric(10, 2), nullable=False)
    category = db.Column(db.String(80), nullable=False)
    description = db.Column(db.String(255), default="")
    preparation_time = db.Column(db.Integer, default=0)
    is_spicy = db.Column(db.Boolean, default=False)
    is_vegetarian = db.Column(db.Boolean, default=False)
    available = db.Column(db.Boolean, default=True)

    def to_domain(self):
        return domain.MenuItem(
            id=self.id,
            name=self.name,
            price=_money(self.price),
            category=self.category,
            description=self.description or "",
            preparation_time=self.preparation_time or 0,
            is_spicy=bool(self.is_spicy),
            is_vegetarian=bool(self.is_vegetarian),
            available=bool(self.available),
        )


class Table(db.Model):
    __tablename__ = "tables"
    id = db.Column(db.String(32), primary_key=True)
    number = db.Column(db.Integer, unique=True, nullable=False)
    capacity = db.Column(db.Integer, default=4)
    status = db.Column(db.String(20), default="libre")

    def to_domain(self):
        return domain.Table(id=self.id, number=self.number, capacity=self.capacity, status=self.status)


class Order(db.Model):
    __tablename__ = "orders"
    id = db.Column(db.String(32), primary_key=True)
    table_number = db.Column(db.Integer, nullable=False, index=True)
    items = db.Column(db.Text, nullable=False, default="[]")
    total = db.Column(db.Numeric(10, 2), nullable=False)
    status = db.Column(db.String(20), default="abierta", index=True)
    timestamp = db.Column(db.DateTime(timezone=True))
    waiter_id = db.Column(db.String(64))
    waiter_name = db.Column(db.String(120))
    customer_count = db.Column(db.Integer, default=1)
    payment_method = db.Column(db.String(20))
    discount = db.Column(db.Numeric(10, 2), default=0)
    tip = db.Column(db.Numeric(10, 2), default=0)
    closed_at = db.Column(db.DateTime(timezone=True))

    def to_domain(self):
        return domain.Order(
            id=self.id,
            table_number=self.table_number,
            items=load_items(self.items),
            total=_money(self.total),
            status=self.status,
            timestamp=parse_instant(self.timestamp),
            waiter_id=self.waiter_id,
            waiter_name=self.waiter_name,
            customer_count=self.customer_count or 1,
            payment_method=self.payment_method,
            discount=_money(self.discount),
            tip=_money(self.tip),
            closed_at=parse_instant(self.closed_at),
        )


class CashRegister(db.Model):
    __tablename__ = "cash_registers"
    id = db.Column(db.String(32), primary_key=True)
    is_open = db.Column(db.Boolean, default=True, index=True)
    initial_amount = db.Column(db.Numeric(10, 2), nullable=False)
    current_amount = db.Column(db.Numeric(10, 2), nullable=False)
    total_sales = db.Column(db.Numeric(10, 2), default=0)
    opened_at = db.Column(db.DateTime(timezone=True))
    closed_at = db.Column(db.DateTime(timezone=True))
    opened_by = db.Column(db.String(120))
    counted_amount = db.Column(db.Numeric(10, 2))
    difference = db.Column(db.Numeric(10, 2))

    def to_domain(self):
        return domain.CashRegister(
            id=self.id,
            is_open=bool(self.is_open),
            initial_amount=_money(self.initial_amount),
            current_amount=_money(self.current_amount),
            total_sales=_money(self.total_sales),
            opened_at=parse_instant(self.opened_at),
            closed_at=parse_instant(self.closed_at),
            opened_by=self.opened_by,
            counted_amount=money(self.counted_amount) if self.counted_amount is not None else None,
            difference=money(self.difference) if self.difference is not None else None,
        )


class Settings(db.Model):
    __tablename__ = "settings"
    id = db.Column(db.Integer, primary_key=True)
    cash_initial_amount = db.Column(db.Numeric(10, 2), default=0)
    restaurant_name = db.Column(db.String(120), default="")
    restaurant_address = db.Column(db.String(255), default="")
    restaurant_phone = db.Column(db.String(40), default="")

    def to_domain(self):
        return domain.Settings(
            id=str(self.id),
            cash_initial_amount=_money(self.cash_initial_amount),
            restaurant_name=self.restaurant_name or "",
            restaurant_address=self.restaurant_address or "",
            restaurant_phone=self.restaurant_phone or "",
        )

"""Repository port: everything the core reads from or writes to the store.

``SqlRepository`` talks to the shared database through Flask-SQLAlchemy and
needs an application context. ``MemoryRepository`` keeps the same records in
dicts, for tests and for running a single device without a database.

Every failure to reach or write the store surfaces as ``RepositoryError``.
"""

from __future__ import annotations

import abc
import functools
from dataclasses import replace
from decimal import Decimal
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from restopos import domain, models
from restopos.domain import dump_items
from restopos.errors import PosError, RepositoryError, StaleRecordError
from restopos.models import db


class Repository(abc.ABC):
    # tables
    @abc.abstractmethod
    def list_tables(self) -> list: ...

    @abc.abstractmethod
    def create_table(self, table: domain.Table) -> domain.Table: ...

    @abc.abstractmethod
    def update_table(self, table_id: str, fields: dict) -> None: ...

    @abc.abstractmethod
    def delete_table(self, table_id: str) -> None: ...

    # orders
    @abc.abstractmethod
    def list_orders(self) -> list: ...

    @abc.abstractmethod
    def create_order(self, order: domain.Order) -> domain.Order: ...

    @abc.abstractmethod
    def update_order(self, order_id: str, fields: dict) -> None: ...

    @abc.abstractmethod
    def close_order(self, order_id: str, fields: dict) -> None:
        """Write ``fields`` only while the stored order is abierta.

        Raises StaleRecordError when another device closed it first.
        """

    # cash register
    @abc.abstractmethod
    def get_current_open_register(self) -> Optional[domain.CashRegister]: ...

    @abc.abstractmethod
    def create_register(self, register: domain.CashRegister) -> domain.CashRegister: ...

    @abc.abstractmethod
    def update_register(self, register_id: str, fields: dict) -> None: ...

    @abc.abstractmethod
    def record_sale(self, register_id: str, amount: Decimal) -> None:
        """Add ``amount`` to the open register in one atomic step."""

    # catalog
    @abc.abstractmethod
    def list_menu_items(self) -> list: ...

    @abc.abstractmethod
    def create_menu_item(self, item: domain.MenuItem) -> domain.MenuItem: ...

    @abc.abstractmethod
    def update_menu_item(self, item_id: str, fields: dict) -> None: ...

    @abc.abstractmethod
    def delete_menu_item(self, item_id: str) -> None: ...

    @abc.abstractmethod
    def list_categories(self) -> list: ...

    @abc.abstractmethod
    def create_category(self, category: domain.Category) -> domain.Category: ...

    # settings
    @abc.abstractmethod
    def get_settings(self) -> domain.Settings: ...

    @abc.abstractmethod
    def update_settings(self, fields: dict) -> domain.Settings: ...


# Raised while turning rows into domain records: bad items JSON, missing
# keys, unparseable timestamps or amounts.
DECODE_ERRORS = (ValueError, KeyError, TypeError, PosError)


def _store_errors(method):
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise RepositoryError(f"{method.__name__} failed: {exc}") from exc
        except DECODE_ERRORS as exc:
            db.session.rollback()
            raise RepositoryError(f"{method.__name__} read a malformed record: {exc!r}") from exc

    return wrapper


def _column_values(fields: dict) -> dict:
    values = dict(fields)
    if "items" in values:
        values["items"] = dump_items(values["items"])
    return values


class SqlRepository(Repository):
    def _get(self, model, record_id):
        row = db.session.get(model, record_id)
        if row is None:
            raise RepositoryError(f"{model.__tablename__} {record_id} not found in store")
        return row

    def _update(self, model, record_id, fields):
        row = self._get(model, record_id)
        for key, value in _column_values(fields).items():
            setattr(row, key, value)
        db.session.commit()

    def _delete(self, model, record_id):
        row = db.session.get(model, record_id)
        if row is not None:
            db.session.delete(row)
            db.session.commit()

    @_store_errors
    def list_tables(self):
        return [t.to_domain() for t in models.Table.query.order_by(models.Table.number).all()]

    @_store_errors
    def create_table(self, table):
        row = models.Table(id=table.id, number=table.number, capacity=table.capacity, status=table.status)
        db.session.add(row)
        db.session.commit()
        return row.to_domain()

    @_store_errors
    def update_table(self, table_id, fields):
        self._update(models.Table, table_id, fields)

    @_store_errors
    def delete_table(self, table_id):
        self._delete(models.Table, table_id)

    @_store_errors
    def list_orders(self):
        rows = models.Order.query.order_by(models.Order.timestamp).all()
        return [o.to_domain() for o in rows]

    @_store_errors
    def create_order(self, order):
        row = models.Order(
            id=order.id,
            table_number=order.table_number,
            items=dump_items(order.items),
            total=order.total,
            status=order.status,
            timestamp=order.timestamp,
            waiter_id=order.waiter_id,
            waiter_name=order.waiter_name,
            customer_count=order.customer_count,
            payment_method=order.payment_method,
            discount=order.discount,
            tip=order.tip,
            closed_at=order.closed_at,
        )
        db.session.add(row)
        db.session.commit()
        return row.to_domain()

    @_store_errors
    def update_order(self, order_id, fields):
        self._update(models.Order, order_id, fields)

    @_store_errors
    def close_order(self, order_id, fields):
        order = models.Order
        result = db.session.execute(
            update(order)
            .where(order.id == order_id, order.status == "abierta")
            .values(**_column_values(fields))
        )
        db.session.commit()
        if result.rowcount == 0:
            self._get(order, order_id)
            raise StaleRecordError(f"order {order_id} is already closed in the store")

    @_store_errors
    def get_current_open_register(self):
        row = (
            models.CashRegister.query.filter_by(is_open=True)
            .order_by(models.CashRegister.opened_at.desc())
            .first()
        )
        return row.to_domain() if row else None

    @_store_errors
    def create_register(self, register):
        row = models.CashRegister(
            id=register.id,
            is_open=register.is_open,
            initial_amount=register.initial_amount,
            current_amount=register.current_amount,
            total_sales=register.total_sales,
            opened_at=register.opened_at,
            opened_by=register.opened_by,
        )
        db.session.add(row)
        db.session.commit()
        return row.to_domain()

    @_store_errors
    def update_register(self, register_id, fields):
        self._update(models.CashRegister, register_id, fields)

    @_store_errors
    def record_sale(self, register_id, amount):
        register = models.CashRegister
        result = db.session.execute(
            update(register)
            .where(register.id == register_id, register.is_open.is_(True))
            .values(
                current_amount=register.current_amount + amount,
                total_sales=register.total_sales + amount,
            )
        )
        db.session.commit()
        if result.rowcount == 0:
            raise RepositoryError(f"cash register {register_id} is not open in the store")

    @_store_errors
    def list_menu_items(self):
        return [m.to_domain() for m in models.MenuItem.query.order_by(models.MenuItem.name).all()]

    @_store_errors
    def create_menu_item(self, item):
        row = models.MenuItem(
            id=item.id,
            name=item.name,
            price=item.price,
            category=item.category,
            description=item.description,
            preparation_time=item.preparation_time,
            is_spicy=item.is_spicy,
            is_vegetarian=item.is_vegetarian,
            available=item.available,
        )
        db.session.add(row)
        db.session.commit()
        return row.to_domain()

    @_store_errors
    def update_menu_item(self, item_id, fields):
        self._update(models.MenuItem, item_id, fields)

    @_store_errors
    def delete_menu_item(self, item_id):
        self._delete(models.MenuItem, item_id)

    @_store_errors
    def list_categories(self):
        rows = models.Category.query.order_by(models.Category.order_index).all()
        return [c.to_domain() for c in rows]

    @_store_errors
    def create_category(self, category):
        row = models.Category(id=category.id, name=category.name, order_index=category.order_index)
        db.session.add(row)
        db.session.commit()
        return row.to_domain()

    @_store_errors
    def get_settings(self):
        row = models.Settings.query.order_by(models.Settings.id).first()
        return row.to_domain() if row else domain.Settings()

    @_store_errors
    def update_settings(self, fields):
        row = models.Settings.query.order_by(models.Settings.id).first()
        if row is None:
            row = models.Settings()
            db.session.add(row)
        for key, value in fields.items():
            setattr(row, key, value)
        db.session.commit()
        return row.to_domain()


class MemoryRepository(Repository):
    """Dict-backed store with the same semantics as ``SqlRepository``."""

    def __init__(self):
        self.tables = {}
        self.orders = {}
        self.registers = {}
        self.menu_items = {}
        self.categories = {}
        self.settings = domain.Settings(id="1")

    def _update(self, store, record_id, fields):
        if record_id not in store:
            raise RepositoryError(f"{record_id} not found in store")
        store[record_id] = replace(store[record_id], **fields)

    def list_tables(self):
        return sorted(self.tables.values(), key=lambda t: t.number)

    def create_table(self, table):
        # Staging never reaches the store.
        stored = domain.Table(id=table.id, number=table.number, capacity=table.capacity, status=table.status)
        self.tables[table.id] = stored
        return stored

    def update_table(self, table_id, fields):
        self._update(self.tables, table_id, fields)

    def delete_table(self, table_id):
        self.tables.pop(table_id, None)

    def list_orders(self):
        return list(self.orders.values())

    def create_order(self, order):
        self.orders[order.id] = order
        return order

    def update_order(self, order_id, fields):
        self._update(self.orders, order_id, fields)

    def close_order(self, order_id, fields):
        order = self.orders.get(order_id)
        if order is None:
            raise RepositoryError(f"{order_id} not found in store")
        if order.status != "abierta":
            raise StaleRecordError(f"order {order_id} is already closed in the store")
        self.orders[order_id] = replace(order, **fields)

    def get_current_open_register(self):
        open_registers = [r for r in self.registers.values() if r.is_open]
        if not open_registers:
            return None
        return max(open_registers, key=lambda r: r.opened_at)

    def create_register(self, register):
        self.registers[register.id] = register
        return register

    def update_register(self, register_id, fields):
        self._update(self.registers, register_id, fields)

    def record_sale(self, register_id, amount):
        register = self.registers.get(register_id)
        if register is None or not register.is_open:
            raise RepositoryError(f"cash register {register_id} is not open in the store")
        self.registers[register_id] = replace(
            register,
            current_amount=register.current_amount + amount,
            total_sales=register.total_sales + amount,
        )

    def list_menu_items(self):
        return sorted(self.menu_items.values(), key=lambda m: m.name)

    def create_menu_item(self, item):
        self.menu_items[item.id] = item
        return item

    def update_menu_item(self, item_id, fields):
        self._update(self.menu_items, item_id, fields)

    def delete_menu_item(self, item_id):
        self.menu_items.pop(item_id, None)

    def list_categories(self):
        return sorted(self.categories.values(), key=lambda c: c.order_index)

    def create_category(self, category):
        self.categories[category.id] = category
        return category

    def get_settings(self):
        return self.settings

    def update_settings(self, fields):
        self.settings = replace(self.settings, **fields)
        return self.settings

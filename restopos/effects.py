"""Side effects requested by state transitions.

Transitions are pure: they return the next ``PosState`` plus a list of these
records, and ``EffectExecutor`` performs them against the repository and the
print sink after the state has been committed.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from restopos.domain import CashRegister, Category, MenuItem, Order, Table


@dataclass(frozen=True)
class Transition:
    state: Any
    effects: tuple = ()
    result: Any = None


@dataclass(frozen=True)
class PersistTable:
    table: Table
    created: bool = False


@dataclass(frozen=True)
class DeleteTable:
    table_id: str


@dataclass(frozen=True)
class CreateOrderRecord:
    order: Order


@dataclass(frozen=True)
class PersistOrder:
    order: Order
    fields: tuple


@dataclass(frozen=True)
class CloseOrderRecord:
    """Write the payment fields, only if the stored order is still open."""

    order: Order
    fields: tuple


@dataclass(frozen=True)
class OpenRegister:
    register: CashRegister


@dataclass(frozen=True)
class RecordSale:
    register_id: str
    amount: Decimal


@dataclass(frozen=True)
class CloseRegister:
    register: CashRegister


@dataclass(frozen=True)
class SaveMenuItem:
    item: MenuItem
    created: bool = False


@dataclass(frozen=True)
class DeleteMenuItem:
    item_id: str


@dataclass(frozen=True)
class SaveCategory:
    category: Category


@dataclass(frozen=True)
class SaveSettings:
    fields: dict


@dataclass(frozen=True)
class EmitTicket:
    kind: str  # "kitchen" or "receipt"
    ticket: Any

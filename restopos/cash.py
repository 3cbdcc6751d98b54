"""Cash register ledger.

One register shift at a time: ``open_register`` starts it, every closed order
goes through ``record_sale`` and ``close_register`` ends it with the amount
the cashier counted. While open, ``current_amount - initial_amount`` always
equals ``total_sales``.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from uuid import uuid4

from restopos.domain import ZERO, CashRegister, money
from restopos.effects import CloseRegister, OpenRegister, RecordSale, Transition
from restopos.errors import InvalidStateError, RegisterClosedError, ValidationError


@dataclass(frozen=True)
class Reconciliation:
    register: CashRegister
    expected: Decimal
    counted: Decimal
    difference: Decimal

    @property
    def outcome(self) -> str:
        if self.difference > ZERO:
            return "sobrante"
        if self.difference < ZERO:
            return "faltante"
        return "cuadrada"

    def to_dict(self):
        return {
            "register": self.register.to_dict(),
            "expected": float(self.expected),
            "counted": float(self.counted),
            "difference": float(self.difference),
            "outcome": self.outcome,
        }


def open_register(state, initial_amount, opened_by, now, single_open: bool = True) -> Transition:
    amount = money(initial_amount, "initial_amount")
    if amount < ZERO:
        raise ValidationError("initial_amount cannot be negative")
    if single_open and state.cash_register.is_open:
        raise InvalidStateError("a cash register is already open")
    register = CashRegister(
        id=uuid4().hex,
        is_open=True,
        initial_amount=amount,
        current_amount=amount,
        total_sales=ZERO,
        opened_at=now,
        opened_by=opened_by or "Cajero",
    )
    return Transition(replace(state, cash_register=register), (OpenRegister(register),), register)


def record_sale(register: CashRegister, amount: Decimal):
    """Add one sale to the register; returns the new register and its effect."""
    if not register.is_open:
        raise RegisterClosedError("no open cash register to record the sale against")
    updated = replace(
        register,
        current_amount=register.current_amount + amount,
        total_sales=register.total_sales + amount,
    )
    return updated, RecordSale(register.id, amount)


def close_register(state, counted_amount, now) -> Transition:
    register = state.cash_register
    if not register.is_open:
        raise RegisterClosedError("cash register is not open")
    counted = money(counted_amount, "counted_amount")
    if counted < ZERO:
        raise ValidationError("counted_amount cannot be negative")
    difference = counted - register.current_amount
    closed = replace(
        register,
        is_open=False,
        closed_at=now,
        counted_amount=counted,
        difference=difference,
    )
    result = Reconciliation(closed, register.current_amount, counted, difference)
    return Transition(replace(state, cash_register=closed), (CloseRegister(closed),), result)

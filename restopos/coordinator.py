"""Per-device owner of the POS state.

All changes go through ``PosCoordinator.submit``: a command is a function
``(state, now) -> Transition``. Commands run one at a time under a single
lock, so there is exactly one writer of the local state and of the register
ledger per device. Once a transition is committed its effects are run by
``EffectExecutor`` while the lock is still held; store and printer failures
come back as warnings and the next sync reconciles.

Every commit bumps ``version``. Sync pulls outside the lock and only merges
if nothing was committed since the pull started; otherwise the snapshot is
dropped and the next pass picks up the newer store contents.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any

from restopos import cash, catalog, orders, tables
from restopos.catalog import MENU_FIELDS
from restopos.domain import PosState, utcnow
from restopos.effects import (
    CloseOrderRecord,
    CloseRegister,
    CreateOrderRecord,
    DeleteMenuItem,
    DeleteTable,
    EmitTicket,
    OpenRegister,
    PersistOrder,
    PersistTable,
    RecordSale,
    SaveCategory,
    SaveMenuItem,
    SaveSettings,
    Transition,
)
from restopos.errors import RegisterClosedError, RepositoryError, StaleRecordError
from restopos.printing import LogTicketSink
from restopos.sync import SyncReconciler, merge_snapshot

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Outcome:
    result: Any
    warnings: tuple = ()


class EffectExecutor:
    def __init__(self, repository, sink):
        self.repository = repository
        self.sink = sink
        self._handlers = {
            PersistTable: self._persist_table,
            DeleteTable: lambda e: self.repository.delete_table(e.table_id),
            CreateOrderRecord: lambda e: self.repository.create_order(e.order),
            PersistOrder: self._persist_order,
            CloseOrderRecord: self._close_order,
            OpenRegister: lambda e: self.repository.create_register(e.register),
            RecordSale: lambda e: self.repository.record_sale(e.register_id, e.amount),
            CloseRegister: self._close_register,
            SaveMenuItem: self._save_menu_item,
            DeleteMenuItem: lambda e: self.repository.delete_menu_item(e.item_id),
            SaveCategory: lambda e: self.repository.create_category(e.category),
            SaveSettings: lambda e: self.repository.update_settings(e.fields),
            EmitTicket: self._emit_ticket,
        }

    def run(self, effects) -> list:
        warnings = []
        already_paid = False
        for effect in effects:
            name = type(effect).__name__
            # Paid elsewhere: no second sale, no second receipt.
            if already_paid and isinstance(effect, (RecordSale, EmitTicket)):
                log.error("%s dropped: order was already paid on another device", name)
                warnings.append(f"{name} dropped: order was already paid on another device")
                continue
            try:
                warning = self._handlers[type(effect)](effect)
            except StaleRecordError as exc:
                log.error("%s rejected by the store: %s", name, exc)
                warnings.append(f"{name}: {exc}")
                already_paid = isinstance(effect, CloseOrderRecord)
                continue
            except RepositoryError as exc:
                log.warning("%s not stored, will reconcile on next sync: %s", name, exc)
                warnings.append(f"{name}: {exc}")
                continue
            if isinstance(warning, str):
                warnings.append(warning)
        return warnings

    def _persist_table(self, effect):
        table = effect.table
        if effect.created:
            self.repository.create_table(table)
        else:
            self.repository.update_table(table.id, {"status": table.status, "capacity": table.capacity})

    def _persist_order(self, effect):
        order = effect.order
        self.repository.update_order(order.id, {name: getattr(order, name) for name in effect.fields})

    def _close_order(self, effect):
        order = effect.order
        self.repository.close_order(order.id, {name: getattr(order, name) for name in effect.fields})

    def _close_register(self, effect):
        register = effect.register
        self.repository.update_register(
            register.id,
            {
                "is_open": False,
                "closed_at": register.closed_at,
                "counted_amount": register.counted_amount,
                "difference": register.difference,
            },
        )

    def _save_menu_item(self, effect):
        item = effect.item
        if effect.created:
            self.repository.create_menu_item(item)
        else:
            self.repository.update_menu_item(item.id, {name: getattr(item, name) for name in MENU_FIELDS})

    def _emit_ticket(self, effect):
        if not self.sink.emit(effect.kind, effect.ticket):
            return f"{effect.kind} ticket {effect.ticket.order_number} was not printed"
        return None


class PosCoordinator:
    def __init__(
        self,
        repository,
        sink=None,
        *,
        allow_negative_totals: bool = True,
        single_open_register: bool = True,
        auto_release_tables: bool = True,
        clock=utcnow,
    ):
        self.repository = repository
        self.executor = EffectExecutor(repository, sink or LogTicketSink())
        self.reconciler = SyncReconciler(repository)
        self.allow_negative_totals = allow_negative_totals
        self.single_open_register = single_open_register
        self.auto_release_tables = auto_release_tables
        self._clock = clock
        self._state = PosState()
        self._version = 0
        self._lock = threading.RLock()

    @property
    def state(self) -> PosState:
        return self._state

    @property
    def version(self) -> int:
        """Number of commits that changed the state so far."""
        return self._version

    def submit(self, command) -> Outcome:
        """Apply ``command`` and run its effects. Guard errors leave the state alone."""
        with self._lock:
            transition = command(self._state, self._clock())
            if transition.state is not self._state:
                self._state = transition.state
                self._version += 1
            warnings = self.executor.run(transition.effects)
        return Outcome(transition.result, tuple(warnings))

    # --------- sync ---------
    def sync(self) -> Outcome:
        """Pull the store and merge it in. ``result`` tells whether anything changed."""
        with self._lock:
            pulled_at = self._version
        try:
            snapshot = self.reconciler.pull(self._clock())
        except RepositoryError as exc:
            log.warning("sync skipped, store unreachable: %s", exc)
            return Outcome(False, (str(exc),))

        def merge(state, now):
            if self._version != pulled_at:
                log.info("sync snapshot predates a local change, dropped")
                return Transition(state, (), False)
            merged = merge_snapshot(state, snapshot)
            if merged == state:
                return Transition(state, (), False)
            return Transition(merged, (), True)

        outcome = self.submit(merge)
        if outcome.result:
            log.info("sync merged remote changes")
        return outcome

    # --------- catalog (admin) ---------
    def add_category(self, name, order_index=None):
        return self.submit(lambda state, now: catalog.add_category(state, name, order_index))

    def add_menu_item(self, data):
        return self.submit(lambda state, now: catalog.add_menu_item(state, data))

    def update_menu_item(self, item_id, data):
        return self.submit(lambda state, now: catalog.update_menu_item(state, item_id, data))

    def toggle_availability(self, item_id):
        return self.submit(lambda state, now: catalog.toggle_availability(state, item_id))

    def delete_menu_item(self, item_id):
        return self.submit(lambda state, now: catalog.delete_menu_item(state, item_id))

    def update_settings(self, data):
        outcome = self.submit(lambda state, now: catalog.update_settings(state, data))
        log.info("settings updated: %s", ", ".join(sorted(data)))
        return outcome

    # --------- tables ---------
    def add_table(self, number, capacity=4):
        return self.submit(lambda state, now: tables.add_table(state, number, capacity))

    def remove_table(self, number):
        return self.submit(lambda state, now: tables.remove_table(state, number))

    def stage_item(self, table_number, menu_item_id, quantity=1, notes=None):
        return self.submit(
            lambda state, now: tables.stage_item(state, table_number, menu_item_id, quantity, notes, now)
        )

    def update_staged_quantity(self, table_number, line_id, quantity):
        return self.submit(
            lambda state, now: tables.update_staged_quantity(state, table_number, line_id, quantity)
        )

    def remove_staged_item(self, table_number, line_id):
        return self.submit(lambda state, now: tables.remove_staged_item(state, table_number, line_id))

    def set_customer_count(self, table_number, count):
        return self.submit(lambda state, now: tables.set_customer_count(state, table_number, count))

    def mark_served(self, table_number):
        return self.submit(lambda state, now: tables.mark_served(state, table_number))

    def request_bill(self, table_number):
        return self.submit(lambda state, now: tables.request_bill(state, table_number))

    def release_table(self, table_number):
        return self.submit(lambda state, now: tables.release_table(state, table_number))

    # --------- orders ---------
    def create_order(self, table_number, items, waiter_id, waiter_name, customer_count=1):
        return self.submit(
            lambda state, now: orders.create_order(
                state, table_number, items, waiter_id, waiter_name, customer_count, now
            )
        )

    def submit_table_order(self, table_number, waiter_id, waiter_name, customer_count=None):
        return self.submit(
            lambda state, now: orders.submit_table_order(
                state, table_number, waiter_id, waiter_name, customer_count, now
            )
        )

    def create_takeaway_order(self, lines, cashier_id=None):
        return self.submit(lambda state, now: orders.create_takeaway_order(state, lines, cashier_id, now))

    def advance_item_status(self, order_id, item_id, next_status):
        return self.submit(
            lambda state, now: orders.advance_item_status(state, order_id, item_id, next_status, now)
        )

    def close_order(self, order_id, payment_method, discount=0, tip=0):
        def command(state, now):
            closed = orders.close_order(
                state,
                order_id,
                payment_method,
                discount,
                tip,
                now,
                allow_negative_total=self.allow_negative_totals,
            )
            if not self.auto_release_tables:
                return closed
            state, effects = closed.state, closed.effects
            for number in orders.vacated_tables(closed):
                released = tables.release_table(state, number)
                state, effects = released.state, effects + released.effects
            return Transition(state, effects, closed.result)

        try:
            return self.submit(command)
        except RegisterClosedError:
            log.error("order %s paid with no open cash register; sale not booked", order_id)
            raise

    # --------- cash register ---------
    def open_register(self, initial_amount, opened_by=None):
        outcome = self.submit(
            lambda state, now: cash.open_register(
                state, initial_amount, opened_by, now, single_open=self.single_open_register
            )
        )
        register = outcome.result
        log.info("cash register opened by %s with %s", register.opened_by, register.initial_amount)
        return outcome

    def close_register(self, counted_amount):
        outcome = self.submit(lambda state, now: cash.close_register(state, counted_amount, now))
        reconciliation = outcome.result
        if reconciliation.difference:
            log.warning(
                "cash register closed with %s of %s (expected %s, counted %s)",
                reconciliation.outcome,
                abs(reconciliation.difference),
                reconciliation.expected,
                reconciliation.counted,
            )
        else:
            log.info("cash register closed, counted amount matches %s", reconciliation.expected)
        return outcome

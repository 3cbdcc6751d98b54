"""Selective sync between the store and one device's in-memory state.

Remote wins for everything that has been submitted (orders, menu, the open
register). Tables are merged by number: a table with staged lines is left
exactly as this device has it, since only the waiter building that order can
know about those lines. Idle tables take the store's status and capacity.

``merge_snapshot`` is pure; merging the same snapshot twice changes nothing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Callable, Optional

from restopos.domain import ZERO, CashRegister, Settings

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Snapshot:
    tables: tuple
    orders: tuple
    cash_register: Optional[CashRegister]
    menu_items: tuple
    categories: tuple
    taken_at: datetime
    settings: Optional[Settings] = None


class SyncReconciler:
    def __init__(self, repository):
        self.repository = repository

    def pull(self, now: datetime) -> Snapshot:
        """Read everything the merge needs. Raises RepositoryError."""
        repo = self.repository
        return Snapshot(
            tables=tuple(repo.list_tables()),
            orders=tuple(repo.list_orders()),
            cash_register=repo.get_current_open_register(),
            menu_items=tuple(repo.list_menu_items()),
            categories=tuple(repo.list_categories()),
            taken_at=now,
            settings=repo.get_settings(),
        )


def merge_tables(local: tuple, remote: tuple) -> tuple:
    remote_by_number = {}
    for table in remote:
        remote_by_number.setdefault(table.number, table)

    merged = []
    for table in local:
        if table.is_staging:
            merged.append(table)
            continue
        match = remote_by_number.get(table.number)
        if match is None:
            continue
        merged.append(replace(table, status=match.status, capacity=match.capacity))

    known = {t.number for t in merged}
    for number, table in remote_by_number.items():
        if number not in known:
            merged.append(
                replace(
                    table,
                    current_order=(),
                    waiter_name=None,
                    customer_count=None,
                    order_start_time=None,
                )
            )
    return tuple(merged)


def merge_register(remote: Optional[CashRegister]) -> CashRegister:
    if remote is not None and remote.is_open:
        return remote
    return CashRegister()


def daily_totals(orders, day: date):
    """Sum and count of the orders closed on ``day`` (local time)."""
    total, count = ZERO, 0
    for order in orders:
        if order.status != "cerrada":
            continue
        closed = order.closed_at or order.timestamp
        if closed is None or closed.astimezone().date() != day:
            continue
        total += order.total
        count += 1
    return total, count


def merge_snapshot(state, snapshot: Snapshot):
    daily_sales, closed_orders = daily_totals(snapshot.orders, snapshot.taken_at.astimezone().date())
    return replace(
        state,
        menu_items=snapshot.menu_items,
        categories=snapshot.categories,
        tables=merge_tables(state.tables, snapshot.tables),
        orders=snapshot.orders,
        cash_register=merge_register(snapshot.cash_register),
        daily_sales=daily_sales,
        closed_orders=closed_orders,
        settings=snapshot.settings or state.settings,
    )


def run_sync_loop(
    coordinator,
    interval: float,
    sleep: Callable[[float], None],
    context: Callable,
    on_change: Optional[Callable] = None,
    iterations: Optional[int] = None,
):
    """Pull and merge every ``interval`` seconds.

    ``context`` returns a context manager for each pass (the Flask app
    context). Runs forever unless ``iterations`` is given. A failed pass is
    logged and the next one runs on schedule.
    """
    done = 0
    while iterations is None or done < iterations:
        sleep(interval)
        done += 1
        try:
            with context():
                outcome = coordinator.sync()
            if outcome.result and on_change is not None:
                on_change(coordinator.state)
        except Exception:
            log.exception("sync pass %d failed", done)

"""
Project: Restaurant POS (restopos)

Description:
Selective merge of the shared store into one device's state.
"""

from contextlib import nullcontext
from decimal import Decimal

import pytest

from restopos.coordinator import PosCoordinator
from restopos.domain import CashRegister, Order, PosState, Table
from restopos.errors import AlreadyClosedError, RepositoryError
from restopos.repository import MemoryRepository
from restopos.sync import Snapshot, merge_snapshot, merge_tables, run_sync_loop


def _stored(repo, number):
    return next(t for t in repo.tables.values() if t.number == number)


def test_staged_table_survives_remote_delete(pos, dish, repo):
    pos.add_table(7)
    pos.stage_item(7, dish("Chaufa"))
    pos.stage_item(7, dish("Chicha"))
    del repo.tables[_stored(repo, 7).id]

    pos.sync()

    table = pos.state.table(7)
    assert len(table.current_order) == 2
    assert table.status == "ocupada"


def test_idle_table_missing_remotely_is_dropped(pos, repo):
    del repo.tables[_stored(repo, 3).id]
    assert pos.sync().result is True
    assert [t.number for t in pos.state.tables] == [1, 2]


def test_remote_table_is_added_and_idle_table_refreshed(pos, repo):
    repo.create_table(Table(id="t10", number=10, capacity=2))
    repo.update_table(_stored(repo, 2).id, {"status": "limpieza", "capacity": 6})

    pos.sync()

    assert pos.state.table(10).capacity == 2
    assert pos.state.table(10).current_order == ()
    assert pos.state.table(2).status == "limpieza"
    assert pos.state.table(2).capacity == 6


def test_staged_table_keeps_local_status(pos, dish, repo):
    pos.stage_item(1, dish("Chaufa"))
    repo.update_table(_stored(repo, 1).id, {"status": "cuenta"})
    pos.sync()
    assert pos.state.table(1).status == "ocupada"


def test_sync_is_idempotent(pos, dish, repo):
    pos.stage_item(2, dish("Chicha"))
    repo.create_table(Table(id="t11", number=11))
    assert pos.sync().result is True
    merged = pos.state
    assert pos.sync().result is False
    assert pos.state == merged


def test_merge_snapshot_twice_is_the_same(clock):
    local = PosState(
        tables=(
            Table(id="a", number=1, status="ocupada"),
            Table(id="b", number=2),
        )
    )
    snapshot = Snapshot(
        tables=(Table(id="b", number=2, status="limpieza"), Table(id="c", number=3)),
        orders=(),
        cash_register=None,
        menu_items=(),
        categories=(),
        taken_at=clock.now,
    )
    once = merge_snapshot(local, snapshot)
    assert merge_snapshot(once, snapshot) == once


def test_merge_tables_ignores_duplicate_remote_numbers():
    remote = (Table(id="x", number=5, capacity=2), Table(id="y", number=5, capacity=8))
    merged = merge_tables((), remote)
    assert [(t.id, t.capacity) for t in merged] == [("x", 2)]


def test_orders_and_register_come_from_store(pos, repo, clock):
    pos.open_register(100)
    remote_order = Order(
        id="remote1",
        table_number=2,
        items=(),
        total=Decimal("40.00"),
        status="cerrada",
        timestamp=clock.now,
        payment_method="yape",
        closed_at=clock.now,
    )
    repo.create_order(remote_order)
    register = pos.state.cash_register
    repo.update_register(register.id, {"current_amount": Decimal("140.00"), "total_sales": Decimal("40.00")})

    pos.sync()

    assert pos.state.order("remote1").payment_method == "yape"
    assert pos.state.cash_register.current_amount == Decimal("140.00")
    assert pos.state.daily_sales == Decimal("40.00")
    assert pos.state.closed_orders == 1


def test_register_closed_elsewhere_resets_local(pos, repo):
    register = pos.open_register(100).result
    repo.update_register(register.id, {"is_open": False})
    pos.sync()
    assert pos.state.cash_register == CashRegister()


def test_menu_edits_from_other_devices(pos, dish, repo):
    repo.update_menu_item(dish("Chicha"), {"available": False})
    pos.sync()
    assert not pos.state.menu_item(dish("Chicha")).available


class _Unreachable(MemoryRepository):
    def list_tables(self):
        raise RepositoryError("connection refused")


def test_unreachable_store_leaves_state_alone(sink, clock):
    pos = PosCoordinator(_Unreachable(), sink, clock=clock)
    pos.add_table(1)
    before = pos.state

    outcome = pos.sync()

    assert outcome.result is False
    assert outcome.warnings == ("connection refused",)
    assert pos.state is before


def test_sync_loop_reports_changes(pos, repo):
    slept = []
    changes = []
    repo.create_table(Table(id="t12", number=12))

    run_sync_loop(pos, 5, slept.append, nullcontext, changes.append, iterations=2)

    assert slept == [5, 5]
    assert len(changes) == 1
    assert pos.state.table(12).number == 12


def test_new_local_order_is_kept_once_stored(pos, dish, repo):
    pos.stage_item(1, dish("Chaufa"))
    order = pos.submit_table_order(1, "w1", "Rosa").result
    pos.sync()
    assert pos.state.order(order.id).items[0].name == "Chaufa"
    assert pos.state.table(1).status == "ocupada"


class _SlowStore(MemoryRepository):
    """Runs ``during_pull`` once, halfway through a snapshot read."""

    during_pull = None

    def list_menu_items(self):
        if self.during_pull is not None:
            action, self.during_pull = self.during_pull, None
            action()
        return super().list_menu_items()


def test_payment_during_pull_is_not_undone(sink, clock):
    store = _SlowStore()
    pos = PosCoordinator(store, sink, clock=clock)
    pos.add_category("Bebidas")
    chicha = pos.add_menu_item({"name": "Chicha", "price": 8, "category": "Bebidas"}).result
    register = pos.open_register(100).result
    order = pos.create_takeaway_order([{"menu_item_id": chicha.id}]).result

    store.during_pull = lambda: pos.close_order(order.id, "efectivo")
    assert pos.sync().result is False

    assert pos.state.order(order.id).status == "cerrada"
    assert pos.state.cash_register.current_amount == Decimal("108.00")
    with pytest.raises(AlreadyClosedError):
        pos.close_order(order.id, "efectivo")
    assert store.registers[register.id].current_amount == Decimal("108.00")

    pos.sync()
    assert pos.state.order(order.id).status == "cerrada"
    assert pos.state.cash_register.current_amount == Decimal("108.00")


class _CorruptOrders(MemoryRepository):
    def list_orders(self):
        raise ValueError("Expecting value: line 1 column 1 (char 0)")


def test_failed_pass_does_not_stop_the_loop(sink, clock):
    pos = PosCoordinator(_CorruptOrders(), sink, clock=clock)
    slept = []

    run_sync_loop(pos, 0, slept.append, nullcontext, iterations=3)

    assert slept == [0, 0, 0]


def test_settings_arrive_through_sync(pos, repo):
    repo.update_settings({"restaurant_name": "Chifa Lung Fung", "cash_initial_amount": Decimal("150.00")})
    pos.sync()
    assert pos.state.settings.restaurant_name == "Chifa Lung Fung"
    assert pos.state.settings.cash_initial_amount == Decimal("150.00")

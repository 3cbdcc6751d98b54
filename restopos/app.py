"""
Project: Restaurant POS (restopos)

Description:
Application entry point. Initializes Flask, the database and Socket.IO,
wires the POS coordinator to its store and print sink, and registers the
JSON routes used by the admin, waiter (mozo), kitchen (cocina) and cashier
(cajero) screens. Every mutation is broadcast as a Socket.IO "event".
"""

import logging

from flask import Flask, jsonify, request
from flask_socketio import SocketIO
from werkzeug.exceptions import HTTPException

from restopos.config import Config
from restopos.coordinator import PosCoordinator
from restopos.errors import PosError, RepositoryError
from restopos.log import setup_json_logging
from restopos.models import db
from restopos.printing import HttpTicketSink, LogTicketSink
from restopos.repository import MemoryRepository, SqlRepository
from restopos.sync import run_sync_loop

log = logging.getLogger(__name__)

# Create SocketIO once (no app yet), then bind inside factory
socketio = SocketIO(cors_allowed_origins="*")


def build_repository(app):
    if app.config["POS_REPOSITORY"] == "memory":
        return MemoryRepository()
    return SqlRepository()


def build_sink(app):
    if app.config["PRINT_ENABLED"]:
        return HttpTicketSink(app.config["PRINT_RELAY_URL"], timeout=app.config["PRINT_TIMEOUT"])
    return LogTicketSink()


def create_app(testing: bool = False, overrides=None, repository=None, sink=None):
    app = Flask(__name__)
    app.config.from_object(Config)

    if testing:
        app.config["TESTING"] = True
        app.config["SQLALCHEMY_DATABASE_URI"] = "sqlite:///:memory:"
        app.config["POS_SYNC_ENABLED"] = False
        app.config["PRINT_ENABLED"] = False
        app.config["SOCKETIO_ASYNC_MODE"] = "threading"
    if overrides:
        app.config.update(overrides)

    db.init_app(app)
    socketio.init_app(app, async_mode=app.config["SOCKETIO_ASYNC_MODE"])

    pos = PosCoordinator(
        repository or build_repository(app),
        sink or build_sink(app),
        allow_negative_totals=app.config["POS_ALLOW_NEGATIVE_TOTALS"],
        single_open_register=app.config["POS_SINGLE_OPEN_REGISTER"],
        auto_release_tables=app.config["POS_AUTO_RELEASE_TABLES"],
    )
    app.extensions["pos"] = pos

    with app.app_context():
        db.create_all()
        pos.sync()

    # --------- helpers ---------
    def payload():
        return request.get_json(silent=True) or {}

    def respond(outcome, body, status=200):
        if outcome.warnings:
            body = dict(body, warnings=list(outcome.warnings))
        return jsonify(body), status

    def broadcast(kind, **data):
        socketio.emit("event", dict(data, type=kind))

    # --------- errors ---------
    @app.errorhandler(PosError)
    def pos_error(exc):
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(RepositoryError)
    def store_error(exc):
        log.warning("store unavailable: %s", exc)
        return jsonify({"error": "store_unavailable", "message": str(exc)}), 503

    @app.errorhandler(HTTPException)
    def http_error(exc):
        code = (exc.name or "error").lower().replace(" ", "_")
        return jsonify({"error": code, "message": exc.description}), exc.code

    # --------- core routes ---------
    @app.get("/api/health")
    def health():
        return jsonify({"status": "ok"})

    @app.get("/api/state")
    def get_state():
        return jsonify(pos.state.to_dict())

    @app.post("/api/sync")
    def sync_now():
        outcome = pos.sync()
        if outcome.result:
            broadcast("state.synced")
        return jsonify({"changed": bool(outcome.result), "warnings": list(outcome.warnings)})

    # ---------- MENU ----------
    @app.get("/api/menu")
    def list_menu():
        return jsonify([m.to_dict() for m in pos.state.menu_items])

    @app.post("/api/menu")
    def create_menu():
        outcome = pos.add_menu_item(payload())
        broadcast("menu.created", item=outcome.result.to_dict())
        return respond(outcome, outcome.result.to_dict(), 201)

    @app.put("/api/menu/<item_id>")
    def update_menu(item_id):
        outcome = pos.update_menu_item(item_id, payload())
        broadcast("menu.updated", item=outcome.result.to_dict())
        return respond(outcome, outcome.result.to_dict())

    @app.post("/api/menu/<item_id>/toggle")
    def toggle_menu(item_id):
        outcome = pos.toggle_availability(item_id)
        broadcast("menu.updated", item=outcome.result.to_dict())
        return respond(outcome, outcome.result.to_dict())

    @app.delete("/api/menu/<item_id>")
    def delete_menu(item_id):
        outcome = pos.delete_menu_item(item_id)
        broadcast("menu.deleted", id=item_id)
        return respond(outcome, {"ok": True})

    @app.get("/api/categories")
    def list_categories():
        return jsonify([c.to_dict() for c in pos.state.categories])

    @app.post("/api/categories")
    def create_category():
        data = payload()
        outcome = pos.add_category(data.get("name"), data.get("order_index"))
        broadcast("category.created", category=outcome.result.to_dict())
        return respond(outcome, outcome.result.to_dict(), 201)

    # ---------- TABLES ----------
    @app.get("/api/tables")
    def list_tables():
        return jsonify([t.to_dict() for t in pos.state.tables])

    @app.post("/api/tables")
    def create_table():
        data = payload()
        outcome = pos.add_table(data.get("number"), data.get("capacity", 4))
        broadcast("table.created", table=outcome.result.to_dict())
        return respond(outcome, outcome.result.to_dict(), 201)

    @app.delete("/api/tables/<int:number>")
    def delete_table(number):
        outcome = pos.remove_table(number)
        broadcast("table.deleted", number=number)
        return respond(outcome, {"ok": True})

    @app.post("/api/tables/<int:number>/items")
    def stage_item(number):
        data = payload()
        outcome = pos.stage_item(number, data.get("menu_item_id"), data.get("quantity", 1), data.get("notes"))
        return respond(outcome, pos.state.table(number).to_dict(), 201)

    @app.patch("/api/tables/<int:number>/items/<line_id>")
    def update_staged_item(number, line_id):
        outcome = pos.update_staged_quantity(number, line_id, payload().get("quantity"))
        return respond(outcome, outcome.result.to_dict())

    @app.delete("/api/tables/<int:number>/items/<line_id>")
    def remove_staged_item(number, line_id):
        outcome = pos.remove_staged_item(number, line_id)
        return respond(outcome, outcome.result.to_dict())

    @app.put("/api/tables/<int:number>/customers")
    def set_customers(number):
        outcome = pos.set_customer_count(number, payload().get("customer_count"))
        return respond(outcome, outcome.result.to_dict())

    @app.post("/api/tables/<int:number>/submit")
    def submit_table(number):
        data = payload()
        outcome = pos.submit_table_order(
            number,
            data.get("waiter_id"),
            data.get("waiter_name"),
            data.get("customer_count"),
        )
        broadcast("order.created", order=outcome.result.to_dict())
        return respond(outcome, outcome.result.to_dict(), 201)

    @app.post("/api/tables/<int:number>/served")
    def mark_served(number):
        outcome = pos.mark_served(number)
        broadcast("table.updated", table=outcome.result.to_dict())
        return respond(outcome, outcome.result.to_dict())

    @app.post("/api/tables/<int:number>/bill")
    def request_bill(number):
        outcome = pos.request_bill(number)
        broadcast("table.updated", table=outcome.result.to_dict())
        return respond(outcome, outcome.result.to_dict())

    @app.post("/api/tables/<int:number>/release")
    def release_table(number):
        outcome = pos.release_table(number)
        broadcast("table.updated", table=outcome.result.to_dict())
        return respond(outcome, outcome.result.to_dict())

    # ---------- ORDERS ----------
    @app.get("/api/orders")
    def list_orders():
        status = request.args.get("status")
        table = request.args.get("table", type=int)
        found = [
            o
            for o in pos.state.orders
            if (status is None or o.status == status) and (table is None or o.table_number == table)
        ]
        return jsonify([o.to_dict() for o in found])

    @app.post("/api/orders/takeaway")
    def create_takeaway():
        data = payload()
        outcome = pos.create_takeaway_order(data.get("items") or [], data.get("cashier_id"))
        broadcast("order.created", order=outcome.result.to_dict())
        return respond(outcome, outcome.result.to_dict(), 201)

    @app.post("/api/orders/<order_id>/items/<item_id>/status")
    def advance_item(order_id, item_id):
        outcome = pos.advance_item_status(order_id, item_id, payload().get("status"))
        broadcast("order.updated", order=outcome.result.to_dict())
        return respond(outcome, outcome.result.to_dict())

    @app.post("/api/orders/<order_id>/close")
    def close_order(order_id):
        data = payload()
        outcome = pos.close_order(
            order_id,
            data.get("payment_method"),
            data.get("discount", 0),
            data.get("tip", 0),
        )
        broadcast("order.closed", order=outcome.result.to_dict())
        return respond(outcome, outcome.result.to_dict())

    # ---------- CASH REGISTER ----------
    @app.get("/api/cash-register")
    def get_register():
        state = pos.state
        body = state.cash_register.to_dict()
        body["daily_sales"] = float(state.daily_sales)
        return jsonify(body)

    @app.post("/api/cash-register/open")
    def open_register():
        data = payload()
        amount = data.get("initial_amount")
        if amount is None:
            amount = pos.state.settings.cash_initial_amount
        outcome = pos.open_register(amount, data.get("opened_by"))
        broadcast("cash_register.opened", cash_register=outcome.result.to_dict())
        return respond(outcome, outcome.result.to_dict(), 201)

    @app.post("/api/cash-register/close")
    def close_register():
        outcome = pos.close_register(payload().get("counted_amount"))
        broadcast("cash_register.closed", cash_register=outcome.result.register.to_dict())
        return respond(outcome, outcome.result.to_dict())

    # ---------- SETTINGS ----------
    @app.get("/api/settings")
    def get_settings():
        return jsonify(pos.state.settings.to_dict())

    @app.put("/api/settings")
    def update_settings():
        outcome = pos.update_settings(payload())
        broadcast("settings.updated", settings=outcome.result.to_dict())
        return respond(outcome, outcome.result.to_dict())

    return app


def start_sync(app):
    """Run the selective sync on a Socket.IO background task."""
    pos = app.extensions["pos"]

    def on_change(state):
        socketio.emit("event", {"type": "state.synced"})

    return socketio.start_background_task(
        run_sync_loop,
        pos,
        app.config["POS_SYNC_INTERVAL"],
        socketio.sleep,
        app.app_context,
        on_change,
    )


def main():
    setup_json_logging(Config.LOG_LEVEL)
    app = create_app()
    if app.config["POS_SYNC_ENABLED"]:
        start_sync(app)
    socketio.run(app, host="0.0.0.0", port=app.config["PORT"])


if __name__ == "__main__":
    main()

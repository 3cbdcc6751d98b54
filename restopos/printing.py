"""Ticket payloads and the sinks that hand them to the local print relay.

Printing is best-effort: a sink reports failure by returning ``False`` and
logging, never by raising into the order workflow.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

import requests

from restopos.domain import TAKEAWAY_LABEL

log = logging.getLogger(__name__)

TICKET_TIME_FORMAT = "%d/%m/%Y %H:%M:%S"


@dataclass(frozen=True)
class TicketLine:
    name: str
    quantity: int
    notes: Optional[str] = None


@dataclass(frozen=True)
class Ticket:
    order_number: str
    items: tuple
    table: str
    waiter: str
    time: str
    total: Optional[Decimal] = None
    payment_method: Optional[str] = None

    def to_payload(self) -> dict:
        lines = []
        for line in self.items:
            entry = {"name": line.name, "quantity": line.quantity}
            if line.notes:
                entry["notes"] = line.notes
            lines.append(entry)
        payload = {
            "orderNumber": self.order_number,
            "items": lines,
            "table": self.table,
            "waiter": self.waiter,
            "time": self.time,
        }
        if self.total is not None:
            payload["total"] = float(self.total)
            payload["paymentMethod"] = self.payment_method
        return payload


def order_number(order) -> str:
    suffix = order.id[-6:]
    if order.is_takeaway:
        return f"LLEVAR-{suffix}"
    return f"MESA-{order.table_number}-{suffix}"


def _table_label(order) -> str:
    return TAKEAWAY_LABEL if order.is_takeaway else f"Mesa {order.table_number}"


def _lines(order) -> tuple:
    return tuple(TicketLine(item.name, item.quantity, item.notes) for item in order.items)


def kitchen_ticket(order, now) -> Ticket:
    return Ticket(
        order_number=order_number(order),
        items=_lines(order),
        table=_table_label(order),
        waiter=order.waiter_name or "",
        time=now.strftime(TICKET_TIME_FORMAT),
    )


def receipt_ticket(order, now) -> Ticket:
    return Ticket(
        order_number=order_number(order),
        items=_lines(order),
        table=_table_label(order),
        waiter=order.waiter_name or "",
        time=now.strftime(TICKET_TIME_FORMAT),
        total=order.total,
        payment_method=order.payment_method,
    )


class TicketSink:
    """Where tickets go. ``emit`` returns whether the ticket was accepted."""

    def emit(self, kind: str, ticket: Ticket) -> bool:
        raise NotImplementedError


class LogTicketSink(TicketSink):
    """Used when no printer is attached; tickets only show up in the log."""

    def emit(self, kind, ticket):
        log.info("%s ticket %s (printing disabled)", kind, ticket.order_number)
        return True


class HttpTicketSink(TicketSink):
    paths = {"kitchen": "/print-kitchen", "receipt": "/print-receipt"}

    def __init__(self, base_url: str, timeout: float = 3.0, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def emit(self, kind, ticket):
        url = self.base_url + self.paths[kind]
        try:
            resp = self.session.post(url, json=ticket.to_payload(), timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as exc:
            log.warning("print relay %s rejected %s: %s", url, ticket.order_number, exc)
            return False
        log.info("%s ticket %s sent to %s", kind, ticket.order_number, url)
        return True

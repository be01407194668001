"""
Orderboard — View reconciler

Pure reducers from a full, unordered order snapshot to a derived view. Every
delivery re-sends the whole collection, so the same input must always give the
same output regardless of document order; each sort ends in a unique tiebreaker.
"""
import logging
import re
from datetime import datetime, timedelta, tzinfo
from enum import Enum as PyEnum
from typing import Iterable

from pydantic import ValidationError as ModelValidationError

from orderboard.core.config import shop_timezone
from orderboard.feed.base import Snapshot
from orderboard.models.order import EPOCH, Order, OrderStatus

logger = logging.getLogger(__name__)

# Display priority on the staff board. Not a transition rule.
STATUS_PRIORITY: dict[OrderStatus, int] = {
    OrderStatus.WAITING_FOR_PAYMENT_CONFIRMATION: 0,
    OrderStatus.PENDING: 1,
    OrderStatus.PREPARING: 2,
    OrderStatus.READY: 3,
}

_LABEL_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*([AaPp][Mm])\s*$")


class CustomerStage(str, PyEnum):
    MENU = "menu"
    AWAITING_PAYMENT = "awaiting_payment"
    CONFIRMED = "confirmed"


def orders_from_snapshot(snapshot: Snapshot | Iterable[Order]) -> list[Order]:
    """Parse snapshot documents, skipping (and logging) any that are malformed."""
    if not isinstance(snapshot, Snapshot):
        return list(snapshot)
    orders = []
    for doc in snapshot:
        try:
            orders.append(Order.from_document(doc.key, doc.fields))
        except ModelValidationError as exc:
            logger.warning("Skipping malformed order %s: %s", doc.key, exc.errors()[0]["msg"])
    return orders


def _created_key(order: Order) -> datetime:
    # Missing timestamp (pending server assignment) counts as the oldest possible value.
    return order.created_at or EPOCH


def parse_pickup_label(label: str) -> tuple[int, int] | None:
    """'09:45 AM' -> (9, 45) in 24h form; None when the label is not a clock time."""
    match = _LABEL_RE.match(label)
    if not match:
        return None
    hour, minute, meridiem = int(match.group(1)), int(match.group(2)), match.group(3).upper()
    if not 1 <= hour <= 12 or minute > 59:
        return None
    hour = hour % 12 + (12 if meridiem == "PM" else 0)
    return hour, minute


def pickup_instant(order: Order, tz: tzinfo | None = None) -> datetime | None:
    """Absolute pickup time: the stored instant, else the label (a wall-clock
    time in the shop's zone) placed on its first occurrence at or after the
    order's creation."""
    if order.pickup_at is not None:
        return order.pickup_at
    parsed = parse_pickup_label(order.pickup_time)
    if parsed is None:
        return None
    anchor = _created_key(order).astimezone(tz or shop_timezone())
    instant = anchor.replace(hour=parsed[0], minute=parsed[1], second=0, microsecond=0)
    if instant < anchor.replace(second=0, microsecond=0):
        instant += timedelta(days=1)
    return instant


def _queue_key(order: Order, tz: tzinfo) -> tuple:
    instant = pickup_instant(order, tz)
    pickup = (0, instant.timestamp(), "") if instant is not None else (1, 0.0, order.pickup_time)
    return (STATUS_PRIORITY[order.status], pickup, _created_key(order), order.id)


def get_active_order_for(user_id: str, snapshot: Snapshot | Iterable[Order]) -> Order | None:
    """The single most recent active order owned by `user_id`, or None."""
    candidates = [
        order for order in orders_from_snapshot(snapshot)
        if order.owner_id == user_id and order.is_active
    ]
    if not candidates:
        return None
    return max(candidates, key=lambda order: (_created_key(order), order.id))


def get_live_queue(snapshot: Snapshot | Iterable[Order], tz: tzinfo | None = None) -> list[Order]:
    """All active orders, payment approvals first, then by pickup time."""
    active = [order for order in orders_from_snapshot(snapshot) if order.is_active]
    tz = tz or shop_timezone()
    return sorted(active, key=lambda order: _queue_key(order, tz))


def customer_stage(order: Order | None) -> CustomerStage:
    if order is None or order.status in (OrderStatus.COMPLETED, OrderStatus.CANCELLED):
        return CustomerStage.MENU
    if order.status == OrderStatus.WAITING_FOR_PAYMENT_CONFIRMATION:
        return CustomerStage.AWAITING_PAYMENT
    return CustomerStage.CONFIRMED


def elapsed_minutes(order: Order, now: datetime) -> int:
    """Whole minutes since the order was created (0 while the timestamp is pending)."""
    if order.created_at is None:
        return 0
    return max(0, int((now - order.created_at).total_seconds() // 60))

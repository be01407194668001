"""
Orderboard — Order lifecycle rule table

The edge list below is the only definition of legal transitions. Staff terminals
use it to decide which buttons to offer; the central validator uses it to accept
or reject a write. Display priority lives in the reconciler and is unrelated.

  Waiting for Payment Confirmation → Pending → Preparing → Ready → Completed
  any non-terminal state → Cancelled
"""
from dataclasses import dataclass
from typing import Any

from orderboard.core.errors import StateConflictError
from orderboard.models.order import (
    Order,
    OrderStatus,
    PaymentStatus,
    TERMINAL_STATUSES,
)


@dataclass(frozen=True)
class Transition:
    source: OrderStatus
    target: OrderStatus
    label: str
    # Payment gate: the edge applies only while paymentStatus == requires_payment,
    # and it is the only kind of edge allowed to write paymentStatus.
    requires_payment: PaymentStatus | None = None
    sets_payment: PaymentStatus | None = None

    def applies_to(self, order: Order) -> bool:
        if order.status != self.source:
            return False
        return self.requires_payment is None or order.payment_status == self.requires_payment

    def patch(self) -> dict[str, Any]:
        """Partial field map written to the order document."""
        fields: dict[str, Any] = {"status": self.target.value}
        if self.sets_payment is not None:
            fields["paymentStatus"] = self.sets_payment.value
        return fields

    def expected(self) -> dict[str, Any]:
        """Stored values the document must still hold for this edge to be legal."""
        fields: dict[str, Any] = {"status": self.source.value}
        if self.requires_payment is not None:
            fields["paymentStatus"] = self.requires_payment.value
        return fields


FORWARD_CHAIN: tuple[OrderStatus, ...] = (
    OrderStatus.WAITING_FOR_PAYMENT_CONFIRMATION,
    OrderStatus.PENDING,
    OrderStatus.PREPARING,
    OrderStatus.READY,
    OrderStatus.COMPLETED,
)

TRANSITIONS: tuple[Transition, ...] = (
    Transition(
        OrderStatus.WAITING_FOR_PAYMENT_CONFIRMATION,
        OrderStatus.PENDING,
        "Approve Payment",
        requires_payment=PaymentStatus.AWAITING_CONFIRMATION,
        sets_payment=PaymentStatus.CONFIRMED,
    ),
    Transition(OrderStatus.PENDING, OrderStatus.PREPARING, "Start Preparing"),
    Transition(OrderStatus.PREPARING, OrderStatus.READY, "Ready for Pickup"),
    Transition(OrderStatus.READY, OrderStatus.COMPLETED, "Complete Order"),
) + tuple(
    Transition(status, OrderStatus.CANCELLED, "Cancel Order")
    for status in FORWARD_CHAIN
    if status not in TERMINAL_STATUSES
)

INITIAL_STATUS = OrderStatus.WAITING_FOR_PAYMENT_CONFIRMATION
INITIAL_PAYMENT_STATUS = PaymentStatus.AWAITING_CONFIRMATION


def is_terminal(status: OrderStatus) -> bool:
    return status in TERMINAL_STATUSES


def find_transition(order: Order, target: OrderStatus) -> Transition | None:
    """The edge that moves `order` into `target` right now, if any."""
    for transition in TRANSITIONS:
        if transition.target == target and transition.applies_to(order):
            return transition
    return None


def available_transitions(order: Order) -> list[Transition]:
    """Edges a staff terminal should offer for this order, in table order."""
    if is_terminal(order.status):
        return []
    return [t for t in TRANSITIONS if t.applies_to(order)]


def next_forward_transition(order: Order) -> Transition | None:
    for transition in available_transitions(order):
        if transition.target != OrderStatus.CANCELLED:
            return transition
    return None


def check_transition(order: Order, target: OrderStatus) -> Transition:
    """Like find_transition, but raises StateConflictError when no edge applies."""
    transition = find_transition(order, target)
    if transition is None:
        raise StateConflictError(order.id, order.status.value, target.value)
    return transition


def initial_fields() -> dict[str, Any]:
    return {"status": INITIAL_STATUS.value, "paymentStatus": INITIAL_PAYMENT_STATUS.value}



"""
Lifecycle rule table: which edges exist, which are offered, and what they write.
"""
import pytest

from orderboard.core.errors import StateConflictError
from orderboard.domain.lifecycle import (
    FORWARD_CHAIN,
    TRANSITIONS,
    available_transitions,
    check_transition,
    find_transition,
    initial_fields,
    next_forward_transition,
)
from orderboard.models.order import OrderStatus, PaymentStatus


def test_every_edge_is_one_forward_step_or_a_cancellation():
    for t in TRANSITIONS:
        if t.target == OrderStatus.CANCELLED:
            assert t.source not in (OrderStatus.COMPLETED, OrderStatus.CANCELLED)
            continue
        assert FORWARD_CHAIN.index(t.target) == FORWARD_CHAIN.index(t.source) + 1


def test_initial_fields_start_waiting_for_payment():
    assert initial_fields() == {
        "status": "Waiting for Payment Confirmation",
        "paymentStatus": "Waiting for Confirmation",
    }


def test_payment_approval_confirms_payment(make_order):
    order = make_order(status=OrderStatus.WAITING_FOR_PAYMENT_CONFIRMATION)
    transition = find_transition(order, OrderStatus.PENDING)
    assert transition is not None
    assert transition.patch() == {"status": "Pending", "paymentStatus": "Confirmed"}
    assert transition.expected() == {
        "status": "Waiting for Payment Confirmation",
        "paymentStatus": "Waiting for Confirmation",
    }


def test_payment_approval_gated_on_awaiting_confirmation(make_order):
    order = make_order(
        status=OrderStatus.WAITING_FOR_PAYMENT_CONFIRMATION,
        payment_status=PaymentStatus.CONFIRMED,
    )
    assert find_transition(order, OrderStatus.PENDING) is None


@pytest.mark.parametrize("source,target", [
    (OrderStatus.PENDING, OrderStatus.PREPARING),
    (OrderStatus.PREPARING, OrderStatus.READY),
    (OrderStatus.READY, OrderStatus.COMPLETED),
])
def test_forward_steps_never_touch_payment(make_order, source, target):
    transition = find_transition(make_order(status=source), target)
    assert transition is not None
    assert transition.patch() == {"status": target.value}


def test_cannot_skip_from_waiting_to_preparing(make_order):
    order = make_order(status=OrderStatus.WAITING_FOR_PAYMENT_CONFIRMATION)
    assert find_transition(order, OrderStatus.PREPARING) is None
    with pytest.raises(StateConflictError):
        check_transition(order, OrderStatus.PREPARING)


def test_cannot_go_backwards(make_order):
    assert find_transition(make_order(status=OrderStatus.READY), OrderStatus.PREPARING) is None


def test_requesting_current_status_finds_no_edge(make_order):
    assert find_transition(make_order(status=OrderStatus.PENDING), OrderStatus.PENDING) is None


@pytest.mark.parametrize("status", [OrderStatus.COMPLETED, OrderStatus.CANCELLED])
def test_terminal_states_offer_nothing(make_order, status):
    order = make_order(status=status)
    assert available_transitions(order) == []
    assert next_forward_transition(order) is None
    assert find_transition(order, OrderStatus.CANCELLED) is None


def test_offered_buttons_for_waiting_order(make_order):
    order = make_order(status=OrderStatus.WAITING_FOR_PAYMENT_CONFIRMATION)
    offered = [(t.target, t.label) for t in available_transitions(order)]
    assert offered == [
        (OrderStatus.PENDING, "Approve Payment"),
        (OrderStatus.CANCELLED, "Cancel Order"),
    ]
    assert next_forward_transition(order).target == OrderStatus.PENDING


def test_cancel_reachable_from_every_active_state(make_order):
    for status in (OrderStatus.WAITING_FOR_PAYMENT_CONFIRMATION, OrderStatus.PENDING,
                   OrderStatus.PREPARING, OrderStatus.READY):
        transition = find_transition(make_order(status=status), OrderStatus.CANCELLED)
        assert transition is not None
        assert transition.patch() == {"status": "Cancelled"}

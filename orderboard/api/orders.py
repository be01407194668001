"""
Orderboard — Orders API

Customer flow:
  1. GET  /orders/pickup-slots       choose a slot
  2. POST /orders                    one document, status "Waiting for Payment Confirmation"
  3. GET  /orders/active (or SSE)    watch it move

Staff flow:
  GET  /orders/queue (or SSE)        live board
  POST /orders/{id}/transitions      central validator; a stale request is a no-op
"""
import asyncio
import json
import logging
from datetime import datetime
from typing import Any, AsyncGenerator, Callable

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import StreamingResponse

from orderboard.api.deps import current_user_id, get_feed, require_staff
from orderboard.core.config import get_settings, shop_timezone
from orderboard.core.errors import StateConflictError, ValidationError
from orderboard.domain.cart import Cart, build_line_item, offered_pickup_slot, pickup_slots
from orderboard.domain.lifecycle import INITIAL_STATUS, available_transitions
from orderboard.domain.reconciler import get_active_order_for, get_live_queue
from orderboard.feed.base import ChangeFeedClient
from orderboard.feed.sources import SnapshotSource, make_source
from orderboard.models.order import Order
from orderboard.schemas.order import (
    CheckoutRequest,
    CheckoutResponse,
    PickupSlotResponse,
    TransitionOption,
    TransitionRequest,
    TransitionResponse,
)
from orderboard.services.catalog import menu_from_snapshot
from orderboard.services.checkout import CheckoutService
from orderboard.services.transitions import apply_transition, load_order
from orderboard.services.views import ActiveOrderView, LiveQueueView

settings = get_settings()
logger = logging.getLogger(__name__)
router = APIRouter(prefix="/orders", tags=["orders"])


def _shop_now() -> datetime:
    return datetime.now(shop_timezone())


def serialize_order(order: Order | None) -> dict[str, Any] | None:
    if order is None:
        return None
    return {"id": order.id, **order.to_fields()}


@router.get("/pickup-slots", response_model=list[PickupSlotResponse])
async def list_pickup_slots():
    slots = pickup_slots(
        _shop_now(),
        count=settings.PICKUP_SLOT_COUNT,
        lead_minutes=settings.PICKUP_LEAD_MINUTES,
        step_minutes=settings.PICKUP_SLOT_MINUTES,
    )
    return [PickupSlotResponse(label=s.label, at=s.at.isoformat()) for s in slots]


@router.post("", response_model=CheckoutResponse, status_code=status.HTTP_201_CREATED)
async def checkout(
    payload: CheckoutRequest,
    user_id: str = Depends(current_user_id),
    feed: ChangeFeedClient = Depends(get_feed),
):
    """
    Build the cart from the current menu, validate every option selection against
    the item's schema, then create the order document.
    """
    menu = {item.id: item for item in menu_from_snapshot(await feed.get_snapshot(settings.MENU_COLLECTION))}
    cart = Cart()
    for line in payload.items:
        item = menu.get(line.menu_item_id)
        if item is None:
            raise ValidationError(f"Menu item '{line.menu_item_id}' does not exist.")
        cart.add(build_line_item(item, line.options))

    pickup = offered_pickup_slot(
        payload.pickup_time,
        _shop_now(),
        count=settings.PICKUP_SLOT_COUNT,
        lead_minutes=settings.PICKUP_LEAD_MINUTES,
        step_minutes=settings.PICKUP_SLOT_MINUTES,
    )
    service = CheckoutService(feed, user_id)
    if not await service.submit(cart, pickup, payload.customer_name):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Order submission failed. Please try again.",
        )

    return CheckoutResponse(
        order_id=service.last_order_id,
        status=INITIAL_STATUS,
        payment_amount=float(cart.total),
        currency=settings.CURRENCY,
        pickup_time=pickup.label,
        message="Order submitted. Waiting for staff to confirm payment.",
    )


@router.get("/active")
async def get_active_order(
    user_id: str = Depends(current_user_id),
    feed: ChangeFeedClient = Depends(get_feed),
):
    """The caller's most recent active order, or null."""
    snapshot = await feed.get_snapshot(settings.ORDERS_COLLECTION)
    return serialize_order(get_active_order_for(user_id, snapshot))


@router.get("/queue")
async def get_queue(
    _staff: str = Depends(require_staff),
    feed: ChangeFeedClient = Depends(get_feed),
):
    """Staff board: active orders, payment approvals first, then by pickup time."""
    snapshot = await feed.get_snapshot(settings.ORDERS_COLLECTION)
    return [serialize_order(order) for order in get_live_queue(snapshot)]


@router.get("/{order_id}/transitions", response_model=list[TransitionOption])
async def list_transitions(
    order_id: str,
    _staff: str = Depends(require_staff),
    feed: ChangeFeedClient = Depends(get_feed),
):
    order = await load_order(feed, order_id)
    return [TransitionOption(target=t.target, label=t.label) for t in available_transitions(order)]


@router.post("/{order_id}/transitions", response_model=TransitionResponse)
async def request_transition(
    order_id: str,
    payload: TransitionRequest,
    _staff: str = Depends(require_staff),
    feed: ChangeFeedClient = Depends(get_feed),
):
    """
    Apply a transition if the stored order is in the immediate predecessor state.
    Anything else (already there, skipped ahead, terminal) is answered with
    applied=false and the current status; it is not an error.
    """
    try:
        order = await apply_transition(feed, order_id, payload.target)
        return TransitionResponse(order_id=order_id, status=order.status, applied=True)
    except StateConflictError as exc:
        logger.info("Ignored stale transition: %s", exc)
        current = await load_order(feed, order_id)
        return TransitionResponse(order_id=order_id, status=current.status, applied=False)


# ── Server-sent events ────────────────────────────────────────────────────────

async def _sse_generator(
    request: Request,
    feed: ChangeFeedClient,
    make_view: Callable[[SnapshotSource], Any],
    render: Callable[[Any], Any],
) -> AsyncGenerator[str, None]:
    """Stream the view's value on every change until the client disconnects."""
    source = make_source(feed, settings.ORDERS_COLLECTION, settings.SNAPSHOT_SOURCE)
    view = make_view(source)
    updates: asyncio.Queue = asyncio.Queue()
    view.subscribe(updates.put_nowait)
    await source.start()
    while not updates.empty():
        updates.get_nowait()  # already covered by the first event below

    try:
        yield f"retry: {settings.SSE_RETRY_MILLISECONDS}\n\n"
        yield f"event: view\ndata: {json.dumps(render(view.value))}\n\n"

        while True:
            if await request.is_disconnected():
                break
            try:
                value = await asyncio.wait_for(
                    updates.get(), timeout=settings.SSE_KEEPALIVE_INTERVAL_SECONDS
                )
            except asyncio.TimeoutError:
                if source.last_error is not None:
                    yield "event: error\ndata: {\"detail\": \"Order feed unavailable\"}\n\n"
                yield ": keepalive\n\n"
                continue
            yield f"event: view\ndata: {json.dumps(render(value))}\n\n"
    finally:
        await source.stop()


def _stream(generator: AsyncGenerator[str, None]) -> StreamingResponse:
    return StreamingResponse(
        generator,
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",  # Disable Nginx buffering
            "Connection": "keep-alive",
        },
    )


@router.get("/stream/active")
async def stream_active_order(
    request: Request,
    user_id: str = Depends(current_user_id),
    feed: ChangeFeedClient = Depends(get_feed),
):
    return _stream(_sse_generator(
        request, feed,
        lambda source: ActiveOrderView(source, user_id),
        serialize_order,
    ))


@router.get("/stream/queue")
async def stream_queue(
    request: Request,
    _staff: str = Depends(require_staff),
    feed: ChangeFeedClient = Depends(get_feed),
):
    return _stream(_sse_generator(
        request, feed,
        LiveQueueView,
        lambda orders: [serialize_order(order) for order in orders],
    ))

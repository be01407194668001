"""
Checkout: one document per submit, initial lifecycle fields, server timestamps.
"""
from datetime import datetime, timezone

import pytest

from orderboard.core.config import get_settings
from orderboard.core.errors import ValidationError
from orderboard.domain.cart import Cart, PickupSlot, build_line_item
from orderboard.domain.reconciler import get_active_order_for
from orderboard.feed.memory import InMemoryChangeFeed
from orderboard.feed.sources import FullRefreshSource
from orderboard.models.order import OrderStatus, PaymentStatus
from orderboard.services.checkout import CheckoutService
from orderboard.services.views import ActiveOrderView


settings = get_settings()

FIXED_NOW = datetime(2024, 5, 17, 9, 0, tzinfo=timezone.utc)

PICKUP = PickupSlot.at_time(datetime(2024, 5, 17, 9, 15, tzinfo=timezone.utc))


class RecordingFeed(InMemoryChangeFeed):
    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.creates = 0

    async def create_document(self, collection, fields, key=None):
        self.creates += 1
        return await super().create_document(collection, fields, key=key)


@pytest.fixture
def cart(menu_items) -> Cart:
    cart = Cart()
    cart.add(build_line_item(menu_items["latte"], {"milk": "Oat", "temperature": "Iced"}))
    cart.add(build_line_item(menu_items["croissant"]))
    return cart


@pytest.mark.asyncio
async def test_submit_writes_one_order_with_initial_state(cart):
    feed = RecordingFeed(clock=lambda: FIXED_NOW)
    checkout = CheckoutService(feed, "user-1")

    assert await checkout.submit(cart, PICKUP, "  Ann ") is True
    assert feed.creates == 1

    doc = (await feed.get_snapshot(settings.ORDERS_COLLECTION)).get(checkout.last_order_id)
    assert doc is not None
    assert len(doc.key) == settings.ORDER_ID_LENGTH
    assert doc.fields["status"] == OrderStatus.WAITING_FOR_PAYMENT_CONFIRMATION.value
    assert doc.fields["paymentStatus"] == PaymentStatus.AWAITING_CONFIRMATION.value
    assert doc.fields["customerName"] == "Ann"
    assert doc.fields["pickupTime"] == "09:15 AM"
    assert doc.fields["paymentAmount"] == 8.7
    assert doc.fields["createdAt"] == FIXED_NOW
    assert [line["baseId"] for line in doc.fields["orderItems"]] == ["latte", "croissant"]
    assert doc.fields["orderItems"][0]["options"]["ice_separation"] == "No"


@pytest.mark.asyncio
async def test_empty_cart_rejected_before_any_write():
    feed = RecordingFeed()
    with pytest.raises(ValidationError, match="cart is empty"):
        await CheckoutService(feed, "user-1").submit(Cart(), PICKUP, "Ann")
    assert feed.creates == 0


@pytest.mark.asyncio
async def test_blank_name_rejected(cart):
    feed = RecordingFeed()
    with pytest.raises(ValidationError):
        await CheckoutService(feed, "user-1").submit(cart, PICKUP, "   ")
    assert feed.creates == 0


@pytest.mark.asyncio
async def test_transport_failure_reports_false(cart):
    feed = RecordingFeed()
    feed.offline = True
    checkout = CheckoutService(feed, "user-1")
    assert await checkout.submit(cart, PICKUP, "Ann") is False
    assert checkout.last_order_id is None


@pytest.mark.asyncio
async def test_each_submit_is_a_new_order(cart):
    feed = InMemoryChangeFeed(clock=lambda: FIXED_NOW)
    checkout = CheckoutService(feed, "user-1")
    await checkout.submit(cart, PICKUP, "Ann")
    first = checkout.last_order_id
    await checkout.submit(cart, PICKUP, "Ann")
    assert checkout.last_order_id != first
    assert len(await feed.get_snapshot(settings.ORDERS_COLLECTION)) == 2


@pytest.mark.asyncio
async def test_new_order_visible_before_and_after_timestamp_assignment(cart):
    feed = InMemoryChangeFeed(clock=lambda: FIXED_NOW, defer_timestamps=True)
    source = FullRefreshSource(feed, settings.ORDERS_COLLECTION)
    await source.start()
    view = ActiveOrderView(source, "user-1")

    checkout = CheckoutService(feed, "user-1")
    await checkout.submit(cart, PICKUP, "Ann")

    # Acknowledged but not yet timestamped: still the customer's active order.
    assert "createdAt" not in source.snapshot.get(checkout.last_order_id).fields
    assert view.value.id == checkout.last_order_id
    assert view.value.created_at is None

    feed.flush_timestamps()
    assert view.value.created_at == FIXED_NOW
    assert get_active_order_for("user-1", source.snapshot).id == checkout.last_order_id

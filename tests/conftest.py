"""
Shared fixtures: an in-memory change feed plus factories for order and menu data.
"""
from datetime import datetime, timezone
from typing import Any

import pytest
import pytest_asyncio
from jose import jwt

from orderboard.core.config import get_settings
from orderboard.feed.memory import InMemoryChangeFeed
from orderboard.models.menu import MenuItem
from orderboard.models.order import Order, OrderStatus, PaymentStatus
from orderboard.services.catalog import INITIAL_MENU_ITEMS

settings = get_settings()

FIXED_NOW = datetime(2024, 5, 17, 9, 0, tzinfo=timezone.utc)


def _order_fields(
    user_id: str = "user-1",
    status: OrderStatus = OrderStatus.PENDING,
    payment_status: PaymentStatus | None = None,
    pickup_time: str = "10:00 AM",
    created_at: datetime | None = FIXED_NOW,
    customer_name: str = "Ann",
    **extra: Any,
) -> dict[str, Any]:
    if payment_status is None:
        payment_status = (
            PaymentStatus.AWAITING_CONFIRMATION
            if status == OrderStatus.WAITING_FOR_PAYMENT_CONFIRMATION
            else PaymentStatus.CONFIRMED
        )
    fields: dict[str, Any] = {
        "userId": user_id,
        "customerName": customer_name,
        "orderItems": [
            {"id": "latte-1", "baseId": "latte", "name": "Latte", "price": 5.2,
             "options": {"milk": "Oat", "temperature": "Hot"}},
        ],
        "pickupTime": pickup_time,
        "paymentAmount": 5.2,
        "status": status.value,
        "paymentStatus": payment_status.value,
    }
    if created_at is not None:
        fields["createdAt"] = created_at
    fields.update(extra)
    return fields


@pytest.fixture(autouse=True)
def shop_in_utc(monkeypatch):
    """Pickup labels are read in UTC unless a test picks another zone."""
    monkeypatch.setattr(settings, "SHOP_TIMEZONE", "UTC")


@pytest.fixture
def order_fields():
    """Factory for stored order field maps (wire names)."""
    return _order_fields


@pytest.fixture
def make_order():
    """Factory for parsed Order models."""
    def _make(order_id: str = "ORD001", **kwargs) -> Order:
        return Order.from_document(order_id, _order_fields(**kwargs))
    return _make


@pytest.fixture
def menu_items() -> dict[str, MenuItem]:
    return {raw["id"]: MenuItem.model_validate(raw) for raw in INITIAL_MENU_ITEMS}


@pytest.fixture
def feed() -> InMemoryChangeFeed:
    return InMemoryChangeFeed(clock=lambda: FIXED_NOW)


@pytest_asyncio.fixture
async def seeded_feed(feed: InMemoryChangeFeed) -> InMemoryChangeFeed:
    for raw in INITIAL_MENU_ITEMS:
        fields = {k: v for k, v in raw.items() if k != "id"}
        await feed.create_document(settings.MENU_COLLECTION, fields, key=raw["id"])
    return feed


@pytest.fixture
def token():
    """Factory for bearer tokens signed with the configured secret."""
    def _token(sub: str = "user-1", is_staff: bool = False) -> str:
        return jwt.encode({"sub": sub, "is_staff": is_staff},
                          settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
    return _token

"""
Orderboard — Order document model

[TRANSACTIONAL DATA] — one document per checkout in the `orders` collection.
Field aliases are the stored wire names; other tools read these documents too.
"""
from datetime import datetime, timezone
from enum import Enum as PyEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class OrderStatus(str, PyEnum):
    WAITING_FOR_PAYMENT_CONFIRMATION = "Waiting for Payment Confirmation"
    PENDING = "Pending"
    PREPARING = "Preparing"
    READY = "Ready"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class PaymentStatus(str, PyEnum):
    AWAITING_CONFIRMATION = "Waiting for Confirmation"
    CONFIRMED = "Confirmed"


ACTIVE_STATUSES: frozenset[OrderStatus] = frozenset({
    OrderStatus.WAITING_FOR_PAYMENT_CONFIRMATION,
    OrderStatus.PENDING,
    OrderStatus.PREPARING,
    OrderStatus.READY,
})
TERMINAL_STATUSES: frozenset[OrderStatus] = frozenset({
    OrderStatus.COMPLETED,
    OrderStatus.CANCELLED,
})


def as_utc(value: datetime | None) -> datetime | None:
    """Naive timestamps are stored UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class LineItem(BaseModel):
    """One cart line: a menu item snapshot plus its resolved option selection."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    base_id: str | None = Field(None, alias="baseId")
    name: str
    price: float = Field(..., ge=0)
    options: dict[str, str] = Field(default_factory=dict)


class Order(BaseModel):
    """
    [TRANSACTIONAL DATA]
    Only `status` and `paymentStatus` change after creation, and only through
    the lifecycle rule table.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    owner_id: str = Field(..., alias="userId")
    customer_name: str = Field(..., alias="customerName")
    items: list[LineItem] = Field(default_factory=list, alias="orderItems")
    pickup_time: str = Field(..., alias="pickupTime")
    pickup_at: datetime | None = Field(None, alias="pickupAt")
    payment_amount: float = Field(..., alias="paymentAmount")
    status: OrderStatus
    payment_status: PaymentStatus = Field(..., alias="paymentStatus")
    created_at: datetime | None = Field(None, alias="createdAt")

    @field_validator("created_at", "pickup_at")
    @classmethod
    def _utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def is_paid(self) -> bool:
        return self.payment_status == PaymentStatus.CONFIRMED

    @classmethod
    def from_document(cls, key: str, fields: dict[str, Any]) -> "Order":
        return cls.model_validate({**fields, "id": key})

    def to_fields(self) -> dict[str, Any]:
        """Stored field map (document key excluded)."""
        return self.model_dump(by_alias=True, exclude={"id"}, mode="json", exclude_none=True)

"""
Orderboard — Pydantic Schemas (HTTP surface)
"""
from pydantic import BaseModel, Field

from orderboard.models.order import OrderStatus


class CartLineRequest(BaseModel):
    menu_item_id: str = Field(..., examples=["latte"])
    options: dict[str, str] = Field(default_factory=dict, examples=[{"temperature": "Iced"}])


class CheckoutRequest(BaseModel):
    items: list[CartLineRequest] = Field(..., max_length=50)
    pickup_time: str = Field(..., examples=["09:45 AM"])
    customer_name: str = Field(..., max_length=100)


class CheckoutResponse(BaseModel):
    order_id: str
    status: OrderStatus
    payment_amount: float
    currency: str
    pickup_time: str
    message: str


class TransitionRequest(BaseModel):
    target: OrderStatus


class TransitionOption(BaseModel):
    target: OrderStatus
    label: str


class TransitionResponse(BaseModel):
    order_id: str
    status: OrderStatus
    applied: bool


class PickupSlotResponse(BaseModel):
    label: str
    at: str


class MenuItemRequest(BaseModel):
    category: str = ""
    name: str = ""
    price: float = 0.0
    options: dict[str, list[str]] = Field(default_factory=dict)

"""
Orderboard — Checkout (customer side)

One submit() creates exactly one order document under a freshly generated key.
A retry after a failure generates a new key, so it is a new attempt.
"""
import logging

from orderboard.core.config import get_settings
from orderboard.core.errors import TransportError, ValidationError
from orderboard.domain.cart import Cart, PickupSlot, generate_order_id
from orderboard.domain.lifecycle import initial_fields
from orderboard.feed.base import SERVER_TIMESTAMP, ChangeFeedClient

settings = get_settings()
logger = logging.getLogger(__name__)


class CheckoutService:
    def __init__(self, feed: ChangeFeedClient, user_id: str,
                 collection: str = settings.ORDERS_COLLECTION):
        self.feed = feed
        self.user_id = user_id
        self.collection = collection
        self.last_order_id: str | None = None

    def build_fields(self, cart: Cart, pickup: PickupSlot, customer_name: str) -> dict:
        if cart.is_empty:
            raise ValidationError("Your cart is empty!")
        if not customer_name or not customer_name.strip():
            raise ValidationError("A customer name is required for pickup.")
        if not self.user_id:
            raise ValidationError("No user identity for this session.")
        return {
            "userId": self.user_id,
            "customerName": customer_name.strip(),
            "orderItems": [line.model_dump(by_alias=True, mode="json", exclude_none=True)
                           for line in cart],
            "pickupTime": pickup.label,
            "pickupAt": pickup.at.isoformat(),
            "paymentAmount": float(cart.total),
            **initial_fields(),
            "createdAt": SERVER_TIMESTAMP,
        }

    async def submit(self, cart: Cart, pickup: PickupSlot, customer_name: str) -> bool:
        """Create the order document. ValidationError propagates before any write;
        transport failures are logged and reported as False."""
        fields = self.build_fields(cart, pickup, customer_name)
        order_id = generate_order_id(settings.ORDER_ID_LENGTH)
        try:
            await self.feed.create_document(self.collection, fields, key=order_id)
        except TransportError as exc:
            logger.error("Error placing order %s: %s", order_id, exc)
            return False
        self.last_order_id = order_id
        logger.info("Order placed successfully with ID: %s", order_id)
        return True

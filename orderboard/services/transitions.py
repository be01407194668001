"""
Orderboard — Central transition validator

Re-checks a requested transition against the *stored* document using the same
rule table the terminals use, then writes it with compare-and-set:
  - READ:  current status / paymentStatus
  - CHECK: an edge into the target must apply, else StateConflictError
  - WRITE: only if status / paymentStatus still hold what we read
  - If the document changed under the write → StaleWriteError → retry from READ
"""
import logging

from orderboard.core.config import get_settings
from orderboard.core.errors import NotFoundError, StateConflictError
from orderboard.core.optimistic_lock import with_optimistic_retry
from orderboard.domain.lifecycle import check_transition
from orderboard.feed.base import ChangeFeedClient
from orderboard.models.order import Order, OrderStatus

settings = get_settings()
logger = logging.getLogger(__name__)


async def load_order(feed: ChangeFeedClient, order_id: str,
                     collection: str = settings.ORDERS_COLLECTION) -> Order:
    doc = (await feed.get_snapshot(collection)).get(order_id)
    if doc is None:
        raise NotFoundError(collection, order_id)
    return Order.from_document(doc.key, doc.fields)


@with_optimistic_retry()
async def apply_transition(
    feed: ChangeFeedClient,
    order_id: str,
    target: OrderStatus,
    collection: str = settings.ORDERS_COLLECTION,
) -> Order:
    """
    Returns the order as written. Raises StateConflictError when the order is not
    in the immediate predecessor state of `target` (already there included).
    """
    order = await load_order(feed, order_id, collection)
    transition = check_transition(order, target)

    written = await feed.compare_and_update(
        collection, order_id, transition.expected(), transition.patch()
    )
    if not written:
        # Document moved between our read and the conditional check.
        raise StateConflictError(order_id, order.status.value, target.value)

    logger.info("Order %s: %s → %s (validated)", order_id, order.status.value, target.value)
    return order.model_copy(update={
        "status": transition.target,
        "payment_status": transition.sets_payment or order.payment_status,
    })

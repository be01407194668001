"""
Orderboard — Order lifecycle controller (staff terminals)

Flow:
  1. Look the order up in the last confirmed snapshot
  2. Find the edge into the requested status; none → silent no-op
  3. Hand the edge to a sink and return immediately (fire-and-forget)
  4. The outcome shows up in a later snapshot, never through this call

There is no cross-terminal locking. Two terminals pressing the same button both
issue the same write; the second is harmless.
"""
import asyncio
import logging
from typing import Protocol

import httpx

from orderboard.core.config import get_settings
from orderboard.core.errors import OrderboardError, TransportError
from orderboard.domain.lifecycle import Transition, find_transition
from orderboard.domain.reconciler import orders_from_snapshot
from orderboard.feed.base import ChangeFeedClient
from orderboard.feed.sources import SnapshotSource
from orderboard.models.order import Order, OrderStatus

settings = get_settings()
logger = logging.getLogger(__name__)


class TransitionSink(Protocol):
    async def apply(self, order: Order, transition: Transition) -> None:
        ...


class FeedTransitionSink:
    """Writes the edge's field patch straight into the shared store."""

    def __init__(self, feed: ChangeFeedClient, collection: str = settings.ORDERS_COLLECTION):
        self.feed = feed
        self.collection = collection

    async def apply(self, order: Order, transition: Transition) -> None:
        await self.feed.update_fields(self.collection, order.id, transition.patch())


class HttpTransitionSink:
    """Asks the central validator to apply the edge (POST /orders/{id}/transitions)."""

    def __init__(self, base_url: str = settings.ORDERBOARD_URL, token: str | None = None,
                 transport: httpx.AsyncBaseTransport | None = None):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.transport = transport

    async def apply(self, order: Order, transition: Transition) -> None:
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        try:
            async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS,
                                         transport=self.transport) as client:
                r = await client.post(
                    f"{self.base_url}/orders/{order.id}/transitions",
                    json={"target": transition.target.value},
                    headers=headers,
                )
        except httpx.HTTPError as exc:
            raise TransportError(f"Orderboard unreachable: {exc}") from exc
        if r.status_code >= 500:
            raise TransportError(f"Orderboard answered {r.status_code}: {r.text[:200]}")
        if not r.is_success:
            logger.warning("Transition %s → %s on %s refused (%d): %s", transition.source.value,
                           transition.target.value, order.id, r.status_code, r.text[:200])
        elif not r.json().get("applied", False):
            logger.info("Order %s had already moved on; transition to %s skipped",
                        order.id, transition.target.value)


class LifecycleController:
    def __init__(self, source: SnapshotSource, sink: TransitionSink):
        self.source = source
        self.sink = sink
        self._tasks: set[asyncio.Task] = set()

    def _lookup(self, order_id: str) -> Order | None:
        for order in orders_from_snapshot(self.source.snapshot):
            if order.id == order_id:
                return order
        return None

    def plan(self, order_id: str, target: OrderStatus) -> tuple[Order, Transition] | None:
        order = self._lookup(order_id)
        if order is None:
            return None
        transition = find_transition(order, target)
        if transition is None:
            return None
        return order, transition

    def request_transition(self, order_id: str, target: OrderStatus) -> None:
        """Issue the transition in the background; ineligible requests do nothing."""
        planned = self.plan(order_id, target)
        if planned is None:
            logger.debug("No transition to %s offered for order %s", target.value, order_id)
            return
        task = asyncio.create_task(self._issue(*planned))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def issue_transition(self, order_id: str, target: OrderStatus) -> bool:
        """Awaitable variant: True when a mutation was sent and accepted by the sink."""
        planned = self.plan(order_id, target)
        if planned is None:
            return False
        return await self._issue(*planned)

    async def _issue(self, order: Order, transition: Transition) -> bool:
        try:
            await self.sink.apply(order, transition)
        except TransportError as exc:
            logger.error("Status update for %s → %s failed: %s", order.id, transition.target.value, exc)
            return False
        except OrderboardError as exc:
            logger.error("Status update for %s rejected: %s", order.id, exc)
            return False
        logger.info("Order %s: %s → %s", order.id, transition.source.value, transition.target.value)
        return True

    async def drain(self) -> None:
        """Wait for every in-flight transition task (shutdown, tests)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

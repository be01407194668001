"""
Orderboard — Snapshot sources

Both sources hand the views a complete Snapshot after every mutation:
  - FullRefreshSource replaces its snapshot with each delivery from subscribe()
  - IncrementalSource seeds once, then folds each Change into a keyed index
The derived views cannot tell them apart.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable

from orderboard.core.errors import TransportError
from orderboard.feed.base import (
    CHANGE_DELETE,
    Change,
    ChangeFeedClient,
    Snapshot,
    Subscription,
)

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[Snapshot], None]


class SnapshotSource(ABC):
    def __init__(self, feed: ChangeFeedClient, collection: str):
        self.feed = feed
        self.collection = collection
        self.snapshot = Snapshot(collection)
        self.last_error: TransportError | None = None
        self._subscription: Subscription | None = None
        self._listeners: list[UpdateCallback] = []

    def listen(self, callback: UpdateCallback) -> None:
        self._listeners.append(callback)

    @abstractmethod
    async def start(self) -> None:
        ...

    async def stop(self) -> None:
        if self._subscription is not None:
            await self._subscription.unsubscribe()
            self._subscription = None

    def _emit(self, snapshot: Snapshot) -> None:
        self.snapshot = snapshot
        self.last_error = None
        for callback in list(self._listeners):
            callback(snapshot)

    def _fail(self, error: TransportError) -> None:
        # Keep rendering the last confirmed snapshot.
        logger.warning("Snapshot source for '%s' failed: %s", self.collection, error)
        self.last_error = error


class FullRefreshSource(SnapshotSource):
    async def start(self) -> None:
        self._subscription = await self.feed.subscribe(self.collection, self._on_snapshot)

    def _on_snapshot(self, delivery: Snapshot | TransportError) -> None:
        if isinstance(delivery, TransportError):
            self._fail(delivery)
        else:
            self._emit(delivery)


class IncrementalSource(SnapshotSource):
    def __init__(self, feed: ChangeFeedClient, collection: str):
        super().__init__(feed, collection)
        self._index: dict[str, dict[str, Any]] = {}

    async def start(self) -> None:
        # Subscribe first so no change between the seed read and the subscription is lost.
        self._subscription = await self.feed.subscribe_changes(self.collection, self._on_change)
        seed = await self.feed.get_snapshot(self.collection)
        self._index = {doc.key: doc.fields for doc in seed}
        self._emit(Snapshot.from_mapping(self.collection, self._index))

    def _on_change(self, delivery: Change | TransportError) -> None:
        if isinstance(delivery, TransportError):
            self._fail(delivery)
            return
        if delivery.op == CHANGE_DELETE:
            self._index.pop(delivery.key, None)
        else:
            self._index[delivery.key] = delivery.fields
        self._emit(Snapshot.from_mapping(self.collection, self._index))


SOURCES: dict[str, type[SnapshotSource]] = {
    "full": FullRefreshSource,
    "incremental": IncrementalSource,
}


def make_source(feed: ChangeFeedClient, collection: str, kind: str = "full") -> SnapshotSource:
    try:
        return SOURCES[kind](feed, collection)
    except KeyError:
        raise ValueError(f"Unknown snapshot source '{kind}'; expected one of {sorted(SOURCES)}") from None

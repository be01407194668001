"""
Orderboard — In-process change feed

Single-process stand-in for the shared store: local terminals, demos and tests.
Deliveries happen synchronously inside the mutating call, in mutation order.
"""
import copy
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Mapping

from orderboard.core.errors import NotFoundError, TransportError
from orderboard.feed.base import (
    CHANGE_DELETE,
    CHANGE_SET,
    SERVER_TIMESTAMP,
    Change,
    ChangeCallback,
    ChangeFeedClient,
    Snapshot,
    SnapshotCallback,
    Subscription,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryChangeFeed(ChangeFeedClient):
    """
    `defer_timestamps=True` mimics a store that acknowledges a write before it
    assigns server timestamps: the document is delivered without those fields
    until `flush_timestamps()` runs.
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow, defer_timestamps: bool = False):
        self._clock = clock
        self._defer = defer_timestamps
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._snapshot_listeners: dict[str, list[SnapshotCallback]] = {}
        self._change_listeners: dict[str, list[ChangeCallback]] = {}
        self._pending: list[tuple[str, str, list[str]]] = []
        self.offline = False

    # ── Reads / subscriptions ────────────────────────────────────────────────
    async def get_snapshot(self, collection: str) -> Snapshot:
        self._check_online()
        return self._snapshot(collection)

    async def subscribe(self, collection: str, on_snapshot: SnapshotCallback) -> Subscription:
        listeners = self._snapshot_listeners.setdefault(collection, [])
        listeners.append(on_snapshot)
        if self.offline:
            on_snapshot(TransportError("Store unreachable."))
        else:
            on_snapshot(self._snapshot(collection))

        async def _close():
            listeners.remove(on_snapshot)

        return Subscription(_close)

    async def subscribe_changes(self, collection: str, on_change: ChangeCallback) -> Subscription:
        listeners = self._change_listeners.setdefault(collection, [])
        listeners.append(on_change)

        async def _close():
            listeners.remove(on_change)

        return Subscription(_close)

    # ── Mutations ────────────────────────────────────────────────────────────
    async def create_document(
        self, collection: str, fields: dict[str, Any], key: str | None = None
    ) -> str:
        self._check_online()
        key = key or uuid.uuid4().hex
        stored = self._resolve_timestamps(collection, key, fields)
        self._collections.setdefault(collection, {})[key] = stored
        self._publish(collection, Change(CHANGE_SET, key, copy.deepcopy(stored)))
        return key

    async def update_fields(self, collection: str, key: str, fields: dict[str, Any]) -> None:
        self._check_online()
        doc = self._collections.get(collection, {}).get(key)
        if doc is None:
            raise NotFoundError(collection, key)
        doc.update(self._resolve_timestamps(collection, key, fields))
        self._publish(collection, Change(CHANGE_SET, key, copy.deepcopy(doc)))

    async def compare_and_update(
        self,
        collection: str,
        key: str,
        expected: Mapping[str, Any],
        fields: dict[str, Any],
    ) -> bool:
        # Single-threaded loop: nothing can interleave between the check and the write.
        self._check_online()
        doc = self._collections.get(collection, {}).get(key)
        if doc is None:
            raise NotFoundError(collection, key)
        if any(doc.get(name) != value for name, value in expected.items()):
            return False
        await self.update_fields(collection, key, fields)
        return True

    async def delete_document(self, collection: str, key: str) -> None:
        self._check_online()
        docs = self._collections.get(collection, {})
        if docs.pop(key, None) is not None:
            self._publish(collection, Change(CHANGE_DELETE, key))

    def flush_timestamps(self) -> None:
        """Assign every deferred server timestamp, one delivery per document."""
        pending, self._pending = self._pending, []
        for collection, key, names in pending:
            doc = self._collections.get(collection, {}).get(key)
            if doc is None:
                continue
            now = self._clock()
            for name in names:
                doc[name] = now
            self._publish(collection, Change(CHANGE_SET, key, copy.deepcopy(doc)))

    # ── Internals ────────────────────────────────────────────────────────────
    def _check_online(self) -> None:
        if self.offline:
            raise TransportError("Store unreachable.")

    def _snapshot(self, collection: str) -> Snapshot:
        return Snapshot.from_mapping(collection, copy.deepcopy(self._collections.get(collection, {})))

    def _resolve_timestamps(self, collection: str, key: str, fields: dict[str, Any]) -> dict[str, Any]:
        resolved: dict[str, Any] = {}
        deferred: list[str] = []
        for name, value in fields.items():
            if value is SERVER_TIMESTAMP:
                if self._defer:
                    deferred.append(name)
                    continue
                value = self._clock()
            resolved[name] = copy.deepcopy(value)
        if deferred:
            self._pending.append((collection, key, deferred))
        return resolved

    def _publish(self, collection: str, change: Change) -> None:
        for callback in list(self._change_listeners.get(collection, [])):
            callback(change)
        listeners = list(self._snapshot_listeners.get(collection, []))
        if listeners:
            snapshot = self._snapshot(collection)
            for callback in listeners:
                callback(snapshot)
        logger.debug("%s %s/%s delivered to %d listener(s)", change.op, collection, change.key,
                     len(listeners))

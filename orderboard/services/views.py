"""
Orderboard — Live views

Each view wraps a SnapshotSource, re-runs its reducer on every delivery and
tells its listeners when the derived value changed. The only state kept is the
last input snapshot and its result, so redelivering an identical snapshot is free.
"""
from typing import Any, Callable, Generic, TypeVar

from orderboard.domain.reconciler import get_active_order_for, get_live_queue
from orderboard.feed.base import Snapshot
from orderboard.feed.sources import SnapshotSource
from orderboard.models.menu import MenuItem, menu_by_category
from orderboard.models.order import Order
from orderboard.services.catalog import menu_from_snapshot

T = TypeVar("T")


class LiveView(Generic[T]):
    def __init__(self, source: SnapshotSource, reducer: Callable[[Snapshot], T]):
        self.source = source
        self._reducer = reducer
        self._input: Snapshot | None = None
        self._value: T = reducer(source.snapshot)
        self._listeners: list[Callable[[T], Any]] = []
        source.listen(self._on_snapshot)

    @property
    def value(self) -> T:
        return self._value

    def subscribe(self, callback: Callable[[T], Any]) -> None:
        self._listeners.append(callback)

    def _on_snapshot(self, snapshot: Snapshot) -> None:
        if snapshot == self._input:
            return
        self._input = snapshot
        value = self._reducer(snapshot)
        if value == self._value:
            return
        self._value = value
        for callback in list(self._listeners):
            callback(value)


class ActiveOrderView(LiveView[Order | None]):
    """Customer side: the caller's single most recent active order."""

    def __init__(self, source: SnapshotSource, user_id: str):
        self.user_id = user_id
        super().__init__(source, lambda snapshot: get_active_order_for(user_id, snapshot))


class LiveQueueView(LiveView[list[Order]]):
    """Staff side: every active order in board order."""

    def __init__(self, source: SnapshotSource):
        super().__init__(source, get_live_queue)


class MenuView(LiveView[list[MenuItem]]):
    def __init__(self, source: SnapshotSource):
        super().__init__(source, menu_from_snapshot)

    @property
    def by_category(self) -> dict[str, list[MenuItem]]:
        return menu_by_category(self.value)

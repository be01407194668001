"""
Orderboard — Change feed interface

A collection is a set of keyed documents. Subscribers receive the *entire*
collection after every mutation (a Snapshot), never a diff; the diff channel
(`subscribe_changes`) exists only to back incremental snapshot sources.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterator, Mapping

from orderboard.core.errors import TransportError


class _ServerTimestamp:
    """Placeholder resolved to the store's clock when a document is written."""

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


@dataclass(frozen=True)
class Document:
    key: str
    fields: dict[str, Any]


@dataclass(frozen=True)
class Snapshot:
    """Complete content of one collection at one point in time."""

    collection: str
    documents: tuple[Document, ...] = ()

    def __iter__(self) -> Iterator[Document]:
        return iter(self.documents)

    def __len__(self) -> int:
        return len(self.documents)

    def get(self, key: str) -> Document | None:
        for doc in self.documents:
            if doc.key == key:
                return doc
        return None

    @classmethod
    def from_mapping(cls, collection: str, docs: Mapping[str, dict[str, Any]]) -> "Snapshot":
        return cls(collection, tuple(Document(key, dict(docs[key])) for key in sorted(docs)))


CHANGE_SET = "set"
CHANGE_DELETE = "delete"


@dataclass(frozen=True)
class Change:
    """One mutation. `fields` is the full post-image for sets, empty for deletes."""

    op: str
    key: str
    fields: dict[str, Any] = field(default_factory=dict)


SnapshotCallback = Callable[["Snapshot | TransportError"], None]
ChangeCallback = Callable[["Change | TransportError"], None]


class Subscription:
    """Handle returned by subscribe(); call unsubscribe() to stop deliveries."""

    def __init__(self, closer: Callable[[], Awaitable[None]]):
        self._closer = closer
        self.active = True

    async def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            await self._closer()


class ChangeFeedClient(ABC):
    """Store + change feed consumed by every client. All mutations are async and
    raise TransportError when the store cannot be reached."""

    @abstractmethod
    async def subscribe(self, collection: str, on_snapshot: SnapshotCallback) -> Subscription:
        """Deliver the full collection now and after every mutation to it."""

    @abstractmethod
    async def subscribe_changes(self, collection: str, on_change: ChangeCallback) -> Subscription:
        """Deliver one Change per mutation, without an initial snapshot."""

    @abstractmethod
    async def get_snapshot(self, collection: str) -> Snapshot:
        ...

    @abstractmethod
    async def create_document(
        self, collection: str, fields: dict[str, Any], key: str | None = None
    ) -> str:
        """Write a whole document (overwriting any document at `key`); returns its key."""

    @abstractmethod
    async def update_fields(self, collection: str, key: str, fields: dict[str, Any]) -> None:
        """Merge `fields` into an existing document; NotFoundError if it does not exist."""

    @abstractmethod
    async def compare_and_update(
        self,
        collection: str,
        key: str,
        expected: Mapping[str, Any],
        fields: dict[str, Any],
    ) -> bool:
        """Merge `fields` only if every `expected` field still holds its value.

        Returns False when the document no longer matches; raises StaleWriteError
        if it changed underneath the write itself.
        """

    @abstractmethod
    async def delete_document(self, collection: str, key: str) -> None:
        ...

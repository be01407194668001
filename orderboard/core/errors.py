"""
Orderboard — Error taxonomy

TransportError      store or feed unreachable; logged, never retried automatically
ValidationError     rejected before any mutation is attempted
StateConflictError  transition requested against a stale status; treated as a no-op
StaleWriteError     compare-and-set lost a race with a concurrent writer
"""


class OrderboardError(Exception):
    """Base class for every error raised by orderboard."""


class TransportError(OrderboardError):
    """The feed subscription or a mutation failed to reach the store."""


class NotFoundError(OrderboardError):
    """The addressed document does not exist in its collection."""

    def __init__(self, collection: str, key: str):
        super().__init__(f"Document '{key}' not found in '{collection}'.")
        self.collection = collection
        self.key = key


class ValidationError(OrderboardError):
    """Checkout or catalog input is unusable (empty cart, missing fields, bad option)."""


class StateConflictError(OrderboardError):
    """The order is no longer in a state from which the requested transition applies."""

    def __init__(self, order_id: str, current: str, target: str):
        super().__init__(f"Order '{order_id}' cannot move from '{current}' to '{target}'.")
        self.order_id = order_id
        self.current = current
        self.target = target


class StaleWriteError(OrderboardError):
    """The document changed between our read and our write; another writer won the race."""

    def __init__(self, collection: str, key: str):
        super().__init__(f"Document '{key}' in '{collection}' changed during write.")
        self.collection = collection
        self.key = key

"""Per-key mutual exclusion for order and cart mutations.

Every command that mutates an Order runs while holding that order's lock,
and every cart mutation (including checkout) holds the customer's cart lock.
The command is processed, and its unit of work committed, inside the lock,
so the handler's re-read of the aggregate always sees the last commit.

Locks are reference counted and dropped once no caller holds or waits on
them.
"""

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from protean.utils.globals import current_domain


class KeyedLocks:
    """A registry of re-entrant locks keyed by an arbitrary string."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._guard = threading.Lock()
        self._locks: dict[str, list] = {}  # key -> [RLock, holders]

    def _acquire_entry(self, key: str) -> threading.RLock:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = [threading.RLock(), 0]
                self._locks[key] = entry
            entry[1] += 1
            return entry[0]

    def _release_entry(self, key: str) -> None:
        with self._guard:
            entry = self._locks[key]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[key]

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        key = str(key)
        lock = self._acquire_entry(key)
        try:
            with lock:
                yield
        finally:
            self._release_entry(key)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


order_locks = KeyedLocks("order")
cart_locks = KeyedLocks("cart")


def order_lock(order_id: str):
    return order_locks.hold(order_id)


def cart_lock(customer_id: str):
    return cart_locks.hold(customer_id)


def process_under_order_lock(order_id: str, command: Any) -> Any:
    """Process ``command`` synchronously while holding the order's lock."""
    with order_lock(order_id):
        return current_domain.process(command, asynchronous=False)


def process_under_cart_lock(customer_id: str, command: Any) -> Any:
    """Process ``command`` synchronously while holding the customer's cart lock."""
    with cart_lock(customer_id):
        return current_domain.process(command, asynchronous=False)

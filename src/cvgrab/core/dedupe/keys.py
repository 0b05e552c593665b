from __future__ import annotations

from collections import OrderedDict
from collections.abc import Hashable


def build_correlation_key(uid: int | str) -> str:
    """Durable record key for an IMAP UID, e.g. ``uid_42``."""
    value = uid.decode() if isinstance(uid, bytes) else str(uid)
    return f"uid_{value.strip()}"


class ProcessedMessageCache:
    """Bounded set of message identifiers handled during this process lifetime.

    Insertion ordered; once ``max_size`` is reached the oldest identifier is
    evicted. Storage stays the source of truth for dedup across restarts.
    """

    def __init__(self, max_size: int = 10_000):
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self.max_size = max_size
        self._items: OrderedDict[Hashable, None] = OrderedDict()

    def __contains__(self, item: Hashable) -> bool:
        return item in self._items

    def __len__(self) -> int:
        return len(self._items)

    def add(self, item: Hashable) -> None:
        if item in self._items:
            self._items.move_to_end(item)
            return
        self._items[item] = None
        while len(self._items) > self.max_size:
            self._items.popitem(last=False)

    def clear(self) -> None:
        self._items.clear()

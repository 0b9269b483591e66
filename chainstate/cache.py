import json
import time
import logging
import threading
from typing import Any, Callable, Dict, Hashable, NamedTuple, Tuple

logger = logging.getLogger(__name__)


class CacheEntry(NamedTuple):
    value: Any
    expires_at: float


def cache_key(operation: str, *args) -> Tuple[str, str]:
    """Build a (operation, serialized args) key."""
    return operation, json.dumps(args, sort_keys=True, default=str)


class ResultCache:
    """
    TTL memoization shared by everything that talks to a node.

    Entries are checked for expiry on lookup and never evicted proactively, so
    the store grows with the number of distinct keys. That is fine for the
    endpoint counts this tool is run against.

    The lock only guards the dict; producers run outside of it. Two threads
    missing the same key at the same time both compute, and the last one to
    finish wins.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self._entries: Dict[Hashable, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: Hashable):
        """Return (hit, value) for key."""
        with self._lock:
            entry = self._entries.get(key)
        if entry is None or entry.expires_at <= self.clock():
            return False, None
        return True, entry.value

    def put(self, key: Hashable, value: Any, ttl_seconds: float):
        entry = CacheEntry(value, self.clock() + ttl_seconds)
        with self._lock:
            self._entries[key] = entry

    def memoize(self, key: Hashable, ttl_seconds: float, producer: Callable[[], Any]):
        """
        Return the cached value for key, calling producer on a miss or expiry.

        Exceptions from producer propagate and nothing is stored.
        """
        hit, value = self.get(key)
        if hit:
            return value
        logger.debug(f"cache miss {key}")
        value = producer()
        self.put(key, value, ttl_seconds)
        return value

    def __len__(self):
        with self._lock:
            return len(self._entries)

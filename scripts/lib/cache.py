"""
Result cache for pipeline stages.

Each stage caches its last result under a canonical key built from its full
input parameters. Writing a result for a new key evicts the entries of any
other key, so a result computed for old parameters is never served for new
ones.
"""

import time
from typing import Any, Callable, Dict, Hashable, Iterable, Optional, Tuple

from .models import normalize_address


def canonical_key(stage: str, identifiers: Iterable[str], *extra: Hashable) -> Tuple[Hashable, ...]:
    """
    Build an order-independent cache key for a stage and its identifiers.

    Examples:
        canonical_key("prices", ["0xB", "0xa", "0xb"]) -> ("prices", ("0xa", "0xb"))
    """
    normalized = tuple(sorted({normalize_address(identifier) for identifier in identifiers}))
    return (stage, normalized) + tuple(extra)


class ResultCache:
    """Keyed cache with a time-to-live and eviction on parameter change."""

    def __init__(self, ttl: Optional[float], clock: Callable[[], float] = time.monotonic):
        """
        Args:
            ttl: Seconds a result stays fresh; None keeps it until evicted
            clock: Monotonic time source
        """
        self.ttl = ttl
        self.clock = clock
        self._entries: Dict[Hashable, Tuple[float, Any]] = {}

    def get(self, key: Hashable) -> Optional[Any]:
        """Return the fresh value for ``key``, or None on miss or expiry."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self.ttl is not None and self.clock() - stored_at >= self.ttl:
            del self._entries[key]
            return None
        return value

    def put(self, key: Hashable, value: Any) -> None:
        """Store ``value`` under ``key`` and evict every other key."""
        self._entries = {key: (self.clock(), value)}

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key) is not None

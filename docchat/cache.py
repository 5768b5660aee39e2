import threading
import time
from typing import Any, Callable, Dict, Hashable, Optional, Tuple


class ResponseCache:
    """In-process key -> (value, expiry) store with TTL eviction.

    Owned by the HTTP layer: routes cache read responses here and drop the
    keys of a user whenever that user's chats change.
    """

    def __init__(self, ttl: int = 300, max_keys: int = 1000, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self.max_keys = max_keys
        self._clock = clock
        self._entries: Dict[Hashable, Tuple[Any, float]] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: Hashable) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            value, expires_at = entry
            if expires_at <= self._clock():
                del self._entries[key]
                self.misses += 1
                return None
            self.hits += 1
            return value

    def set(self, key: Hashable, value: Any, ttl: Optional[int] = None) -> None:
        with self._lock:
            self._evict_expired()
            if key not in self._entries and len(self._entries) >= self.max_keys:
                # Drop the entry closest to expiry
                oldest = min(self._entries, key=lambda k: self._entries[k][1])
                del self._entries[oldest]
            self._entries[key] = (value, self._clock() + (ttl if ttl is not None else self.ttl))

    def delete(self, key: Hashable) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def delete_prefix(self, prefix: str) -> int:
        with self._lock:
            keys = [k for k in self._entries if isinstance(k, str) and k.startswith(prefix)]
            for key in keys:
                del self._entries[key]
            return len(keys)

    def flush(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> dict:
        with self._lock:
            return {"keys": len(self._entries), "hits": self.hits, "misses": self.misses}

    def _evict_expired(self) -> None:
        now = self._clock()
        expired = [k for k, (_, expires_at) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]

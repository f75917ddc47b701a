from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Optional

from cachetools import TTLCache

DEFAULT_CACHE_TTL = 300
DEFAULT_CACHE_MAXSIZE = 10000


@dataclass(frozen=True)
class CachedAnswer:
    """Brief: Upstream answer kept at the edge together with its provenance."""

    payload: bytes
    upstream: str
    latency_ms: float


class ResponseCache:
    """
    Thread-safe edge cache of DoH answers keyed by inbound request URL.

    Inputs (constructor):
        ttl: seconds an answer stays fresh (0 disables caching)
        maxsize: maximum number of cached answers

    Outputs:
        ResponseCache instance

    Notes:
        Backed by cachetools.TTLCache, which is not thread-safe on its own;
        every access goes through a lock.

    Example use:
        >>> cache = ResponseCache(ttl=60)
        >>> cache.put("https://proxy/dns-query?dns=AAAB", CachedAnswer(b"x", "u", 1.0))
        >>> cache.get("https://proxy/dns-query?dns=AAAB").payload
        b'x'
    """

    def __init__(
        self, ttl: int = DEFAULT_CACHE_TTL, maxsize: int = DEFAULT_CACHE_MAXSIZE
    ) -> None:
        self.ttl = max(0, int(ttl))
        self.maxsize = max(1, int(maxsize))
        self._lock = threading.Lock()
        self._store: Optional[TTLCache] = (
            TTLCache(maxsize=self.maxsize, ttl=self.ttl) if self.ttl > 0 else None
        )

    @property
    def enabled(self) -> bool:
        return self._store is not None

    def get(self, key: str) -> Optional[CachedAnswer]:
        if self._store is None:
            return None
        with self._lock:
            return self._store.get(key)

    def put(self, key: str, answer: CachedAnswer) -> None:
        if self._store is None:
            return
        with self._lock:
            self._store[key] = answer

    def clear(self) -> None:
        if self._store is None:
            return
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        if self._store is None:
            return 0
        with self._lock:
            return len(self._store)

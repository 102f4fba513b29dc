import os
import time

DEFAULT_TTL_SECONDS = int(os.environ.get("MOVIEVERSE_CACHE_TTL_SECONDS", 600))


class ResponseCache:
    """
    In-memory TTL map for third-party API responses.

    Built once per process and handed to the clients that need it. The clock
    is injectable so expiry can be driven explicitly.

    Args:
        ttl_seconds (float): Default lifetime of an entry.
        clock (Callable[[], float]): Monotonic time source in seconds.
    """

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS, clock=time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._entries = {}

    def __len__(self):
        return len(self._entries)

    def get(self, key: str):
        """
        Return a cached value, dropping it when expired.

        Args:
            key (str): Cache key.

        Returns:
            Any | None: Cached value or None.
        """
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self.clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value, ttl_seconds: float | None = None):
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        self._entries[key] = (value, self.clock() + ttl)

    def clear(self):
        self._entries.clear()

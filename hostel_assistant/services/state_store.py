"""In-memory keyed state with idle TTL, lazy expiry and a background sweeper.

Both the conversation store and the rate limiter keep their per-sender entries
here. An entry is expired once it has been idle for ``ttl_seconds``; the same
``is_expired`` predicate is used when an entry is read and when the sweeper
walks the map, so a read never resurrects something the sweep would drop.
"""

import asyncio
import threading
import time
from typing import Callable, Dict, Generic, List, Optional, Protocol, TypeVar

from hostel_assistant.logging_config import get_logger

logger = get_logger("state_store")


class TimedEntry(Protocol):
    last_active_at: float


T = TypeVar("T", bound=TimedEntry)

Clock = Callable[[], float]


def is_expired(entry: TimedEntry, now: float, ttl_seconds: float) -> bool:
    return now - entry.last_active_at >= ttl_seconds


class TTLStore(Generic[T]):
    def __init__(
        self,
        ttl_seconds: float,
        sweep_interval_seconds: float,
        *,
        name: str = "state",
        clock: Clock = time.time,
    ):
        self.ttl_seconds = ttl_seconds
        self.sweep_interval_seconds = max(sweep_interval_seconds, 0.01)
        self.name = name
        self.clock = clock
        self._entries: Dict[str, T] = {}
        self._lock = threading.Lock()
        self._sweep_task: Optional[asyncio.Task] = None

    def is_expired(self, entry: T, now: Optional[float] = None) -> bool:
        return is_expired(entry, self.clock() if now is None else now, self.ttl_seconds)

    def get(self, key: str, *, touch: bool = False) -> Optional[T]:
        """Return the live entry for key, dropping it if it has already expired."""
        now = self.clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self.is_expired(entry, now):
                del self._entries[key]
                return None
            if touch:
                entry.last_active_at = now
            return entry

    def get_or_create(self, key: str, factory: Callable[[float], T]) -> T:
        """Return the live entry for key (touched), or a fresh one built by factory(now)."""
        now = self.clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and not self.is_expired(entry, now):
                entry.last_active_at = now
                return entry
            entry = factory(now)
            self._entries[key] = entry
            return entry

    def pop(self, key: str) -> Optional[T]:
        with self._lock:
            return self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._entries)

    def sweep(self, now: Optional[float] = None) -> int:
        """Remove expired entries one key at a time. Returns how many were removed."""
        now = self.clock() if now is None else now
        removed = 0
        for key in self.keys():
            with self._lock:
                entry = self._entries.get(key)
                if entry is not None and self.is_expired(entry, now):
                    del self._entries[key]
                    removed += 1
        return removed

    async def _sweep_loop(self) -> None:
        while True:
            try:
                await asyncio.sleep(self.sweep_interval_seconds)
                removed = self.sweep()
                if removed:
                    logger.info(
                        "Swept expired entries",
                        extra={"context": {"store": self.name, "removed": removed, "remaining": self.size()}},
                    )
            except asyncio.CancelledError:
                break
            except Exception as exc:
                logger.error(
                    "Sweep loop failed",
                    extra={"context": {"store": self.name, "error": str(exc)}},
                )

    def start(self) -> None:
        """Start the periodic sweep on the running event loop."""
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.get_running_loop().create_task(self._sweep_loop())
            logger.info("Sweeper started", extra={"context": {"store": self.name}})

    async def stop(self) -> None:
        if self._sweep_task is None:
            return
        self._sweep_task.cancel()
        try:
            await self._sweep_task
        except asyncio.CancelledError:
            pass
        self._sweep_task = None

    @property
    def running(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

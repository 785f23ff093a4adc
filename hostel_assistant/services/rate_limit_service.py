import math
import re
import threading
import time
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from hostel_assistant.logging_config import get_logger
from hostel_assistant.services.state_store import Clock, TTLStore

logger = get_logger("rate_limit_service")

MINUTE_SECONDS = 60.0
HOUR_SECONDS = 3600.0

HOURLY_LIMIT_REASON = "hourly limit exceeded"
MINUTE_LIMIT_REASON = "per-minute limit exceeded"

_NON_DIGITS = re.compile(r"\D")


def normalize_phone(phone: str) -> str:
    return _NON_DIGITS.sub("", phone or "")


@dataclass
class RateLimitResult:
    allowed: bool
    retry_after: Optional[int] = None
    reason: Optional[str] = None


@dataclass
class WindowEntry:
    timestamps: List[float] = field(default_factory=list)
    last_active_at: float = 0.0
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)


class RateLimiter:
    """Sliding-window admission control per sender: hourly cap first, then per-minute."""

    def __init__(
        self,
        per_minute: int = 20,
        per_hour: int = 100,
        exempt_phones: Iterable[str] = (),
        sweep_interval_seconds: float = 300.0,
        clock: Clock = time.time,
    ):
        self.per_minute = per_minute
        self.per_hour = per_hour
        self.clock = clock
        self._exempt: frozenset[str] = frozenset()
        self._windows: TTLStore[WindowEntry] = TTLStore(
            HOUR_SECONDS,
            sweep_interval_seconds,
            name="rate_windows",
            clock=clock,
        )
        self.refresh_exemptions(exempt_phones)

    @property
    def exempt_phones(self) -> frozenset[str]:
        return self._exempt

    def refresh_exemptions(self, phones: Iterable[str]) -> None:
        """Swap in a new exemption set; in-flight checks keep the snapshot they already read."""
        normalized = frozenset(p for p in (normalize_phone(phone) for phone in phones) if p)
        self._exempt = normalized
        logger.info("Rate limit exemptions reloaded", extra={"context": {"count": len(normalized)}})

    def check(self, phone: str) -> RateLimitResult:
        normalized = normalize_phone(phone)

        if normalized in self._exempt:
            return RateLimitResult(allowed=True)

        entry = self._windows.get_or_create(normalized, lambda now: WindowEntry(last_active_at=now))

        with entry.lock:
            now = self.clock()
            entry.timestamps = [t for t in entry.timestamps if now - t < HOUR_SECONDS]

            if len(entry.timestamps) >= self.per_hour:
                oldest = entry.timestamps[0]
                return RateLimitResult(
                    allowed=False,
                    retry_after=math.ceil(oldest + HOUR_SECONDS - now),
                    reason=HOURLY_LIMIT_REASON,
                )

            recent_minute = [t for t in entry.timestamps if now - t < MINUTE_SECONDS]
            if len(recent_minute) >= self.per_minute:
                oldest = recent_minute[0]
                return RateLimitResult(
                    allowed=False,
                    retry_after=math.ceil(oldest + MINUTE_SECONDS - now),
                    reason=MINUTE_LIMIT_REASON,
                )

            entry.timestamps.append(now)
            return RateLimitResult(allowed=True)

    def size(self) -> int:
        return self._windows.size()

    def sweep(self, now: Optional[float] = None) -> int:
        return self._windows.sweep(now)

    def start(self) -> None:
        self._windows.start()

    async def stop(self) -> None:
        await self._windows.stop()
        self._windows.clear()

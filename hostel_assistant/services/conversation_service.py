import threading
import time
from dataclasses import dataclass, field
from typing import Any, List, Optional

from hostel_assistant.logging_config import get_logger
from hostel_assistant.services.language_service import DEFAULT_LANGUAGE, Language, detect_language
from hostel_assistant.services.state_store import Clock, TTLStore

logger = get_logger("conversation_service")

DEFAULT_TTL_SECONDS = 3600.0
DEFAULT_MAX_MESSAGES = 20
DEFAULT_SWEEP_INTERVAL_SECONDS = 300.0

ROLES = ("user", "assistant")


class InvalidRoleError(ValueError):
    def __init__(self, role: str):
        self.role = role
        super().__init__(f"Invalid message role: {role!r} (expected one of {', '.join(ROLES)})")


@dataclass
class ChatMessage:
    role: str
    content: str
    timestamp: int


@dataclass
class ConversationState:
    phone: str
    push_name: str = ""
    messages: List[ChatMessage] = field(default_factory=list)
    language: Language = DEFAULT_LANGUAGE
    booking_state: Optional[Any] = None
    unknown_count: int = 0
    created_at: float = 0.0
    last_active_at: float = 0.0
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def recent_lines(self) -> List[str]:
        return [f"{m.role}: {m.content}" for m in self.messages]


class ConversationStore:
    """Per-sender conversation memory, bounded in length and expiring after idle TTL."""

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_messages: int = DEFAULT_MAX_MESSAGES,
        sweep_interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
        clock: Clock = time.time,
    ):
        self.max_messages = max_messages
        self._store: TTLStore[ConversationState] = TTLStore(
            ttl_seconds,
            sweep_interval_seconds,
            name="conversations",
            clock=clock,
        )

    @property
    def ttl_seconds(self) -> float:
        return self._store.ttl_seconds

    def get_or_create(self, phone: str, push_name: str = "") -> ConversationState:
        """Find the live conversation for phone or start a fresh one (expired state is never merged)."""

        def _new(now: float) -> ConversationState:
            logger.debug(f"Starting conversation for {phone}")
            return ConversationState(phone=phone, push_name=push_name, created_at=now, last_active_at=now)

        convo = self._store.get_or_create(phone, _new)
        if push_name and convo.push_name != push_name:
            convo.push_name = push_name
        return convo

    def get(self, phone: str) -> Optional[ConversationState]:
        return self._store.get(phone)

    def add_message(self, phone: str, role: str, content: str) -> None:
        if role not in ROLES:
            raise InvalidRoleError(role)

        convo = self._store.get(phone)
        if convo is None:
            return

        now = self._store.clock()
        with convo.lock:
            convo.messages.append(ChatMessage(role=role, content=content, timestamp=int(now)))
            if len(convo.messages) > self.max_messages:
                del convo.messages[: len(convo.messages) - self.max_messages]

            if role == "user":
                convo.language = detect_language(content)

            convo.last_active_at = now

    def get_messages(self, phone: str) -> List[ChatMessage]:
        convo = self._store.get(phone)
        if convo is None:
            return []
        with convo.lock:
            return list(convo.messages)

    def update_booking_state(self, phone: str, booking_state: Optional[Any]) -> None:
        convo = self._store.get(phone)
        if convo is not None:
            with convo.lock:
                convo.booking_state = booking_state

    def increment_unknown(self, phone: str) -> int:
        convo = self._store.get(phone)
        if convo is None:
            return 0
        with convo.lock:
            convo.unknown_count += 1
            return convo.unknown_count

    def reset_unknown(self, phone: str) -> None:
        convo = self._store.get(phone)
        if convo is not None:
            with convo.lock:
                convo.unknown_count = 0

    def clear(self, phone: str) -> None:
        self._store.pop(phone)

    def clear_all(self) -> None:
        self._store.clear()

    def is_expired(self, convo: ConversationState, now: Optional[float] = None) -> bool:
        return self._store.is_expired(convo, now)

    def sweep(self, now: Optional[float] = None) -> int:
        return self._store.sweep(now)

    def size(self) -> int:
        return self._store.size()

    def start(self) -> None:
        self._store.start()

    async def stop(self) -> None:
        await self._store.stop()

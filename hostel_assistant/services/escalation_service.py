import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Dict, List, Mapping, Optional, Protocol, Union

from hostel_assistant.logging_config import get_logger
from hostel_assistant.services.language_service import DEFAULT_LANGUAGE, Language
from hostel_assistant.services.result import Result
from hostel_assistant.services.templates import get_template

logger = get_logger("escalation_service")

UNKNOWN_STREAK_THRESHOLD = 3
GROUP_BOOKING_MIN_GUESTS = 5
RECENT_MESSAGES_IN_NOTICE = 3


class EscalationReason(str, Enum):
    HUMAN_REQUEST = "human_request"
    COMPLAINT = "complaint"
    UNKNOWN_REPEATED = "unknown_repeated"
    GROUP_BOOKING = "group_booking"
    ERROR = "error"


EXPLICIT_REASONS = {EscalationReason.HUMAN_REQUEST, EscalationReason.COMPLAINT}

REASON_LABELS: Dict[EscalationReason, str] = {
    EscalationReason.HUMAN_REQUEST: "Guest requested human assistance",
    EscalationReason.COMPLAINT: "Guest complaint",
    EscalationReason.UNKNOWN_REPEATED: "Bot unable to understand (3+ attempts)",
    EscalationReason.GROUP_BOOKING: "Group booking request (5+ guests)",
    EscalationReason.ERROR: "System error during conversation",
}


class Notifier(Protocol):
    def send_message(self, phone: str, text: str) -> Awaitable[None]: ...


@dataclass
class EscalationContext:
    reason: EscalationReason
    phone: str
    push_name: str
    original_message: str
    recent_messages: List[str] = field(default_factory=list)


def should_escalate(
    reason: Optional[EscalationReason],
    unknown_count: int,
    guest_count: Optional[int] = None,
) -> Optional[EscalationReason]:
    """Decide escalation in fixed priority order: explicit signal, unknown streak, group size."""
    if reason in EXPLICIT_REASONS:
        return reason
    if unknown_count >= UNKNOWN_STREAK_THRESHOLD:
        return EscalationReason.UNKNOWN_REPEATED
    if guest_count is not None and guest_count >= GROUP_BOOKING_MIN_GUESTS:
        return EscalationReason.GROUP_BOOKING
    return None


def extract_guest_count(entities: Mapping[str, str]) -> Optional[int]:
    raw = entities.get("guest_count") if entities else None
    if raw is None:
        return None
    match = re.search(r"\d+", str(raw))
    return int(match.group()) if match else None


def format_escalation_message(context: EscalationContext) -> str:
    label = REASON_LABELS.get(context.reason, "Unknown reason")
    recent = "\n> ".join(context.recent_messages[-RECENT_MESSAGES_IN_NOTICE:])

    return "\n".join(
        [
            f"*[ESCALATION]* {label}",
            "",
            f"*Guest:* {context.push_name or 'Unknown'} (+{context.phone})",
            f"*Reason:* {label}",
            f"*Last message:* {context.original_message}",
            "",
            "*Recent conversation:*",
            f"> {recent}",
        ]
    )


async def notify_staff(notifier: Optional[Notifier], staff_phone: str, context: EscalationContext) -> Result[bool]:
    """Forward the escalation to staff. Best-effort: failures are logged, never raised."""
    if notifier is None:
        logger.error("Escalation notifier not configured")
        return Result.failure("Notifier not configured", "no_notifier")

    try:
        await notifier.send_message(staff_phone, format_escalation_message(context))
    except Exception as e:
        logger.error(
            "Failed to forward escalation to staff",
            extra={"context": {"reason": context.reason.value, "phone": context.phone, "error": str(e)}},
        )
        return Result.from_exception(e, "notify_error")

    logger.info(
        "Escalation forwarded to staff",
        extra={"context": {"reason": context.reason.value, "phone": context.phone}},
    )
    return Result.success(True)


async def escalate_to_staff(
    context: EscalationContext,
    notifier: Optional[Notifier],
    staff_phone: str,
    language: Union[Language, str] = DEFAULT_LANGUAGE,
) -> str:
    """Notify staff once and return the guest-facing acknowledgement regardless of delivery."""
    await notify_staff(notifier, staff_phone, context)
    return get_template("escalating", language)

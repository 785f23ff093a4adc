"""Per-message routing: rate check, conversation lookup, classification,
escalation decision, reply composition and state update.

Every turn ends in exactly one of: a normal reply, an escalation
acknowledgement, or a rate-limit notice. Unexpected failures are caught here,
logged, and answered with the generic error template.
"""

import asyncio
import time
import weakref
from typing import Any, Awaitable, Callable, List, Optional, Protocol, Sequence, Tuple

from hostel_assistant.logging_config import bind_logger, get_logger
from hostel_assistant.schemas.message import ActivityEvent, InboundMessage, RouteResult
from hostel_assistant.services.ai_service import SYSTEM_PROMPT, AIService, AIUnavailableError
from hostel_assistant.services.conversation_service import ChatMessage, ConversationState, ConversationStore
from hostel_assistant.services.escalation_service import (
    EscalationContext,
    EscalationReason,
    Notifier,
    escalate_to_staff,
    extract_guest_count,
    notify_staff,
    should_escalate,
)
from hostel_assistant.services.intent_service import IntentCategory, IntentClassifier, IntentResult
from hostel_assistant.services.knowledge_service import KnowledgeBase
from hostel_assistant.services.language_service import Language, detect_language
from hostel_assistant.services.rate_limit_service import RateLimiter, normalize_phone
from hostel_assistant.services.templates import get_template

logger = get_logger("message_service")

TEMPLATE_CATEGORIES = {IntentCategory.GREETING, IntentCategory.THANKS}

KNOWLEDGE_CATEGORIES = {
    IntentCategory.WIFI,
    IntentCategory.DIRECTIONS,
    IntentCategory.CHECKIN_INFO,
    IntentCategory.CHECKOUT_INFO,
    IntentCategory.PRICING,
    IntentCategory.FACILITIES,
    IntentCategory.RULES,
    IntentCategory.AVAILABILITY,
    IntentCategory.BOOKING,
}

CATEGORY_ESCALATIONS = {
    IntentCategory.COMPLAINT: EscalationReason.COMPLAINT,
    IntentCategory.CONTACT_STAFF: EscalationReason.HUMAN_REQUEST,
}

WORKFLOW_FINISHED_STAGES = {"done", "cancelled"}

ActivitySink = Callable[[ActivityEvent], Any]


class WorkflowHandler(Protocol):
    """Booking (or other multi-step) flow owned outside the routing core."""

    def create_state(self) -> Any: ...

    def handle(self, state: Any, text: str, language: Language) -> Awaitable[Tuple[str, Any]]: ...


def workflow_stage(state: Any) -> Optional[str]:
    if state is None:
        return None
    if isinstance(state, dict):
        stage = state.get("stage")
    else:
        stage = getattr(state, "stage", None)
    return getattr(stage, "value", stage)


def is_workflow_active(state: Any) -> bool:
    stage = workflow_stage(state)
    return stage is not None and stage not in WORKFLOW_FINISHED_STAGES


class MessageRouter:
    def __init__(
        self,
        conversations: ConversationStore,
        rate_limiter: RateLimiter,
        classifier: IntentClassifier,
        notifier: Optional[Notifier],
        staff_phone: str,
        knowledge: Optional[KnowledgeBase] = None,
        ai: Optional[AIService] = None,
        workflow: Optional[WorkflowHandler] = None,
        activity_sink: Optional[ActivitySink] = None,
        system_prompt: str = SYSTEM_PROMPT,
    ):
        self.conversations = conversations
        self.rate_limiter = rate_limiter
        self.classifier = classifier
        self.notifier = notifier
        self.staff_phone = staff_phone
        self.knowledge = knowledge
        self.ai = ai
        self.workflow = workflow
        self.activity_sink = activity_sink
        self.system_prompt = system_prompt
        self._sender_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, phone: str) -> asyncio.Lock:
        lock = self._sender_locks.get(phone)
        if lock is None:
            lock = asyncio.Lock()
            self._sender_locks[phone] = lock
        return lock

    async def handle_message(self, msg: InboundMessage) -> RouteResult:
        text = (msg.text or "").strip()
        if msg.is_group or not text:
            return RouteResult(source="skipped")

        # One key per sender for the lock, the conversation and the rate window
        phone = normalize_phone(msg.phone) or msg.phone
        msg = msg.model_copy(update={"phone": phone})
        started = time.monotonic()
        log = bind_logger(logger, phone=phone)
        log.info(f"Inbound ({msg.push_name}): {text[:100]}")

        # Turns for one sender run strictly in arrival order
        lock = self._lock_for(phone)
        async with lock:
            language = detect_language(text)
            try:
                result = await self._route(msg, text, language)
            except Exception as exc:
                log.exception("Error processing message", context={"error": str(exc)})
                result = await self._recover(msg, text, language)

        self._emit_activity(phone, result, language, started)
        return result

    async def _route(self, msg: InboundMessage, text: str, language: Language) -> RouteResult:
        phone = msg.phone

        rate = self.rate_limiter.check(phone)
        if not rate.allowed:
            logger.info(
                "Rate limited",
                extra={"context": {"phone": phone, "reason": rate.reason, "retry_after": rate.retry_after}},
            )
            return RouteResult(
                reply=get_template("rate_limited", language),
                source="rate_limit",
                rate_limited=True,
                retry_after=rate.retry_after,
            )

        convo = self.conversations.get_or_create(phone, msg.push_name)
        history = self.conversations.get_messages(phone)

        if self.workflow is not None and is_workflow_active(convo.booking_state):
            return await self._continue_workflow(convo, text, language)

        intent = await self.classifier.classify(text, history)
        logger.info(
            f"Intent: {intent.category.value} ({intent.confidence:.2f}, {intent.source.value})",
            extra={"context": {"phone": phone}},
        )

        unknown_count = convo.unknown_count
        if intent.category == IntentCategory.UNKNOWN:
            unknown_count = self.conversations.increment_unknown(phone)

        reason = should_escalate(
            CATEGORY_ESCALATIONS.get(intent.category),
            unknown_count,
            extract_guest_count(intent.entities),
        )
        if reason is not None:
            return await self._escalate(msg, convo, text, intent, reason, language)

        reply = await self._compose_reply(convo, intent, text, history, language)
        self.conversations.add_message(phone, "user", text)
        self.conversations.add_message(phone, "assistant", reply)
        if intent.category != IntentCategory.UNKNOWN:
            self.conversations.reset_unknown(phone)

        return RouteResult(
            reply=reply,
            intent=intent.category.value,
            confidence=intent.confidence,
            source=intent.source.value,
        )

    async def _continue_workflow(self, convo: ConversationState, text: str, language: Language) -> RouteResult:
        reply, new_state = await self.workflow.handle(convo.booking_state, text, language)
        self.conversations.update_booking_state(convo.phone, new_state)
        self.conversations.add_message(convo.phone, "user", text)
        self.conversations.add_message(convo.phone, "assistant", reply)
        return RouteResult(reply=reply, intent=IntentCategory.BOOKING.value, confidence=1.0, source="workflow")

    async def _escalate(
        self,
        msg: InboundMessage,
        convo: ConversationState,
        text: str,
        intent: IntentResult,
        reason: EscalationReason,
        language: Language,
    ) -> RouteResult:
        context = EscalationContext(
            reason=reason,
            phone=msg.phone,
            push_name=msg.push_name or convo.push_name,
            original_message=text,
            recent_messages=convo.recent_lines() + [f"user: {text}"],
        )
        reply = await escalate_to_staff(context, self.notifier, self.staff_phone, language)

        self.conversations.add_message(msg.phone, "user", text)
        self.conversations.reset_unknown(msg.phone)

        return RouteResult(
            reply=reply,
            intent=intent.category.value,
            confidence=intent.confidence,
            source=intent.source.value,
            escalated=True,
            escalation_reason=reason.value,
        )

    async def _compose_reply(
        self,
        convo: ConversationState,
        intent: IntentResult,
        text: str,
        history: List[ChatMessage],
        language: Language,
    ) -> str:
        category = intent.category

        if category in TEMPLATE_CATEGORIES:
            return get_template(category.value, language)

        if category == IntentCategory.BOOKING and self.workflow is not None:
            reply, new_state = await self.workflow.handle(self.workflow.create_state(), text, language)
            self.conversations.update_booking_state(convo.phone, new_state)
            return reply

        if category in KNOWLEDGE_CATEGORIES and self.knowledge is not None:
            answer = self.knowledge.get_answer(category.value, language)
            if answer:
                return answer

        return await self._ai_reply(history, text, language)

    async def _ai_reply(self, history: Sequence[ChatMessage], text: str, language: Language) -> str:
        if self.ai is None or not self.ai.is_available():
            return get_template("unavailable", language)
        try:
            return await self.ai.chat(self.system_prompt, history, text)
        except AIUnavailableError:
            return get_template("unavailable", language)

    async def _recover(self, msg: InboundMessage, text: str, language: Language) -> RouteResult:
        """Reset the sender's state after an unexpected failure and tell staff, best-effort."""
        self.conversations.clear(msg.phone)
        context = EscalationContext(
            reason=EscalationReason.ERROR,
            phone=msg.phone,
            push_name=msg.push_name,
            original_message=text,
            recent_messages=[f"user: {text}"],
        )
        await notify_staff(self.notifier, self.staff_phone, context)
        return RouteResult(
            reply=get_template("error", language),
            source="error",
            escalation_reason=EscalationReason.ERROR.value,
        )

    def _emit_activity(self, phone: str, result: RouteResult, language: Language, started: float) -> None:
        event = ActivityEvent(
            phone=phone,
            intent=result.intent,
            confidence=result.confidence,
            source=result.source,
            escalation_reason=result.escalation_reason,
            rate_limited=result.rate_limited,
            language=language.value,
            elapsed_ms=round((time.monotonic() - started) * 1000, 2),
        )
        logger.info("Activity", extra={"context": event.model_dump()})
        if self.activity_sink is None:
            return
        try:
            self.activity_sink(event)
        except Exception as exc:
            logger.warning(f"Activity sink failed: {exc}")

import time
from typing import Iterable, Optional

from hostel_assistant.config import Settings, get_settings
from hostel_assistant.logging_config import get_logger, setup_logging
from hostel_assistant.schemas.message import InboundMessage, RouteResult
from hostel_assistant.services.ai_service import AIService, build_llm_provider
from hostel_assistant.services.conversation_service import ConversationStore
from hostel_assistant.services.escalation_service import Notifier
from hostel_assistant.services.intent_service import IntentClassifier
from hostel_assistant.services.knowledge_service import KnowledgeBase, StaticKnowledge
from hostel_assistant.services.llm import LLMProvider
from hostel_assistant.services.message_service import ActivitySink, MessageRouter, WorkflowHandler
from hostel_assistant.services.rate_limit_service import RateLimiter
from hostel_assistant.services.state_store import Clock

logger = get_logger("assistant")


class Assistant:
    """Process-level wiring: builds the stores and services and owns their lifecycle."""

    def __init__(
        self,
        notifier: Optional[Notifier],
        settings: Optional[Settings] = None,
        provider: Optional[LLMProvider] = None,
        knowledge: Optional[KnowledgeBase] = None,
        workflow: Optional[WorkflowHandler] = None,
        activity_sink: Optional[ActivitySink] = None,
        clock: Clock = time.time,
    ):
        self.settings = settings or get_settings()
        s = self.settings
        if s.configure_logging:
            setup_logging(s.log_level)

        self.conversations = ConversationStore(
            ttl_seconds=s.conversation_ttl_seconds,
            max_messages=s.max_messages,
            sweep_interval_seconds=s.sweep_interval_seconds,
            clock=clock,
        )
        self.rate_limiter = RateLimiter(
            per_minute=s.rate_limit_per_minute,
            per_hour=s.rate_limit_per_hour,
            exempt_phones=s.staff_phones,
            sweep_interval_seconds=s.sweep_interval_seconds,
            clock=clock,
        )

        provider = provider if provider is not None else build_llm_provider(s)
        self.classifier = IntentClassifier(
            provider,
            model=s.classify_model,
            max_tokens=s.classify_max_tokens,
            timeout_seconds=s.intent_timeout_seconds,
        )
        self.ai = AIService(
            provider,
            model=s.chat_model,
            max_tokens=s.chat_max_tokens,
            timeout_seconds=s.chat_timeout_seconds,
        )
        self.knowledge = knowledge if knowledge is not None else StaticKnowledge.from_yaml(s.knowledge_path)

        self.router = MessageRouter(
            conversations=self.conversations,
            rate_limiter=self.rate_limiter,
            classifier=self.classifier,
            notifier=notifier,
            staff_phone=s.escalation_phone,
            knowledge=self.knowledge,
            ai=self.ai,
            workflow=workflow,
            activity_sink=activity_sink,
        )

    async def start(self) -> None:
        self.conversations.start()
        self.rate_limiter.start()
        logger.info("Assistant ready", extra={"context": {"llm": self.ai.is_available()}})

    async def stop(self) -> None:
        await self.rate_limiter.stop()
        await self.conversations.stop()
        self.conversations.clear_all()
        logger.info("Assistant shutdown complete")

    def reload_staff_phones(self, phones: Iterable[str]) -> None:
        self.rate_limiter.refresh_exemptions(phones)

    async def handle_message(self, msg: InboundMessage) -> RouteResult:
        return await self.router.handle_message(msg)

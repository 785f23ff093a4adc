import json
from unittest.mock import AsyncMock, Mock

import pytest

from hostel_assistant.config import DEFAULT_KNOWLEDGE_PATH
from hostel_assistant.services.ai_service import AIService
from hostel_assistant.services.conversation_service import ConversationStore
from hostel_assistant.services.intent_service import IntentClassifier
from hostel_assistant.services.knowledge_service import StaticKnowledge
from hostel_assistant.services.llm import LLMProvider, LLMResponse
from hostel_assistant.services.message_service import MessageRouter
from hostel_assistant.services.rate_limit_service import RateLimiter

STAFF_PHONE = "60127088789"


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_provider(classification: dict | str | None = None, chat_reply: str = "AI reply") -> Mock:
    """LLM provider double: JSON-mode calls get the classification, other calls the chat reply."""
    provider = Mock(spec=LLMProvider)
    content = classification if isinstance(classification, str) else json.dumps(classification or {})

    def _generate(messages, **kwargs):
        if kwargs.get("response_format"):
            return LLMResponse(content=content, model="test-model")
        return LLMResponse(content=chat_reply, model="test-model")

    provider.generate.side_effect = _generate
    return provider


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def notifier():
    notifier = Mock()
    notifier.send_message = AsyncMock(return_value=None)
    return notifier


@pytest.fixture
def knowledge():
    return StaticKnowledge.from_yaml(DEFAULT_KNOWLEDGE_PATH)


@pytest.fixture
def build_router(clock, notifier, knowledge):
    def _build(provider=None, per_minute=20, per_hour=100, exempt=(), **kwargs):
        conversations = ConversationStore(clock=clock)
        rate_limiter = RateLimiter(
            per_minute=per_minute,
            per_hour=per_hour,
            exempt_phones=exempt,
            clock=clock,
        )
        return MessageRouter(
            conversations=conversations,
            rate_limiter=rate_limiter,
            classifier=IntentClassifier(provider, model="test-model"),
            notifier=notifier,
            staff_phone=STAFF_PHONE,
            knowledge=kwargs.pop("knowledge", knowledge),
            ai=AIService(provider, model="test-model"),
            **kwargs,
        )

    return _build


@pytest.fixture
def provider_factory():
    return make_provider

from hostel_assistant.services.conversation_service import (
    ChatMessage,
    ConversationState,
    ConversationStore,
)
from hostel_assistant.services.escalation_service import (
    EscalationContext,
    EscalationReason,
    escalate_to_staff,
    should_escalate,
)
from hostel_assistant.services.intent_service import (
    IntentCategory,
    IntentClassifier,
    IntentResult,
    IntentSource,
    regex_classify,
)
from hostel_assistant.services.language_service import Language, detect_language
from hostel_assistant.services.message_service import MessageRouter
from hostel_assistant.services.rate_limit_service import RateLimiter, RateLimitResult
from hostel_assistant.services.result import Result

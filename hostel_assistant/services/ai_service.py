import asyncio
import time
from typing import List, Optional, Sequence

from hostel_assistant.config import Settings
from hostel_assistant.logging_config import get_logger
from hostel_assistant.services.conversation_service import ChatMessage
from hostel_assistant.services.llm import LLMError, LLMProvider, OpenAICompatibleProvider

logger = get_logger("ai_service")

CHAT_HISTORY_TURNS = 5
CHAT_TEMPERATURE = 0.7
EMPTY_REPLY = "Sorry, I could not generate a response."

SYSTEM_PROMPT = (
    "You are the Pelangi Capsule Hostel AI assistant in Johor Bahru, Malaysia. "
    "You help guests with check-in info, pricing, availability, bookings, and general hostel questions. "
    "Be warm, concise, and helpful. Reply in the same language as the guest (English, Malay, or Chinese). "
    "Keep responses under 300 characters when possible. If unsure, suggest contacting staff."
)


class AIUnavailableError(Exception):
    """Raised when a reply cannot be composed by the LLM."""


def build_llm_provider(settings: Settings) -> Optional[LLMProvider]:
    """Create the provider from settings, or None when no API key is configured."""
    if not settings.llm_api_key:
        logger.warning("LLM api key not set; LLM features disabled")
        return None
    return OpenAICompatibleProvider(
        api_key=settings.llm_api_key,
        default_model=settings.chat_model,
        base_url=settings.llm_base_url,
    )


def history_to_messages(history: Sequence[ChatMessage], limit: int) -> List[dict]:
    if limit <= 0:
        return []
    return [{"role": m.role, "content": m.content} for m in list(history)[-limit:]]


class AIService:
    """Free-form reply composition for turns the static knowledge cannot answer."""

    def __init__(
        self,
        provider: Optional[LLMProvider],
        model: Optional[str] = None,
        max_tokens: int = 500,
        timeout_seconds: float = 20.0,
    ):
        self.provider = provider
        self.model = model
        self.max_tokens = max_tokens
        self.timeout_seconds = timeout_seconds

    def is_available(self) -> bool:
        return self.provider is not None

    async def chat(self, system_prompt: str, history: Sequence[ChatMessage], user_message: str) -> str:
        if self.provider is None:
            raise AIUnavailableError("AI not available")

        messages = [{"role": "system", "content": system_prompt}]
        messages.extend(history_to_messages(history, CHAT_HISTORY_TURNS))
        messages.append({"role": "user", "content": user_message})

        llm_start = time.monotonic()
        try:
            response = await asyncio.to_thread(
                self.provider.generate,
                messages,
                model=self.model,
                temperature=CHAT_TEMPERATURE,
                max_tokens=self.max_tokens,
                timeout_seconds=self.timeout_seconds,
            )
        except LLMError as exc:
            logger.error(f"Chat error: {exc}")
            raise AIUnavailableError("AI temporarily unavailable") from exc
        except Exception as exc:
            logger.error(f"Unexpected chat error: {exc}")
            raise AIUnavailableError("AI temporarily unavailable") from exc
        finally:
            logger.info(
                "Timing",
                extra={
                    "context": {
                        "stage": "chat_llm_ms",
                        "elapsed_ms": round((time.monotonic() - llm_start) * 1000, 2),
                        "model_name": self.model,
                    }
                },
            )

        return (response.content or "").strip() or EMPTY_REPLY

from hostel_assistant.services.llm.base import LLMError, LLMProvider, LLMResponse
from hostel_assistant.services.llm.openai_provider import OpenAICompatibleProvider

__all__ = ["LLMError", "LLMProvider", "LLMResponse", "OpenAICompatibleProvider"]

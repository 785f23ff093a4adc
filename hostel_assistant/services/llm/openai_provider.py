from typing import List, Optional

import httpx

from hostel_assistant.logging_config import get_logger
from hostel_assistant.services.llm.base import LLMError, LLMProvider, LLMResponse

logger = get_logger("llm.openai")


class OpenAICompatibleProvider(LLMProvider):
    """Chat completions over any OpenAI-compatible endpoint (Groq, OpenAI, local gateways)."""

    def __init__(
        self,
        api_key: str,
        default_model: str,
        base_url: str = "https://api.groq.com/openai/v1",
    ):
        self.api_key = api_key
        self.default_model = default_model
        self.base_url = f"{base_url.rstrip('/')}/chat/completions"

    def generate(
        self,
        messages: List[dict],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1000,
        timeout_seconds: Optional[float] = None,
        response_format: Optional[dict] = None,
    ) -> LLMResponse:
        """Generate response from the completions endpoint."""

        model = model or self.default_model

        timeout = timeout_seconds if timeout_seconds is not None else 60.0
        payload = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if response_format:
            payload["response_format"] = response_format
        logger.debug(f"LLM request: model={model}, messages_count={len(messages)}")

        try:
            with httpx.Client(timeout=timeout) as client:
                response = client.post(
                    self.base_url,
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json=payload,
                )
        except httpx.HTTPError as exc:
            raise LLMError(f"LLM transport error: {exc}") from exc

        logger.debug(f"LLM response status: {response.status_code}")

        if response.status_code != 200:
            logger.error(f"LLM error: {response.text}")
            raise LLMError(
                f"LLM API error: {response.status_code} - {response.text}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise LLMError(f"LLM returned non-JSON body: {exc}") from exc

        if not isinstance(data, dict):
            raise LLMError(f"LLM returned unexpected body: {type(data).__name__}")

        content = ""
        choices = data.get("choices") or []
        if not isinstance(choices, list):
            raise LLMError("LLM returned malformed choices")
        if choices:
            choice = choices[0]
            message = choice.get("message") if isinstance(choice, dict) else None
            if not isinstance(message, dict):
                raise LLMError("LLM returned malformed choice")
            content = message.get("content") or ""
            if not isinstance(content, str):
                raise LLMError("LLM returned non-text content")
        logger.debug(f"LLM content: {content[:100] if content else 'EMPTY'}")

        return LLMResponse(
            content=content,
            model=data.get("model", model),
            usage=data.get("usage"),
        )

from functools import lru_cache
from pathlib import Path
from typing import Optional, Union

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_KNOWLEDGE_PATH = Path(__file__).resolve().parent / "knowledge" / "hostel.yaml"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="ASSISTANT_", env_file=".env", extra="ignore")

    # LLM (any OpenAI-compatible chat completions endpoint; Groq by default)
    llm_api_key: Optional[str] = None
    llm_base_url: str = "https://api.groq.com/openai/v1"
    classify_model: str = "llama-3.3-70b-versatile"
    chat_model: str = "llama-3.3-70b-versatile"
    classify_max_tokens: int = 200
    chat_max_tokens: int = 500
    intent_timeout_seconds: float = 8.0
    chat_timeout_seconds: float = 20.0

    # Rate limits
    rate_limit_per_minute: int = 20
    rate_limit_per_hour: int = 100

    # Conversation memory
    conversation_ttl_seconds: float = 3600.0
    max_messages: int = 20
    sweep_interval_seconds: float = 300.0

    # Staff
    staff_phones: Union[list[str], str] = []
    escalation_phone: str = "60127088789"

    knowledge_path: Path = DEFAULT_KNOWLEDGE_PATH

    # Logging
    configure_logging: bool = False
    log_level: str = "INFO"

    @field_validator("staff_phones", mode="before")
    @classmethod
    def _split_staff_phones(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            return [phone.strip() for phone in value.split(",") if phone.strip()]
        return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()

import time
from typing import Optional

from pydantic import BaseModel, Field


class InboundMessage(BaseModel):
    phone: str
    text: str
    push_name: str = ""
    message_id: Optional[str] = None
    is_group: bool = False
    timestamp: float = Field(default_factory=time.time)


class RouteResult(BaseModel):
    reply: Optional[str] = None
    intent: Optional[str] = None
    confidence: float = 0.0
    source: str
    escalated: bool = False
    escalation_reason: Optional[str] = None
    rate_limited: bool = False
    retry_after: Optional[int] = None


class ActivityEvent(BaseModel):
    """Per-turn observability record handed to the activity sink."""

    phone: str
    intent: Optional[str] = None
    confidence: float = 0.0
    source: str
    escalation_reason: Optional[str] = None
    rate_limited: bool = False
    language: Optional[str] = None
    elapsed_ms: float = 0.0
    timestamp: float = Field(default_factory=time.time)

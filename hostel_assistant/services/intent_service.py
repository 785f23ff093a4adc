import asyncio
import json
import math
import re
import time
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field

from hostel_assistant.logging_config import get_logger
from hostel_assistant.services.ai_service import history_to_messages
from hostel_assistant.services.conversation_service import ChatMessage
from hostel_assistant.services.llm import LLMProvider

logger = get_logger("intent_service")


class IntentCategory(str, Enum):
    GREETING = "greeting"
    THANKS = "thanks"
    WIFI = "wifi"
    DIRECTIONS = "directions"
    CHECKIN_INFO = "checkin_info"
    CHECKOUT_INFO = "checkout_info"
    PRICING = "pricing"
    AVAILABILITY = "availability"
    BOOKING = "booking"
    COMPLAINT = "complaint"
    CONTACT_STAFF = "contact_staff"
    FACILITIES = "facilities"
    RULES = "rules"
    GENERAL = "general"
    UNKNOWN = "unknown"


class IntentSource(str, Enum):
    REGEX = "regex"
    LLM = "llm"


class IntentResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: IntentCategory
    confidence: float = Field(ge=0.0, le=1.0)
    entities: Dict[str, str] = Field(default_factory=dict)
    source: IntentSource


REGEX_CONFIDENCE = 0.85
DEFAULT_LLM_CONFIDENCE = 0.5
CLASSIFY_HISTORY_TURNS = 3
CLASSIFY_TEMPERATURE = 0.1

# Ordered: the first category with a matching pattern wins.
REGEX_PATTERNS: Tuple[Tuple[IntentCategory, Tuple[re.Pattern, ...]], ...] = (
    (
        IntentCategory.GREETING,
        (
            re.compile(
                r"^(hi|hello|hey|helo|hai|apa khabar|你好|嗨|good\s?(morning|afternoon|evening|night))",
                re.IGNORECASE,
            ),
            re.compile(r"^(assalamualaikum|salam|selamat\s?(pagi|petang|malam))", re.IGNORECASE),
        ),
    ),
    (
        IntentCategory.THANKS,
        (
            re.compile(r"\b(thanks?|thank\s?you|terima\s?kasih|tq|ty|appreciate)\b", re.IGNORECASE),
            re.compile(r"(谢谢|感谢)"),
        ),
    ),
    (
        IntentCategory.WIFI,
        (
            re.compile(r"\b(wifi|wi-fi|internet|password|ssid)\b", re.IGNORECASE),
            re.compile(r"(网络|密码|无线)"),
        ),
    ),
    (
        IntentCategory.DIRECTIONS,
        (
            re.compile(
                r"\b(direction|where|location|address|map|how\s?to\s?(get|go|reach|find)|google\s?map"
                r"|navigate|alamat|di\s?mana|lokasi)\b",
                re.IGNORECASE,
            ),
            re.compile(r"(地址|位置|怎么走|在哪|路线)"),
        ),
    ),
    (
        IntentCategory.CHECKIN_INFO,
        (
            re.compile(
                r"\b(check[\s-]?in|daftar\s?masuk|what\s?time.*arrive|when.*come|masa\s?masuk)\b",
                re.IGNORECASE,
            ),
            re.compile(r"(入住|几点.*入)"),
        ),
    ),
    (
        IntentCategory.CHECKOUT_INFO,
        (
            re.compile(
                r"\b(check[\s-]?out|daftar\s?keluar|what\s?time.*leave|when.*leave|masa\s?keluar)\b",
                re.IGNORECASE,
            ),
            re.compile(r"(退房|几点.*退)"),
        ),
    ),
    (
        IntentCategory.PRICING,
        (
            re.compile(r"\b(price|pricing|rate|cost|how\s?much|berapa|harga|kadar|rm\s?\d+)\b", re.IGNORECASE),
            re.compile(r"(价格|多少钱|费用)"),
        ),
    ),
    (
        IntentCategory.AVAILABILITY,
        (
            re.compile(
                r"\b(available|availability|any\s?(room|capsule|bed)|vacancy|ada\s?(bilik|katil|kosong))\b",
                re.IGNORECASE,
            ),
            re.compile(r"(有没有.*房|空房|还有.*位)"),
        ),
    ),
    (
        IntentCategory.BOOKING,
        (
            re.compile(
                r"\b(book|booking|reserve|reservation|tempah|tempahan|i\s?want\s?to\s?(book|stay|reserve))\b",
                re.IGNORECASE,
            ),
            re.compile(r"(预[订定]|我要.*[订定])"),
        ),
    ),
    (
        IntentCategory.COMPLAINT,
        (
            re.compile(
                r"\b(complain|complaint|broken|dirty|noisy|loud|uncomfortable|issue|problem|not\s?working"
                r"|aduan|rosak|kotor|bising|masalah)\b",
                re.IGNORECASE,
            ),
            re.compile(r"(投诉|坏了|脏|太吵|有问题)"),
        ),
    ),
    (
        IntentCategory.CONTACT_STAFF,
        (
            re.compile(
                r"\b(staff|manager|human|person|real\s?person|talk\s?to|speak\s?to|contact|call"
                r"|pekerja|pengurus|manusia)\b",
                re.IGNORECASE,
            ),
            re.compile(r"(联系|工作人员|找人|真人)"),
        ),
    ),
    (
        IntentCategory.FACILITIES,
        (
            re.compile(
                r"\b(facilit\w*|kitchen|laundry|bathroom|shower|towel|parking|locker"
                r"|kemudahan|dapur|dobi|bilik\s?air|tuala)\b",
                re.IGNORECASE,
            ),
            re.compile(r"(设施|厨房|洗衣|浴室|毛巾|停车)"),
        ),
    ),
    (
        IntentCategory.RULES,
        (
            re.compile(
                r"\b(rules?|policy|regulation|smoking|quiet\s?hours?|pet|peraturan|dasar|merokok)\b",
                re.IGNORECASE,
            ),
            re.compile(r"(规则|规定|可以吗|允许)"),
        ),
    ),
)

VALID_CATEGORIES = frozenset(c.value for c in IntentCategory)

CLASSIFY_SYSTEM_PROMPT = f"""You are an intent classifier for a capsule hostel WhatsApp bot.
Given the user message, classify it into exactly ONE category and extract entities.

Categories: {", ".join(c.value for c in IntentCategory)}

Extract entities when present: dates (check_in, check_out), guest_count, language.

Respond with ONLY valid JSON (no markdown):
{{"category":"<category>","confidence":<0-1>,"entities":{{}}}}"""

_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def _failed_llm_result() -> IntentResult:
    return IntentResult(category=IntentCategory.UNKNOWN, confidence=0.0, entities={}, source=IntentSource.LLM)


def regex_classify(text: str) -> Optional[IntentResult]:
    """Pattern tier: instant, deterministic, no network."""
    trimmed = (text or "").strip()
    if not trimmed:
        return None

    for category, patterns in REGEX_PATTERNS:
        for pattern in patterns:
            if pattern.search(trimmed):
                return IntentResult(
                    category=category,
                    confidence=REGEX_CONFIDENCE,
                    entities={},
                    source=IntentSource.REGEX,
                )
    return None


def _coerce_category(value: Any) -> IntentCategory:
    if isinstance(value, str) and value.strip().lower() in VALID_CATEGORIES:
        return IntentCategory(value.strip().lower())
    return IntentCategory.UNKNOWN


def _coerce_confidence(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return DEFAULT_LLM_CONFIDENCE
    if math.isnan(value):
        return DEFAULT_LLM_CONFIDENCE
    return min(1.0, max(0.0, float(value)))


def _coerce_entities(value: Any) -> Dict[str, str]:
    if not isinstance(value, dict):
        return {}
    entities: Dict[str, str] = {}
    for key, item in value.items():
        if item is None or isinstance(item, (dict, list)):
            continue
        entities[str(key)] = str(item)
    return entities


def parse_classification(content: str) -> IntentResult:
    """Turn a raw LLM reply into a result inside the closed category set."""
    cleaned = _CODE_FENCE.sub("", (content or "").strip())
    if not cleaned:
        return _failed_llm_result()

    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        logger.warning(f"Classification reply is not JSON: {exc}")
        return _failed_llm_result()

    if not isinstance(parsed, dict):
        return _failed_llm_result()

    return IntentResult(
        category=_coerce_category(parsed.get("category")),
        confidence=_coerce_confidence(parsed.get("confidence")),
        entities=_coerce_entities(parsed.get("entities")),
        source=IntentSource.LLM,
    )


def build_classify_messages(text: str, history: Sequence[ChatMessage]) -> List[dict]:
    messages = [{"role": "system", "content": CLASSIFY_SYSTEM_PROMPT}]
    messages.extend(history_to_messages(history, CLASSIFY_HISTORY_TURNS))
    messages.append({"role": "user", "content": text})
    return messages


class IntentClassifier:
    def __init__(
        self,
        provider: Optional[LLMProvider] = None,
        model: Optional[str] = None,
        max_tokens: int = 200,
        timeout_seconds: float = 8.0,
    ):
        self.provider = provider
        self.model = model
        self.max_tokens = max_tokens
        self.timeout_seconds = timeout_seconds

    async def classify(self, text: str, history: Sequence[ChatMessage] = ()) -> IntentResult:
        """Classify a guest message; never raises."""
        regex_result = regex_classify(text)
        if regex_result is not None:
            return regex_result

        return await self._llm_classify(text, history)

    async def _llm_classify(self, text: str, history: Sequence[ChatMessage]) -> IntentResult:
        if self.provider is None:
            return _failed_llm_result()

        messages = build_classify_messages(text, history)
        llm_start = time.monotonic()
        try:
            response = await asyncio.to_thread(
                self.provider.generate,
                messages,
                model=self.model,
                temperature=CLASSIFY_TEMPERATURE,
                max_tokens=self.max_tokens,
                timeout_seconds=self.timeout_seconds,
                response_format={"type": "json_object"},
            )
            result = parse_classification(response.content)
        except Exception as exc:
            logger.error(f"Intent classification error: {exc}")
            return _failed_llm_result()

        logger.info(
            "Timing",
            extra={
                "context": {
                    "stage": "intent_llm_ms",
                    "elapsed_ms": round((time.monotonic() - llm_start) * 1000, 2),
                    "model_name": self.model,
                    "category": result.category.value,
                }
            },
        )
        return result

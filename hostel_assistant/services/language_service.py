import re
from enum import Enum


class Language(str, Enum):
    EN = "en"
    MS = "ms"
    ZH = "zh"


DEFAULT_LANGUAGE = Language.EN

CJK_PATTERN = re.compile(r"[\u4e00-\u9fff]")

MALAY_KEYWORDS = (
    "apa",
    "berapa",
    "bila",
    "mana",
    "saya",
    "boleh",
    "nak",
    "ada",
    "ini",
    "itu",
    "harga",
    "bilik",
    "masuk",
    "keluar",
    "terima kasih",
    "tolong",
    "encik",
    "cik",
)

# Distinct keyword hits needed before text is tagged as Malay
MALAY_MIN_HITS = 2


def detect_language(text: str) -> Language:
    """Tag text as en/ms/zh from script and keyword signals."""
    if not text:
        return DEFAULT_LANGUAGE

    if CJK_PATTERN.search(text):
        return Language.ZH

    lowered = text.lower()
    hits = sum(1 for keyword in MALAY_KEYWORDS if keyword in lowered)
    if hits >= MALAY_MIN_HITS:
        return Language.MS

    return DEFAULT_LANGUAGE

from pathlib import Path
from typing import Dict, Mapping, Optional, Protocol, Union

import yaml

from hostel_assistant.logging_config import get_logger
from hostel_assistant.services.language_service import DEFAULT_LANGUAGE, Language

logger = get_logger("knowledge_service")


class KnowledgeBase(Protocol):
    def get_answer(self, category: str, language: Union[Language, str]) -> Optional[str]: ...


def _load_yaml(path: Path) -> dict:
    if not path.exists():
        logger.warning(f"Knowledge file not found: {path}")
        return {}
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    return data if isinstance(data, dict) else {}


def _normalize_entries(raw: object) -> Dict[str, Dict[str, str]]:
    entries: Dict[str, Dict[str, str]] = {}
    if not isinstance(raw, dict):
        return entries
    for category, variants in raw.items():
        if not isinstance(variants, dict):
            continue
        texts = {str(lang): str(text).strip() for lang, text in variants.items() if text and str(text).strip()}
        if texts:
            entries[str(category)] = texts
    return entries


class StaticKnowledge:
    """Per-intent canned answers in en/ms/zh."""

    def __init__(self, entries: Optional[Mapping[str, Mapping[str, str]]] = None):
        self._entries = _normalize_entries(dict(entries or {}))

    @classmethod
    def from_yaml(cls, path: Path) -> "StaticKnowledge":
        data = _load_yaml(Path(path))
        knowledge = cls(data.get("knowledge"))
        logger.info(f"Loaded {len(knowledge)} knowledge entries from {path}")
        return knowledge

    def __len__(self) -> int:
        return len(self._entries)

    def categories(self) -> list[str]:
        return sorted(self._entries)

    def get_answer(self, category: str, language: Union[Language, str] = DEFAULT_LANGUAGE) -> Optional[str]:
        variants = self._entries.get(str(getattr(category, "value", category)))
        if not variants:
            return None
        lang = getattr(language, "value", language)
        return variants.get(lang) or variants.get(DEFAULT_LANGUAGE.value)

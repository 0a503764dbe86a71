from __future__ import annotations

import re
from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, Iterable, Mapping, Optional, Pattern, Sequence, Tuple


class ConfidenceLevel(IntEnum):
    LOW = 0
    MEDIUM = 1
    HIGH = 2

    @classmethod
    def parse(cls, value: object) -> "ConfidenceLevel":
        if isinstance(value, ConfidenceLevel):
            return value
        if isinstance(value, str):
            key = value.strip().upper()
            if key in cls.__members__:
                return cls[key]
        raise ValueError(f"Unknown confidence level: {value!r}")

    @property
    def label(self) -> str:
        return self.name


def confidence_at_least(confidence: ConfidenceLevel, minimum: ConfidenceLevel) -> bool:
    return int(confidence) >= int(minimum)


def cap_confidence(value: ConfidenceLevel, ceiling: Optional[ConfidenceLevel]) -> ConfidenceLevel:
    if ceiling is None:
        return value
    return ConfidenceLevel(min(int(value), int(ceiling)))


@dataclass(frozen=True)
class Classification:
    category: str
    confidence: ConfidenceLevel
    matched: str = ""


class Classifier:
    """Maps free text (bindings, selectors, messages) to a category.

    Implementations return None when nothing matches.
    """

    def classify(self, text: str, category: str) -> Optional[Classification]:
        raise NotImplementedError

    def matches(self, category: str, texts: Iterable[Optional[str]]) -> Optional[Classification]:
        for text in texts:
            if not text:
                continue
            found = self.classify(text, category)
            if found is not None:
                return found
        return None


DEFAULT_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "dialog": ("modal", "dialog", "overlay", "popup", "lightbox", "drawer"),
    "session": ("session", "logout", "log-out", "signout", "expire", "expiry", "idle"),
    "live-feed": ("carousel", "slider", "ticker", "marquee", "feed", "slideshow"),
}


class KeywordClassifier(Classifier):
    def __init__(self, keywords: Optional[Mapping[str, Sequence[str]]] = None) -> None:
        source = keywords if keywords is not None else DEFAULT_KEYWORDS
        self._patterns: Dict[str, Pattern[str]] = {}
        for category, words in source.items():
            if not words:
                continue
            joined = "|".join(re.escape(word) for word in words)
            self._patterns[category] = re.compile(joined, re.IGNORECASE)

    @property
    def categories(self) -> Tuple[str, ...]:
        return tuple(sorted(self._patterns))

    def classify(self, text: str, category: str) -> Optional[Classification]:
        pattern = self._patterns.get(category)
        if pattern is None:
            return None
        match = pattern.search(text)
        if not match:
            return None
        return Classification(category=category, confidence=ConfidenceLevel.LOW, matched=match.group(0))


class NullClassifier(Classifier):
    """Disables heuristic detections entirely."""

    def classify(self, text: str, category: str) -> Optional[Classification]:
        return None

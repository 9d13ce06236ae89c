"""
Shared types and base class for all recognition providers.

Every provider normalises its raw answer into a RecognitionResult; the rest
of the pipeline never looks at provider-specific payloads.
"""
from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

logger = logging.getLogger(__name__)


class ConfidenceTier(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class RecognitionSource(str, Enum):
    PROVIDER = "provider"       # real recognition signal
    FALLBACK = "fallback"       # built from item name / category
    ERROR = "error"             # even the fallback could not be built


# ── Result types ───────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Label:
    """A scored description: used for label annotations and web entities."""
    description: str
    score: float = 0.0


@dataclass(frozen=True)
class VisualMatch:
    """A visually similar page/image. Price is unknown at discovery time."""
    url: str
    title: Optional[str] = None
    score: float = 0.8


@dataclass(frozen=True)
class RecognitionResult:
    best_guess_title: str
    labels: tuple[Label, ...] = ()
    web_entities: tuple[Label, ...] = ()
    visual_matches: tuple[VisualMatch, ...] = ()
    confidence: ConfidenceTier = ConfidenceTier.LOW
    source: RecognitionSource = RecognitionSource.PROVIDER
    provider_name: str = ""
    error: Optional[str] = None

    def __post_init__(self) -> None:
        # Accept lists / plain strings from callers, store immutable forms
        object.__setattr__(self, "best_guess_title", self.best_guess_title or "")
        object.__setattr__(self, "labels", tuple(self.labels))
        object.__setattr__(self, "web_entities", tuple(self.web_entities))
        object.__setattr__(self, "visual_matches", tuple(self.visual_matches))
        object.__setattr__(self, "confidence", ConfidenceTier(self.confidence))
        object.__setattr__(self, "source", RecognitionSource(self.source))

    @property
    def is_fallback(self) -> bool:
        return self.source in (RecognitionSource.FALLBACK, RecognitionSource.ERROR)

    @property
    def has_signal(self) -> bool:
        """True when the provider produced anything keyword-worthy."""
        return bool(self.best_guess_title or self.labels or self.web_entities)

    def display_title(self, fallback_name: Optional[str] = None) -> str:
        """Best guess → first web entity → user-supplied name."""
        if self.best_guess_title:
            return self.best_guess_title
        for entity in self.web_entities:
            if entity.description:
                return entity.description
        return fallback_name or ""


def compute_confidence(best_guess: Optional[str], labels: Sequence[Label]) -> ConfidenceTier:
    """
    high   → a best-guess label exists, or ≥5 labels with top score > 0.8
    medium → more than 3 labels
    low    → anything else
    """
    if best_guess:
        return ConfidenceTier.HIGH
    if len(labels) >= 5 and max(l.score for l in labels) > 0.8:
        return ConfidenceTier.HIGH
    if len(labels) > 3:
        return ConfidenceTier.MEDIUM
    return ConfidenceTier.LOW


def parse_json_response(raw: str, provider_name: str) -> dict:
    """
    Parse JSON from a model response, handling markdown fences gracefully.
    Raises ValueError on parse failure.
    """
    text = (raw or "").strip()
    # Strip ```json ... ``` or ``` ... ``` fences if present
    if text.startswith("```"):
        lines = text.split("\n")
        text = "\n".join(lines[1:-1] if lines[-1].strip() == "```" else lines[1:])
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        logger.error("[%s] Non-JSON response: %s", provider_name, (raw or "")[:300])
        raise ValueError(f"[{provider_name}] JSON parse error: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"[{provider_name}] expected a JSON object, got {type(data).__name__}")
    return data


# ── Abstract base ──────────────────────────────────────────────────────────────

class RecognitionProvider(ABC):
    """Base class all recognition providers must implement."""

    name: str               # short id, e.g. "google_vision"
    display_name: str       # name written to the API call log
    endpoint: str           # request URL written to the API call log (no secrets)

    @abstractmethod
    async def analyse(self, image_bytes: bytes) -> RecognitionResult:
        """
        Run recognition on image_bytes and return a provider-sourced result.
        Raises RecognitionFailure on any provider problem; each call is
        reported to call_logger by the implementation.
        """
        ...

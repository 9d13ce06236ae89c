"""
Metadata-based fallback used when image recognition is unavailable.

These terms come from what the user typed, not from the image, so they are
only ever used when the provider produced nothing (see keywords.py).
"""
from __future__ import annotations

import logging
import re
from pathlib import PurePosixPath
from typing import Optional, Union
from urllib.parse import urlparse

from recognition.base import (
    ConfidenceTier, Label, RecognitionResult, RecognitionSource,
)

logger = logging.getLogger(__name__)

CATEGORY_KEYWORDS: dict[str, list[str]] = {
    "Furniture": ["antique furniture", "vintage"],
    "Watches":   ["vintage watch", "antique timepiece"],
    "Jewelry":   ["antique jewelry", "vintage"],
    "Art":       ["antique art", "vintage painting"],
    "Ceramics":  ["antique ceramic", "vintage pottery"],
    "Textiles":  ["vintage textile", "antique fabric"],
    "Books":     ["antique book", "rare book"],
    "Other":     ["antique", "vintage collectible"],
}

_CATEGORY_LOOKUP = {k.lower(): v for k, v in CATEGORY_KEYWORDS.items()}


def category_terms(category: Optional[str]) -> list[str]:
    """
    Table entries for a category (case-insensitive).
    Unknown categories contribute the category text itself.
    """
    if not category or not category.strip():
        return []
    terms = _CATEGORY_LOOKUP.get(category.strip().lower())
    if terms is not None:
        return list(terms)
    return [category.strip()]


def fallback_terms(item_name: Optional[str], category: Optional[str]) -> list[str]:
    """Category table entries first, then the literal item name."""
    terms = category_terms(category)
    if item_name and item_name.strip():
        terms.append(item_name.strip())
    return terms


def name_from_image_ref(image_ref: Union[str, bytes, None]) -> Optional[str]:
    """
    Derive a readable name from an upload's file name:
      "uploads/1699999999-pocket_watch.jpg" → "pocket watch"
    """
    if not isinstance(image_ref, str) or not image_ref.strip():
        return None
    path = urlparse(image_ref).path if "://" in image_ref else image_ref
    stem = PurePosixPath(path.replace("\\", "/")).stem
    clean = re.sub(r"^\d+[-_]", "", stem)
    clean = re.sub(r"[-_]+", " ", clean).strip().lower()
    return clean or None


def build_fallback_result(
    item_name: Optional[str],
    category: Optional[str],
    error: Optional[str] = None,
) -> RecognitionResult:
    """
    RecognitionResult for "no recognition available": no visual matches,
    labels are the fallback terms. If even that fails, source=error.
    """
    try:
        terms = fallback_terms(item_name, category)
        return RecognitionResult(
            best_guess_title=(item_name or "").strip(),
            labels=tuple(Label(term, 1.0) for term in terms),
            web_entities=(),
            visual_matches=(),
            confidence=ConfidenceTier.LOW,
            source=RecognitionSource.FALLBACK,
            provider_name="fallback",
            error=error,
        )
    except Exception as exc:
        logger.error("Fallback recognition could not be built: %s", exc)
        return RecognitionResult(
            best_guess_title=item_name if isinstance(item_name, str) else "",
            confidence=ConfidenceTier.LOW,
            source=RecognitionSource.ERROR,
            provider_name="fallback",
            error=f"{error}; {exc}" if error else str(exc),
        )

"""
keywords.py — turn a RecognitionResult into a marketplace search string.

Image-derived terms, in strict priority order:
  1. best-guess label (always, when present)
  2. web entities with score > 0.4 — best 5, highest score first
  3. labels with score > 0.6 — first 8
  4. "antique" + "vintage" when any included term mentions antique/vintage/old

The user's item name and category are NEVER mixed into image-derived
keywords. They are used only when recognition fell back (or produced no
signal at all), after any search keywords the caller supplied.

Post-processing: lower-case, split into words, de-duplicate keeping the first
occurrence, drop words shorter than 3 characters, keep at most 10.
"""
from __future__ import annotations

import logging
from typing import Iterable, Optional

from errors import NoKeywordsAvailable
from recognition.base import Label, RecognitionResult
from recognition.fallback import fallback_terms

logger = logging.getLogger(__name__)

MAX_KEYWORDS = 10
MIN_TOKEN_LENGTH = 3

WEB_ENTITY_MIN_SCORE = 0.4
MAX_WEB_ENTITIES = 5
LABEL_MIN_SCORE = 0.6
MAX_LABELS = 8

AGE_MARKERS = ("antique", "vintage", "old")
AGE_KEYWORDS = ["antique", "vintage"]

_STRIP_CHARS = ".,;:!?()[]{}\"'`"


def image_terms(result: RecognitionResult) -> list[str]:
    """Priority-ordered terms taken from the recognition signal only."""
    terms: list[str] = []

    if result.best_guess_title:
        terms.append(result.best_guess_title)

    entities = sorted(
        (e for e in result.web_entities if e.description and e.score > WEB_ENTITY_MIN_SCORE),
        key=lambda e: e.score,
        reverse=True,
    )
    terms.extend(e.description for e in entities[:MAX_WEB_ENTITIES])

    labels = [l for l in result.labels if l.description and l.score > LABEL_MIN_SCORE]
    terms.extend(l.description for l in labels[:MAX_LABELS])

    return _with_age_keywords(terms)


def weak_image_terms(result: RecognitionResult) -> list[str]:
    """Every label/entity regardless of score, best first. Last resort before metadata."""
    scored: list[Label] = sorted(
        [*result.web_entities, *result.labels], key=lambda l: l.score, reverse=True
    )
    return _with_age_keywords([l.description for l in scored if l.description])


def _with_age_keywords(terms: list[str]) -> list[str]:
    if any(marker in term.lower() for term in terms for marker in AGE_MARKERS):
        return terms + AGE_KEYWORDS
    return terms


def keyword_tokens(terms: Iterable[str], limit: int = MAX_KEYWORDS) -> list[str]:
    """Lower-case word tokens, first-seen order, no duplicates, len ≥ 3, at most `limit`."""
    tokens: list[str] = []
    seen: set[str] = set()
    for term in terms:
        for word in str(term).lower().split():
            word = word.strip(_STRIP_CHARS)
            if len(word) < MIN_TOKEN_LENGTH or word in seen:
                continue
            seen.add(word)
            tokens.append(word)
            if len(tokens) >= limit:
                return tokens
    return tokens


def extract_keywords(
    result: RecognitionResult,
    fallback_name: Optional[str] = None,
    fallback_category: Optional[str] = None,
    fallback_keywords: Optional[str] = None,
) -> str:
    """
    Search keywords for result, space-joined.
    Caller-supplied fallback_keywords lead the metadata terms; they are ignored
    whenever the image yields tokens.
    Raises NoKeywordsAvailable when neither the image nor the metadata yields a token.
    """
    if not result.is_fallback:
        tokens = keyword_tokens(image_terms(result))
        if not tokens and result.has_signal:
            # Provider saw something, just not confidently: still image-only
            tokens = keyword_tokens(weak_image_terms(result))
        if tokens:
            keywords = " ".join(tokens)
            logger.info("Keywords from image (%s): '%s'", result.provider_name or "provider", keywords)
            return keywords
        logger.info("Recognition returned no usable signal, using item metadata")

    name = fallback_name if fallback_name and fallback_name.strip() else None
    if name is None and result.is_fallback:
        # Fallback results carry the (possibly file-name derived) item name as title
        name = result.best_guess_title or None

    terms = [fallback_keywords] if fallback_keywords and fallback_keywords.strip() else []
    terms.extend(fallback_terms(name, fallback_category))
    tokens = keyword_tokens(terms)
    if not tokens:
        raise NoKeywordsAvailable(
            "Keywords or item name are required for price analysis"
        )

    keywords = " ".join(tokens)
    logger.info("Fallback keywords (not image based): '%s'", keywords)
    return keywords

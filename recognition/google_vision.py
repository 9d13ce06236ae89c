"""
Google Cloud Vision recognition provider (REST, API-key auth).

One images:annotate call per photo with:
  LABEL_DETECTION      → labels ("Pocket watch", 0.93)
  WEB_DETECTION        → best-guess label, web entities, visual matches
  TEXT_DETECTION       → requested for parity with the upload flow, unused here
  OBJECT_LOCALIZATION  → requested for parity with the upload flow, unused here

Visual matches come from two places in webDetection:
  visuallySimilarImages    — image URLs only, no title (score defaults to 1.0)
  pagesWithMatchingImages  — pages with a title (score defaults to 0.8), first 10
"""
from __future__ import annotations

import base64
import html
import logging
import re
from typing import Optional

import aiohttp

import call_logger
from errors import RecognitionFailure
from recognition.base import (
    Label, RecognitionProvider, RecognitionResult, RecognitionSource,
    VisualMatch, compute_confidence,
)

logger = logging.getLogger(__name__)

VISION_URL = "https://vision.googleapis.com/v1/images:annotate"

_FEATURES = [
    {"type": "LABEL_DETECTION",     "maxResults": 10},
    {"type": "WEB_DETECTION",       "maxResults": 10},
    {"type": "TEXT_DETECTION",      "maxResults": 5},
    {"type": "OBJECT_LOCALIZATION", "maxResults": 10},
]

MAX_MATCHING_PAGES = 10
MAX_VISUAL_MATCHES = 15


class GoogleVisionProvider(RecognitionProvider):

    def __init__(self, api_key: str, timeout: float = 30) -> None:
        self.name = "google_vision"
        self.display_name = "Google Vision API"
        self.endpoint = VISION_URL
        self._key = api_key
        self._timeout = timeout

    async def analyse(self, image_bytes: bytes) -> RecognitionResult:
        payload = {
            "requests": [{
                "image":    {"content": base64.b64encode(image_bytes).decode()},
                "features": _FEATURES,
            }]
        }

        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    VISION_URL,
                    params={"key": self._key},
                    json=payload,
                    timeout=aiohttp.ClientTimeout(total=self._timeout),
                ) as resp:
                    status = resp.status
                    if status != 200:
                        text = await resp.text()
                        raise RecognitionFailure(
                            f"Google Vision error {status}: {text[:200]}", str(status)
                        )
                    data = await resp.json()
        except RecognitionFailure as exc:
            call_logger.record(self.display_name, VISION_URL, exc.status_label)
            raise
        except (aiohttp.ClientError, ValueError) as exc:
            call_logger.record(self.display_name, VISION_URL, "error")
            raise RecognitionFailure(f"Google Vision request failed: {exc}") from exc

        # The HTTP call itself worked, so log it even if the body turns out unusable
        call_logger.record(self.display_name, VISION_URL, str(status))

        responses = data.get("responses") if isinstance(data, dict) else None
        if not responses or not isinstance(responses[0], dict):
            raise RecognitionFailure("Invalid response from Google Vision API", str(status))
        annotation = responses[0]
        if annotation.get("error"):
            err = annotation["error"]
            raise RecognitionFailure(
                f"Google Vision annotate error: {err.get('message', err) if isinstance(err, dict) else err}",
                str(status),
            )

        result = parse_annotation(annotation)
        logger.info(
            "Google Vision: '%s' — %d labels, %d entities, %d visual matches (%s)",
            result.best_guess_title, len(result.labels), len(result.web_entities),
            len(result.visual_matches), result.confidence.value,
        )
        return result


# ── Response parsing ───────────────────────────────────────────────────────────

def parse_annotation(annotation: dict) -> RecognitionResult:
    """Normalise one AnnotateImageResponse into a RecognitionResult."""
    labels = tuple(
        Label(str(l["description"]), _score(l.get("score"), 0.0))
        for l in annotation.get("labelAnnotations") or []
        if isinstance(l, dict) and l.get("description")
    )

    web = annotation.get("webDetection") or {}

    best_guess = ""
    for guess in web.get("bestGuessLabels") or []:
        if isinstance(guess, dict) and guess.get("label"):
            best_guess = str(guess["label"]).strip()
            break

    entities = tuple(
        Label(str(e["description"]), _score(e.get("score"), 0.0))
        for e in web.get("webEntities") or []
        if isinstance(e, dict) and e.get("description")
    )

    return RecognitionResult(
        best_guess_title=best_guess,
        labels=labels,
        web_entities=entities,
        visual_matches=tuple(_visual_matches(web)),
        confidence=compute_confidence(best_guess, labels),
        source=RecognitionSource.PROVIDER,
        provider_name="google_vision",
    )


def _visual_matches(web: dict) -> list[VisualMatch]:
    matches: list[VisualMatch] = []
    for img in web.get("visuallySimilarImages") or []:
        if isinstance(img, dict) and img.get("url"):
            matches.append(VisualMatch(url=img["url"], title=None, score=_score(img.get("score"), 1.0)))

    for page in (web.get("pagesWithMatchingImages") or [])[:MAX_MATCHING_PAGES]:
        if not isinstance(page, dict):
            continue
        title = _clean_title(page.get("pageTitle"))
        if page.get("url") and title:
            matches.append(VisualMatch(url=page["url"], title=title, score=_score(page.get("score"), 0.8)))

    return matches[:MAX_VISUAL_MATCHES]


def _clean_title(raw: Optional[str]) -> Optional[str]:
    """Page titles come back with <b>highlight</b> markup and HTML entities."""
    if not raw:
        return None
    text = html.unescape(re.sub(r"<[^>]+>", "", str(raw))).strip()
    return text or None


def _score(value, default: float) -> float:
    try:
        return float(value) if value is not None else default
    except (TypeError, ValueError):
        return default

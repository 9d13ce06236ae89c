"""
OpenAI vision recognition provider — gpt-4o / gpt-4o-mini.

A chat model cannot do reverse image search, so this provider never returns
visual matches: it maps the model's JSON answer onto a best-guess label plus
scored labels, which is all the keyword extractor needs.
"""
from __future__ import annotations

import base64
import logging
import time

import openai
from openai import AsyncOpenAI

import call_logger
from errors import RecognitionFailure
from recognition.base import (
    Label, RecognitionProvider, RecognitionResult, RecognitionSource,
    compute_confidence, parse_json_response,
)

logger = logging.getLogger(__name__)

CHAT_URL = "https://api.openai.com/v1/chat/completions"

SYSTEM_PROMPT = """You are an expert antiques and collectibles identifier.
Analyse the photo and return ONLY a valid JSON object — no markdown, no prose.

JSON schema:
{
  "best_guess":   "most specific name for the item (maker + model/period if visible)",
  "labels":       [{"description": "short visual label", "score": 0.0-1.0}],
  "web_entities": [{"description": "named entity (brand, maker, style, era)", "score": 0.0-1.0}]
}

Rules:
- Up to 10 labels and 10 web_entities, most confident first
- Describe only what is visible in the photo
- Use "" for best_guess if you cannot identify the item
"""

USER_PROMPT = "Identify this item so it can be searched for on resale marketplaces."


class OpenAIVisionProvider(RecognitionProvider):

    def __init__(self, api_key: str, model: str = "gpt-4o-mini") -> None:
        self.name = "openai"
        self.model_id = model
        self.display_name = f"OpenAI Vision ({model})"
        self.endpoint = CHAT_URL
        self._client = AsyncOpenAI(api_key=api_key)

    async def analyse(self, image_bytes: bytes) -> RecognitionResult:
        b64 = base64.b64encode(image_bytes).decode()
        t0 = time.monotonic()

        try:
            response = await self._client.chat.completions.create(
                model=self.model_id,
                max_tokens=512,
                temperature=0,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {
                        "role": "user",
                        "content": [
                            {
                                "type": "image_url",
                                "image_url": {
                                    "url": f"data:image/jpeg;base64,{b64}",
                                    "detail": "high",
                                },
                            },
                            {"type": "text", "text": USER_PROMPT},
                        ],
                    },
                ],
            )
        except openai.APIStatusError as exc:
            call_logger.record(self.display_name, CHAT_URL, str(exc.status_code))
            raise RecognitionFailure(f"OpenAI error {exc.status_code}: {exc}", str(exc.status_code)) from exc
        except openai.OpenAIError as exc:
            call_logger.record(self.display_name, CHAT_URL, "error")
            raise RecognitionFailure(f"OpenAI request failed: {exc}") from exc

        call_logger.record(self.display_name, CHAT_URL, "200")
        latency_ms = int((time.monotonic() - t0) * 1000)

        try:
            data = parse_json_response(response.choices[0].message.content, self.display_name)
        except (ValueError, IndexError, AttributeError) as exc:
            raise RecognitionFailure(str(exc), "200") from exc

        result = result_from_json(data, provider_name=self.name)
        logger.info(
            "[%s] '%s' — %d labels (%s) in %dms",
            self.display_name, result.best_guess_title, len(result.labels),
            result.confidence.value, latency_ms,
        )
        return result


def result_from_json(data: dict, provider_name: str = "openai") -> RecognitionResult:
    best_guess = str(data.get("best_guess") or "").strip()
    labels = _labels(data.get("labels"))
    return RecognitionResult(
        best_guess_title=best_guess,
        labels=labels,
        web_entities=_labels(data.get("web_entities")),
        visual_matches=(),
        confidence=compute_confidence(best_guess, labels),
        source=RecognitionSource.PROVIDER,
        provider_name=provider_name,
    )


def _labels(raw) -> tuple[Label, ...]:
    out: list[Label] = []
    for entry in raw or []:
        if isinstance(entry, str) and entry.strip():
            out.append(Label(entry.strip(), 0.5))
        elif isinstance(entry, dict) and entry.get("description"):
            try:
                score = min(max(float(entry.get("score", 0.5)), 0.0), 1.0)
            except (TypeError, ValueError):
                score = 0.5
            out.append(Label(str(entry["description"]).strip(), score))
    return tuple(out[:10])

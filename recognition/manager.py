"""
Recognition manager — the only entry point the pipeline uses:

    from recognition.manager import identify
    result = await identify(image_ref, item_name, category)

identify() never raises. Missing credentials, download failures, provider
errors and timeouts all degrade to a fallback RecognitionResult built from
the item name and category.

Provider selection (config.RECOGNITION_PROVIDER):
  auto           → Google Vision if its key is set, else OpenAI, else none
  google_vision  → Google Vision only
  openai         → OpenAI vision only
Keys are read from key_store on every call, so a key added to the DB is
picked up without a restart.
"""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional, Union

import aiohttp

import call_logger
import config
from recognition.base import RecognitionProvider, RecognitionResult
from recognition.fallback import build_fallback_result, name_from_image_ref

logger = logging.getLogger(__name__)

ImageRef = Union[str, Path, bytes, bytearray]


async def get_provider() -> Optional[RecognitionProvider]:
    """Build the configured provider, or None when no credentials are available."""
    import key_store

    mode = config.RECOGNITION_PROVIDER.lower()

    if mode in ("auto", "google_vision"):
        key = await key_store.get("google_vision_api_key")
        if key:
            from recognition.google_vision import GoogleVisionProvider
            return GoogleVisionProvider(key, timeout=config.RECOGNITION_TIMEOUT)
        if mode == "google_vision":
            logger.warning("RECOGNITION_PROVIDER=google_vision but GOOGLE_VISION_API_KEY is not set")
            return None

    if mode in ("auto", "openai"):
        key = await key_store.get("openai_api_key")
        if key:
            from recognition.openai_provider import OpenAIVisionProvider
            return OpenAIVisionProvider(key, model=config.OPENAI_VISION_MODEL)
        if mode == "openai":
            logger.warning("RECOGNITION_PROVIDER=openai but OPENAI_API_KEY is not set")
            return None

    if mode not in ("auto", "google_vision", "openai"):
        logger.warning("Unknown RECOGNITION_PROVIDER '%s' — recognition disabled", mode)
    return None


async def load_image(image_ref: ImageRef) -> bytes:
    """Raw bytes for an http(s) URL, a local path or bytes."""
    if isinstance(image_ref, (bytes, bytearray)):
        return bytes(image_ref)

    ref = str(image_ref)
    if ref.startswith(("http://", "https://")):
        logger.info("Downloading image: %s", ref)
        async with aiohttp.ClientSession() as session:
            async with session.get(ref, timeout=aiohttp.ClientTimeout(total=30)) as resp:
                if resp.status != 200:
                    call_logger.record("Image Download", ref, str(resp.status))
                    raise RuntimeError(f"Image download failed with HTTP {resp.status}")
                data = await resp.read()
        call_logger.record("Image Download", ref, str(resp.status))
        return data

    return await asyncio.to_thread(Path(ref).read_bytes)


async def identify(
    image_ref: Optional[ImageRef],
    fallback_name: Optional[str] = None,
    fallback_category: Optional[str] = None,
    *,
    provider: Optional[RecognitionProvider] = None,
    timeout: Optional[float] = None,
) -> RecognitionResult:
    """
    Recognise the item in image_ref.

    Args:
        image_ref:          URL, local path or raw bytes (None → metadata only).
        fallback_name:      user-entered item name, used only on fallback.
        fallback_category:  user-entered category, used only on fallback.
        provider:           explicit provider (tests); default from config.
        timeout:            seconds for download + provider call.
    """
    name = fallback_name
    if not (name and name.strip()):
        name = name_from_image_ref(str(image_ref) if isinstance(image_ref, Path) else image_ref)

    if image_ref is None or (isinstance(image_ref, (str, bytes, bytearray)) and not image_ref):
        logger.info("No image supplied — using item metadata")
        return build_fallback_result(name, fallback_category, error="no image")

    prov: Optional[RecognitionProvider] = None
    try:
        prov = provider or await get_provider()
        if prov is None:
            logger.info("No recognition credentials — falling back to item name/category")
            return build_fallback_result(name, fallback_category, error="missing credentials")

        result = await asyncio.wait_for(
            _analyse(prov, image_ref),
            timeout=timeout if timeout is not None else config.RECOGNITION_TIMEOUT,
        )
        logger.info("Recognised '%s' via %s (%s)", result.best_guess_title, prov.name, result.confidence.value)
        return result

    except asyncio.TimeoutError:
        logger.warning("Recognition timed out — falling back to item name/category")
        if prov is not None:
            call_logger.record(prov.display_name, prov.endpoint, "timeout")
        return build_fallback_result(name, fallback_category, error="timeout")
    except Exception as exc:
        logger.error("Recognition failed: %s — falling back to item name/category", exc)
        return build_fallback_result(name, fallback_category, error=str(exc))


async def _analyse(prov: RecognitionProvider, image_ref: ImageRef) -> RecognitionResult:
    image_bytes = await load_image(image_ref)
    return await prov.analyse(image_bytes)

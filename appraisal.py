"""
appraisal.py — the photo → price pipeline.

    result = await appraise_item("uploads/172-watch.jpg", "Pocket watch", "Watches", item_id="42")

Steps:
  1. recognise the image (never fails — degrades to item name/category)
  2. derive search keywords (fails only if there is nothing to search for)
  3. query every marketplace concurrently (failed sources just drop out)
  4. rank: visual matches first, marketplace listings second
  5. reduce the priced marketplace listings to one estimate
  6. store the estimate + evidence when an item id is given

One deadline bounds steps 1–3: each step gets the smaller of its own
configured timeout and whatever is left of the deadline.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import config
from errors import InvalidInput
from keywords import extract_keywords
from marketplace_search import fetch_marketplace_prices
from marketplaces.base import MarketplaceSource
from pricing import PriceEstimate, calculate_price_estimate, evidence_listings
from ranking import RankedResultSet, merge_results
from recognition.base import RecognitionProvider, RecognitionResult
from recognition.manager import ImageRef, identify

logger = logging.getLogger(__name__)


@dataclass
class AppraisalResult:
    estimate: PriceEstimate
    ranked_results: RankedResultSet
    keywords_used: str
    recognition: RecognitionResult
    title: str
    prediction_id: Optional[int] = None

    @property
    def recognition_metadata(self) -> dict:
        return {
            "title": self.title,
            "confidenceTier": self.recognition.confidence.value,
            "source": self.recognition.source.value,
        }

    @property
    def image_analysis_used(self) -> bool:
        return not self.recognition.is_fallback

    def to_dict(self) -> dict:
        return {
            "predictionId": self.prediction_id,
            "estimate": self.estimate.to_dict(),
            "rankedResults": self.ranked_results.to_dict(),
            "keywordsUsed": self.keywords_used,
            "recognitionMetadata": self.recognition_metadata,
            "imageAnalysisUsed": self.image_analysis_used,
            "visualMatchesCount": len(self.recognition.visual_matches),
        }


async def appraise_item(
    image_ref: Optional[ImageRef] = None,
    item_name: Optional[str] = None,
    category: Optional[str] = None,
    *,
    item_id: Optional[str] = None,
    deadline: Optional[float] = None,
    provider: Optional[RecognitionProvider] = None,
    sources: Optional[Sequence[MarketplaceSource]] = None,
    persist: bool = True,
    keywords: Optional[str] = None,
) -> AppraisalResult:
    """
    Run the full pipeline for one item.

    `keywords` are the caller's own search terms. They are only used when the
    image gives no usable signal, ahead of the name/category terms.

    Raises:
        InvalidInput: no image, name, category or keywords, or no keyword could be derived.
    """
    given = [t for t in (item_name, category, keywords) if t and t.strip()]
    if image_ref is None and not given:
        raise InvalidInput("An image, item name, category or keywords are required")

    loop = asyncio.get_running_loop()
    ends_at = loop.time() + (deadline if deadline is not None else config.ANALYSIS_DEADLINE)

    def remaining(step_budget: float) -> float:
        return max(0.0, min(step_budget, ends_at - loop.time()))

    # 1. Recognition
    recognition = await identify(
        image_ref, item_name, category,
        provider=provider,
        timeout=remaining(config.RECOGNITION_TIMEOUT),
    )
    title = recognition.display_title(item_name)
    logger.info(
        "Recognition: '%s' (source=%s, confidence=%s, %d visual matches)",
        title, recognition.source.value, recognition.confidence.value, len(recognition.visual_matches),
    )

    # 2. Keywords (NoKeywordsAvailable propagates to the caller)
    search_keywords = extract_keywords(recognition, item_name, category, keywords)

    # 3. Marketplace fan-out
    marketplace_results = await fetch_marketplace_prices(
        search_keywords,
        sources=sources,
        timeout=remaining(config.MARKETPLACE_TIMEOUT),
    )

    # 4 + 5. Rank and summarise (local, synchronous)
    ranked = merge_results(recognition.visual_matches, marketplace_results)
    logger.debug(
        "Ranked %d visual-match listings, %d marketplace groups",
        ranked.visual_match_count, len(ranked.marketplace_groups),
    )
    estimate = calculate_price_estimate(ranked)
    if estimate.has_evidence:
        logger.info(
            "Price analysis: min=$%.2f avg=$%.2f max=$%.2f (%d listings)",
            estimate.min_price, estimate.average_price, estimate.max_price, estimate.listing_count,
        )
    else:
        logger.info("No pricing evidence found for '%s'", search_keywords)

    # 6. Persistence (best effort, the caller still gets the result)
    prediction_id: Optional[int] = None
    if persist and item_id is not None:
        import database as db
        try:
            prediction_id = await db.save_estimate(
                item_id,
                estimate,
                evidence_listings(ranked),
                api_used=f"{recognition.provider_name or 'none'}:{recognition.source.value}",
            )
        except Exception as exc:
            logger.error("Failed to store estimate for item %s: %s", item_id, exc)

    return AppraisalResult(
        estimate=estimate,
        ranked_results=ranked,
        keywords_used=search_keywords,
        recognition=recognition,
        title=title,
        prediction_id=prediction_id,
    )

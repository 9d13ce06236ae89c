"""
marketplace_search.py — public interface for marketplace price lookups.

The pipeline imports only from here:
  from marketplace_search import fetch_marketplace_prices

Sources are configured by MARKETPLACE_SOURCES (default "ebay,etsy,amazon").
That order is the output order, no matter which source answers first:
every source runs as its own task and writes into its own slot, and the
slots are read back in configured order once all tasks have finished.

A source that fails (HTTP error, bad credentials, malformed body, timeout)
contributes nothing and never affects its siblings. Every attempt is written
to the API call log with its HTTP status, "timeout", "malformed" or "error".
"""
from __future__ import annotations

import asyncio
import logging
from typing import Optional, Sequence

import call_logger
import config
from errors import MarketplaceSourceError
from marketplaces.base import (
    MarketplaceListing, MarketplaceSource, MarketplaceSourceResult, SourcePage,
)

logger = logging.getLogger(__name__)

__all__ = ["fetch_marketplace_prices", "build_sources", "MarketplaceSourceResult"]


# ── Source construction ───────────────────────────────────────────────────────

async def build_sources(names: Optional[Sequence[str]] = None) -> list[MarketplaceSource]:
    """
    Build the configured sources in order, skipping any whose credentials are
    missing. Keys are read from key_store (DB → .env) on every call.
    """
    import key_store

    sources: list[MarketplaceSource] = []
    for name in names if names is not None else config.MARKETPLACE_SOURCES:
        name = name.strip().lower()

        if name == "ebay":
            client_id     = await key_store.get("ebay_client_id")
            client_secret = await key_store.get("ebay_client_secret")
            if client_id and client_secret:
                from marketplaces.ebay_source import EbaySource
                sources.append(EbaySource(
                    client_id, client_secret,
                    environment=config.EBAY_ENVIRONMENT,
                    marketplace_id=config.EBAY_MARKETPLACE_ID,
                    max_results=config.MARKETPLACE_MAX_RESULTS,
                ))
            else:
                logger.info("Skipped source ebay (EBAY_CLIENT_ID / EBAY_CLIENT_SECRET not set)")

        elif name == "etsy":
            api_key = await key_store.get("etsy_api_key")
            if api_key:
                from marketplaces.etsy_source import EtsySource
                sources.append(EtsySource(api_key, max_results=config.MARKETPLACE_MAX_RESULTS))
            else:
                logger.info("Skipped source etsy (ETSY_API_KEY not set)")

        elif name == "amazon":
            api_key = await key_store.get("rapidapi_key")
            if api_key:
                from marketplaces.amazon_source import AmazonSource
                sources.append(AmazonSource(api_key, max_results=config.MARKETPLACE_MAX_RESULTS))
            else:
                logger.info("Skipped source amazon (RAPIDAPI_KEY not set)")

        else:
            logger.warning("Unknown marketplace source '%s' in MARKETPLACE_SOURCES", name)

    return sources


# ── Fan-out ───────────────────────────────────────────────────────────────────

async def fetch_marketplace_prices(
    keywords: str,
    *,
    sources: Optional[Sequence[MarketplaceSource]] = None,
    timeout: Optional[float] = None,
    include_empty: bool = False,
) -> list[MarketplaceSourceResult]:
    """
    Query every source concurrently for keywords.

    Args:
        keywords:       space-separated search string.
        sources:        explicit sources (default: build_sources()).
        timeout:        per-source budget in seconds (default MARKETPLACE_TIMEOUT).
        include_empty:  also return sources that were tried but gave no listings.

    Returns:
        One MarketplaceSourceResult per source, in source order.
    """
    if sources is None:
        sources = await build_sources()
    if not sources:
        logger.warning("No marketplace sources configured — nothing to fetch")
        return []

    budget = timeout if timeout is not None else config.MARKETPLACE_TIMEOUT
    slots: list[Optional[MarketplaceSourceResult]] = [None] * len(sources)

    async def _fill(index: int, source: MarketplaceSource) -> None:
        slots[index] = await _fetch_one(source, keywords, budget)

    await asyncio.gather(*(_fill(i, s) for i, s in enumerate(sources)))

    results = [r for r in slots if r is not None and (include_empty or r.listings)]
    logger.info(
        "Marketplace fetch '%s': %d/%d sources with listings, %d listings total",
        keywords, sum(1 for r in slots if r and r.listings), len(sources),
        sum(len(r.listings) for r in slots if r),
    )
    return results


async def _fetch_one(source: MarketplaceSource, keywords: str, budget: float) -> MarketplaceSourceResult:
    """Run one source; never raises (except cancellation of the whole fetch)."""
    name = str(source.name)
    url = _request_url(source, keywords)

    try:
        page = await asyncio.wait_for(source.search(keywords), timeout=budget)
        listings, status, url = _unpack(page, name, url)
    except asyncio.TimeoutError:
        logger.warning("[%s] timed out after %.1fs", name, budget)
        return _failed(source, name, url, "timeout")
    except MarketplaceSourceError as exc:
        logger.warning("[%s] failed: %s", name, exc)
        return _failed(source, name, exc.request_url or url, exc.status_label)
    except Exception as exc:
        logger.error("[%s] unexpected error: %s", name, exc)
        return _failed(source, name, url, "error")

    call_logger.record(source.log_name, url, status)
    if not listings:
        logger.info("[%s] no listings for '%s'", name, keywords)
    return MarketplaceSourceResult(source_name=name, listings=tuple(listings), status_label=status)


def _unpack(page, name: str, url: str) -> tuple[list[MarketplaceListing], str, str]:
    """SourcePage (or a bare listing list) → (listings, status label, url)."""
    if isinstance(page, SourcePage):
        listings, status, url = list(page.listings), str(page.status), page.request_url or url
    elif isinstance(page, (list, tuple)):
        listings, status = list(page), "200"
    else:
        raise MarketplaceSourceError(f"{name}: unexpected result type {type(page).__name__}", "malformed", url)

    if not all(isinstance(l, MarketplaceListing) for l in listings):
        raise MarketplaceSourceError(f"{name}: result contains non-listing entries", "malformed", url)
    return listings, status, url


def _failed(source: MarketplaceSource, name: str, url: str, status: str) -> MarketplaceSourceResult:
    call_logger.record(source.log_name, url, status)
    return MarketplaceSourceResult(source_name=name, listings=(), status_label=status)


def _request_url(source: MarketplaceSource, keywords: str) -> str:
    try:
        return str(source.request_url(keywords))
    except Exception:
        return ""

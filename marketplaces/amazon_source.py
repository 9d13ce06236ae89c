"""
Amazon source via RapidAPI "Real-Time Amazon Data".

  https://rapidapi.com/letscrape-6bRBa3QguO5/api/real-time-amazon-data

No Amazon Associates relationship needed, just a RapidAPI key. Prices come
back as display strings ("$1,299.00"), so they are parsed here before the
listing contract check.
"""
from __future__ import annotations

import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Optional
from urllib.parse import quote_plus

import aiohttp

from errors import MalformedResponse, MarketplaceSourceError, SourceAuthError
from marketplaces.base import MarketplaceSource, SourcePage, make_listing

logger = logging.getLogger(__name__)

# This is the "Real-Time Amazon Data" host; update if you use a different API
RAPIDAPI_HOST = "real-time-amazon-data.p.rapidapi.com"
SEARCH_URL    = f"https://{RAPIDAPI_HOST}/search"


class AmazonSource(MarketplaceSource):

    def __init__(self, api_key: str, max_results: int = 10, country: str = "US") -> None:
        self._headers = {
            "X-RapidAPI-Key":  api_key,
            "X-RapidAPI-Host": RAPIDAPI_HOST,
        }
        self._max_results = max_results
        self._country = country

    @property
    def name(self) -> str:
        return "Amazon"

    def request_url(self, keywords: str) -> str:
        return f"{SEARCH_URL}?query={quote_plus(keywords)}"

    async def search(self, keywords: str) -> SourcePage:
        """
        Notes:
        - `product_condition` is intentionally omitted — passing "ALL" is not a valid
          value for this API and causes it to silently return 0 results.
        """
        url = self.request_url(keywords)
        params = {
            "query":   keywords,
            "page":    "1",
            "country": self._country,
            "sort_by": "RELEVANCE",
        }
        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(
                    SEARCH_URL,
                    headers=self._headers,
                    params=params,
                    timeout=aiohttp.ClientTimeout(total=15),
                ) as resp:
                    if resp.status in (401, 403):
                        raise SourceAuthError(f"RapidAPI rejected key ({resp.status})", str(resp.status), url)
                    if resp.status != 200:
                        text = await resp.text()
                        raise MarketplaceSourceError(f"RapidAPI error {resp.status}: {text[:200]}", str(resp.status), url)
                    status = resp.status
                    data = await resp.json()
        except aiohttp.ClientError as exc:
            raise MarketplaceSourceError(f"RapidAPI request failed: {exc}", "error", url) from exc
        except ValueError as exc:
            raise MalformedResponse(f"RapidAPI returned non-JSON body: {exc}", "malformed", url) from exc

        listings = parse_search_response(data, keywords, self.name, url)[: self._max_results]
        logger.info("Amazon returned %d listings for '%s'", len(listings), keywords)
        return SourcePage(status=status, request_url=url, listings=listings)


def parse_search_response(data, keywords: str, source_name: str = "Amazon", request_url: str = "") -> list:
    if not isinstance(data, dict):
        raise MalformedResponse("RapidAPI response is not an object", "malformed", request_url)
    body = data.get("data") or {}
    if not isinstance(body, dict):
        raise MalformedResponse("RapidAPI data is not an object", "malformed", request_url)
    products = body.get("products")
    if products is None:
        return []
    if not isinstance(products, list):
        raise MalformedResponse("RapidAPI products is not a list", "malformed", request_url)

    fallback_url = f"https://www.amazon.com/s?k={quote_plus(keywords)}"
    listings = []
    for raw in products:
        if not isinstance(raw, dict):
            raise MalformedResponse("RapidAPI product is not an object", "malformed", request_url)
        raw_price = raw.get("product_price") or raw.get("product_minimum_offer_price")
        price = _parse_price(raw_price) if isinstance(raw_price, str) else raw_price
        if isinstance(raw_price, str) and price is None:
            # Display text without a number ("Currently unavailable") means no price
            logger.debug("RapidAPI price %r is not numeric, treated as absent", raw_price)
        product_url = raw.get("product_url")
        if not product_url and raw.get("asin"):
            product_url = f"https://www.amazon.com/dp/{raw['asin']}"
        listings.append(make_listing(
            source_name,
            raw.get("product_title"),
            price,
            product_url or fallback_url,
            request_url,
        ))
    return listings


# ── Helpers ────────────────────────────────────────────────────────────────────

_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")


def _parse_price(price_str: Optional[str]) -> Optional[Decimal]:
    """
    Extract the numeric value from display strings:
      '$29.99' → 29.99, '$1,299.00' → 1299.00
      '$12.99 - $15.99' → 12.99 (low end of a range)
      '-$5.00' → -5.00 (kept negative so the listing check rejects it)
      'N/A', 'Currently unavailable' → None
    """
    text = str(price_str or "").replace(",", "").strip()
    match = _NUMBER_RE.search(text)
    if not match:
        return None
    try:
        value = Decimal(match.group())
    except InvalidOperation:
        return None
    if "-" in text[: match.start()]:
        value = -value
    return value

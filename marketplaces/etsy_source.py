"""
Etsy Open API v3 source.

Docs: https://developers.etsy.com/documentation/reference#operation/findAllListingsActive

Only an API key (the app's "keystring") is needed for public listing search,
sent as the x-api-key header. Prices are integer amounts with a divisor:
  {"amount": 12500, "divisor": 100, "currency_code": "USD"} → 125.00
"""
from __future__ import annotations

import logging
from decimal import Decimal
from urllib.parse import quote_plus

import aiohttp

from errors import MalformedResponse, MarketplaceSourceError, SourceAuthError
from marketplaces.base import MarketplaceSource, SourcePage, make_listing, to_price

logger = logging.getLogger(__name__)

SEARCH_URL = "https://openapi.etsy.com/v3/application/listings/active"


class EtsySource(MarketplaceSource):

    def __init__(self, api_key: str, max_results: int = 10) -> None:
        self._headers = {"x-api-key": api_key}
        self._max_results = max_results

    @property
    def name(self) -> str:
        return "Etsy"

    def request_url(self, keywords: str) -> str:
        return f"{SEARCH_URL}?keywords={quote_plus(keywords)}"

    async def search(self, keywords: str) -> SourcePage:
        url = self.request_url(keywords)
        params = {
            "keywords": keywords,
            "limit":    str(self._max_results),
            "sort_on":  "score",
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
                        raise SourceAuthError(f"Etsy rejected API key ({resp.status})", str(resp.status), url)
                    if resp.status != 200:
                        text = await resp.text()
                        raise MarketplaceSourceError(f"Etsy error {resp.status}: {text[:200]}", str(resp.status), url)
                    status = resp.status
                    data = await resp.json()
        except aiohttp.ClientError as exc:
            raise MarketplaceSourceError(f"Etsy request failed: {exc}", "error", url) from exc
        except ValueError as exc:
            raise MalformedResponse(f"Etsy returned non-JSON body: {exc}", "malformed", url) from exc

        listings = parse_search_response(data, keywords, self.name, url)
        logger.info("Etsy returned %d listings for '%s'", len(listings), keywords)
        return SourcePage(status=status, request_url=url, listings=listings)


def parse_search_response(data, keywords: str, source_name: str = "Etsy", request_url: str = "") -> list:
    if not isinstance(data, dict):
        raise MalformedResponse("Etsy response is not an object", "malformed", request_url)
    results = data.get("results")
    if results is None:
        return []
    if not isinstance(results, list):
        raise MalformedResponse("Etsy results is not a list", "malformed", request_url)

    fallback_url = f"https://www.etsy.com/search?q={quote_plus(keywords)}"
    listings = []
    for raw in results:
        if not isinstance(raw, dict):
            raise MalformedResponse("Etsy listing is not an object", "malformed", request_url)
        listings.append(make_listing(
            source_name,
            raw.get("title"),
            _money(raw.get("price"), request_url),
            raw.get("url") or fallback_url,
            request_url,
        ))
    return listings


def _money(price, request_url: str):
    """Etsy Money object → Decimal (None when absent)."""
    if price is None:
        return None
    if not isinstance(price, dict):
        raise MalformedResponse("Etsy price is not a Money object", "malformed", request_url)
    amount = to_price(price.get("amount"))
    divisor = to_price(price.get("divisor", 1))
    if amount is None or divisor is None or divisor <= 0:
        raise MalformedResponse(f"Etsy price {price!r} is not a valid amount", "malformed", request_url)
    return amount / divisor if divisor != Decimal(1) else amount

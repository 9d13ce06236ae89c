"""
eBay Browse API source.

Docs: https://developer.ebay.com/api-docs/buy/browse/resources/item_summary/methods/search

Authentication is the OAuth client-credentials flow:
  1. POST identity/v1/oauth2/token with Basic base64(client_id:client_secret)
  2. GET  buy/browse/v1/item_summary/search with "Bearer <token>"
A fresh token is requested per search.

EBAY_ENVIRONMENT=sandbox uses api.sandbox.ebay.com (fake listings),
production uses api.ebay.com.
"""
from __future__ import annotations

import base64
import logging
from urllib.parse import quote_plus

import aiohttp

from errors import MalformedResponse, MarketplaceSourceError, SourceAuthError
from marketplaces.base import MarketplaceSource, SourcePage, make_listing

logger = logging.getLogger(__name__)

_HOSTS = {
    "sandbox":    "https://api.sandbox.ebay.com",
    "production": "https://api.ebay.com",
}
OAUTH_SCOPE = "https://api.ebay.com/oauth/api_scope"


class EbaySource(MarketplaceSource):

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        environment: str = "sandbox",
        marketplace_id: str = "EBAY_US",
        max_results: int = 10,
    ) -> None:
        host = _HOSTS.get(environment.lower(), _HOSTS["sandbox"])
        self.token_url  = f"{host}/identity/v1/oauth2/token"
        self.search_url = f"{host}/buy/browse/v1/item_summary/search"
        creds = base64.b64encode(f"{client_id}:{client_secret}".encode()).decode()
        self._auth_header   = f"Basic {creds}"
        self._marketplace_id = marketplace_id
        self._max_results   = max_results

    @property
    def name(self) -> str:
        return "eBay"

    def request_url(self, keywords: str) -> str:
        return f"{self.search_url}?q={quote_plus(keywords)}"

    async def search(self, keywords: str) -> SourcePage:
        url = self.request_url(keywords)
        try:
            async with aiohttp.ClientSession() as session:
                token = await self._get_token(session, url)
                async with session.get(
                    self.search_url,
                    headers={
                        "Authorization": f"Bearer {token}",
                        "X-EBAY-C-MARKETPLACE-ID": self._marketplace_id,
                    },
                    params={"q": keywords, "limit": str(self._max_results)},
                    timeout=aiohttp.ClientTimeout(total=15),
                ) as resp:
                    if resp.status in (401, 403):
                        raise SourceAuthError(f"eBay search rejected token ({resp.status})", str(resp.status), url)
                    if resp.status != 200:
                        text = await resp.text()
                        raise MarketplaceSourceError(f"eBay error {resp.status}: {text[:200]}", str(resp.status), url)
                    status = resp.status
                    data = await resp.json()
        except aiohttp.ClientError as exc:
            raise MarketplaceSourceError(f"eBay request failed: {exc}", "error", url) from exc
        except ValueError as exc:
            raise MalformedResponse(f"eBay returned non-JSON body: {exc}", "malformed", url) from exc

        listings = parse_search_response(data, keywords, self.name, url)
        logger.info("eBay returned %d listings for '%s'", len(listings), keywords)
        return SourcePage(status=status, request_url=url, listings=listings)

    async def _get_token(self, session: aiohttp.ClientSession, request_url: str) -> str:
        async with session.post(
            self.token_url,
            headers={
                "Content-Type": "application/x-www-form-urlencoded",
                "Authorization": self._auth_header,
            },
            data={"grant_type": "client_credentials", "scope": OAUTH_SCOPE},
            timeout=aiohttp.ClientTimeout(total=15),
        ) as resp:
            if resp.status != 200:
                text = await resp.text()
                raise SourceAuthError(f"eBay OAuth error {resp.status}: {text[:200]}", str(resp.status), request_url)
            data = await resp.json()
        token = data.get("access_token") if isinstance(data, dict) else None
        if not token:
            raise SourceAuthError("eBay OAuth response had no access_token", "auth", request_url)
        return token


# ── Parser ────────────────────────────────────────────────────────────────────

def parse_search_response(data, keywords: str, source_name: str = "eBay", request_url: str = "") -> list:
    """
    itemSummaries[] → listings. A response without itemSummaries is a valid
    "no results"; anything that isn't the documented shape is malformed.
    """
    if not isinstance(data, dict):
        raise MalformedResponse("eBay response is not an object", "malformed", request_url)
    summaries = data.get("itemSummaries")
    if summaries is None:
        return []
    if not isinstance(summaries, list):
        raise MalformedResponse("eBay itemSummaries is not a list", "malformed", request_url)

    fallback_url = f"https://www.ebay.com/sch/i.html?_nkw={quote_plus(keywords)}"
    listings = []
    for raw in summaries:
        if not isinstance(raw, dict):
            raise MalformedResponse("eBay item summary is not an object", "malformed", request_url)
        price = raw.get("price")
        if price is not None and not isinstance(price, dict):
            raise MalformedResponse("eBay price is not an object", "malformed", request_url)
        listings.append(make_listing(
            source_name,
            raw.get("title"),
            price.get("value") if price else None,
            raw.get("itemWebUrl") or fallback_url,
            request_url,
        ))
    return listings

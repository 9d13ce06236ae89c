"""
pricing.py — reduce ranked results to a single price estimate.

Visual matches are excluded outright (their price is unknown, carried as 0),
then only listings with price > 0 count. No priced listings is a valid
"no pricing evidence" outcome: every figure is 0, not an error.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional

import config
from marketplaces.base import MarketplaceListing
from ranking import RankedResultSet

_ZERO = Decimal(0)
_CENTS = Decimal("0.01")


@dataclass(frozen=True)
class PriceEstimate:
    average_price: Decimal = _ZERO
    min_price: Decimal = _ZERO
    max_price: Decimal = _ZERO
    listing_count: int = 0
    currency: str = "USD"

    @property
    def price_range(self) -> str:
        return f"${_fmt(self.min_price)} - ${_fmt(self.max_price)}"

    @property
    def has_evidence(self) -> bool:
        return self.listing_count > 0

    def to_dict(self) -> dict:
        return {
            "averagePrice": _fmt(self.average_price),
            "minPrice": _fmt(self.min_price),
            "maxPrice": _fmt(self.max_price),
            "priceRange": self.price_range,
            "listingCount": self.listing_count,
            "currency": self.currency,
        }


def _fmt(value: Decimal) -> str:
    return str(Decimal(value).quantize(_CENTS))


def priced(listings: Iterable[MarketplaceListing]) -> list[MarketplaceListing]:
    return [l for l in listings if l.price > 0]


def summarize_prices(listings: Iterable[MarketplaceListing]) -> PriceEstimate:
    """Mean / min / max over listings with price > 0."""
    prices = [l.price for l in priced(listings)]
    if not prices:
        return PriceEstimate()
    return PriceEstimate(
        average_price=sum(prices, _ZERO) / len(prices),
        min_price=min(prices),
        max_price=max(prices),
        listing_count=len(prices),
    )


def calculate_price_estimate(ranked: RankedResultSet) -> PriceEstimate:
    """Estimate from every non-visual-match listing in the ranked set."""
    return summarize_prices(ranked.marketplace_listings())


def evidence_listings(ranked: RankedResultSet, limit: Optional[int] = None) -> list[MarketplaceListing]:
    """The priced listings the estimate was built from, capped for storage."""
    cap = limit if limit is not None else config.EVIDENCE_LIMIT
    return priced(ranked.marketplace_listings())[:cap]

"""
Abstract base for all marketplace price sources.

Every source must turn its own response format into the same listing
contract — {title, price, url} — and the rest of the pipeline doesn't care
which marketplace produced a listing.

Contract rules (enforced by make_listing):
  • price is a non-negative number, or absent (absent → 0, i.e. no evidence)
  • title is a non-empty string
  • anything else means the source answered with garbage → MalformedResponse,
    and the whole source counts as failed
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from errors import MalformedResponse


@dataclass(frozen=True)
class MarketplaceListing:
    source_name: str
    title: str
    price: Decimal
    url: str

    def __post_init__(self) -> None:
        price = to_price(self.price)
        if price is None or price < 0:
            raise ValueError(f"listing price must be a non-negative number, got {self.price!r}")
        object.__setattr__(self, "price", price)

    def to_dict(self) -> dict:
        return {
            "source": self.source_name,
            "title": self.title,
            "price": float(self.price),
            "url": self.url,
        }


@dataclass(frozen=True)
class MarketplaceSourceResult:
    source_name: str
    listings: tuple[MarketplaceListing, ...] = ()
    status_label: str = ""          # what the call was logged with

    def __post_init__(self) -> None:
        object.__setattr__(self, "listings", tuple(self.listings))

    def __len__(self) -> int:
        return len(self.listings)


@dataclass
class SourcePage:
    """What one successful source call returns to the fetcher."""
    status: int
    request_url: str
    listings: list[MarketplaceListing] = field(default_factory=list)


class MarketplaceSource(ABC):
    """All marketplace sources implement this interface."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Marketplace name shown in results, e.g. "eBay"."""
        ...

    @property
    def log_name(self) -> str:
        """Name written to the API call log."""
        return f"{self.name} API"

    @abstractmethod
    def request_url(self, keywords: str) -> str:
        """The search URL for keywords (no secrets) — used for call logging."""
        ...

    @abstractmethod
    async def search(self, keywords: str) -> SourcePage:
        """
        Search the marketplace for keywords.
        Raises MarketplaceSourceError (or subclasses) on any failure.
        """
        ...


# ── Helpers ────────────────────────────────────────────────────────────────────

def to_price(value: Any) -> Optional[Decimal]:
    """Decimal for int/float/Decimal/numeric strings; None otherwise. bools are not prices."""
    if isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, (int, float)):
        value = str(value)
    if isinstance(value, str):
        try:
            d = Decimal(value.strip())
        except InvalidOperation:
            return None
        return d if d.is_finite() else None
    return None


def make_listing(
    source_name: str,
    title: Any,
    price: Any,
    url: Any,
    request_url: Optional[str] = None,
) -> MarketplaceListing:
    """Validate one raw item against the listing contract."""
    if not isinstance(title, str) or not title.strip():
        raise MalformedResponse(
            f"{source_name}: listing without a title", "malformed", request_url
        )
    if not isinstance(url, str) or not url.strip():
        raise MalformedResponse(
            f"{source_name}: listing '{title[:40]}' without a url", "malformed", request_url
        )

    if price is None:
        amount = Decimal(0)
    else:
        amount = to_price(price)
        if amount is None or amount < 0:
            raise MalformedResponse(
                f"{source_name}: invalid price {price!r} for '{title[:40]}'", "malformed", request_url
            )

    return MarketplaceListing(
        source_name=source_name, title=title.strip(), price=amount, url=url.strip()
    )

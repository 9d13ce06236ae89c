"""
ranking.py — merge visual matches and marketplace listings into tiers.

  tier 1  visual matches (found from the image itself)
  tier 2  keyword-search marketplace listings, one group per source

Tier is the only ordering guarantee; inside a tier each source keeps its
own order.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterator, Sequence, Union

from marketplaces.base import MarketplaceListing, MarketplaceSourceResult
from recognition.base import VisualMatch

VISUAL_MATCH_TIER = 1
MARKETPLACE_TIER = 2

VISUAL_MATCH_GROUP_NAME = "Visual Matches from Image Analysis"
MAX_VISUAL_MATCHES = 15


@dataclass(frozen=True)
class VisualMatchListing:
    """A visual match shown as a listing. Its price is unknown, carried as 0."""
    title: str
    url: str
    match_score: float
    price: Decimal = Decimal(0)
    source_name: str = VISUAL_MATCH_GROUP_NAME
    is_visual_match: bool = True

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "price": float(self.price),
            "url": self.url,
            "isVisualMatch": True,
            "matchScore": self.match_score,
        }


RankedListing = Union[MarketplaceListing, VisualMatchListing]


@dataclass(frozen=True)
class RankedGroup:
    tier: int
    is_visual_match: bool
    source_name: str
    listings: tuple[RankedListing, ...]

    def to_dict(self) -> dict:
        return {
            "name": self.source_name,
            "priority": self.tier,
            "isVisualMatch": self.is_visual_match,
            "listings": [l.to_dict() for l in self.listings],
        }


@dataclass(frozen=True)
class RankedResultSet:
    groups: tuple[RankedGroup, ...] = ()

    def __iter__(self) -> Iterator[RankedGroup]:
        return iter(self.groups)

    def __len__(self) -> int:
        return len(self.groups)

    def __getitem__(self, index: int) -> RankedGroup:
        return self.groups[index]

    @property
    def visual_match_groups(self) -> list[RankedGroup]:
        return [g for g in self.groups if g.is_visual_match]

    @property
    def marketplace_groups(self) -> list[RankedGroup]:
        return [g for g in self.groups if not g.is_visual_match]

    @property
    def visual_match_count(self) -> int:
        return sum(len(g.listings) for g in self.visual_match_groups)

    def marketplace_listings(self) -> list[MarketplaceListing]:
        """All non-visual listings, tier by tier, source order preserved."""
        return [l for g in self.marketplace_groups for l in g.listings]

    def to_dict(self) -> list[dict]:
        return [g.to_dict() for g in self.groups]


def visual_match_listings(visual_matches: Sequence[VisualMatch]) -> list[VisualMatchListing]:
    """Matches with both url and title, at most 15, as zero-price listings."""
    return [
        VisualMatchListing(title=m.title, url=m.url, match_score=m.score)
        for m in visual_matches
        if m.url and m.title
    ][:MAX_VISUAL_MATCHES]


def merge_results(
    visual_matches: Sequence[VisualMatch],
    marketplace_results: Sequence[MarketplaceSourceResult],
) -> RankedResultSet:
    """Visual-match group first (when any survive filtering), then one tier-2 group per source."""
    groups: list[RankedGroup] = []

    vm_listings = visual_match_listings(visual_matches or ())
    if vm_listings:
        groups.append(RankedGroup(
            tier=VISUAL_MATCH_TIER,
            is_visual_match=True,
            source_name=VISUAL_MATCH_GROUP_NAME,
            listings=tuple(vm_listings),
        ))

    for result in marketplace_results or ():
        groups.append(RankedGroup(
            tier=MARKETPLACE_TIER,
            is_visual_match=False,
            source_name=result.source_name,
            listings=tuple(result.listings),
        ))

    # Stable: equal tiers keep their incoming order
    groups.sort(key=lambda g: g.tier)
    return RankedResultSet(groups=tuple(groups))

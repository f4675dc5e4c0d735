"""
Tier resolution for access-bot.

Shopify product titles drift with seasonal naming, so each tier is matched by
a stable marker substring rather than by exact title. Tiers are ranked: the
first configured tier any title matches wins.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime

from .config import TierConfig
from .models import PurchaseLineItem, parse_timestamp


def normalize(text: str | None) -> str:
    return (text or "").strip().lower()


@dataclass(frozen=True)
class TierDefinition:
    """A tier: product match key and the role it grants."""

    product_match_key: str
    role_name: str

    def matches(self, title: str | None) -> bool:
        """True if the title contains this tier's match key."""
        return normalize(self.product_match_key) in normalize(title)


class TierResolver:
    """Maps purchased product titles onto the single highest tier."""

    def __init__(self, tiers: Iterable[TierDefinition]):
        self.tiers: tuple[TierDefinition, ...] = tuple(tiers)

    @classmethod
    def from_config(cls, tiers: Iterable[TierConfig]) -> "TierResolver":
        return cls(TierDefinition(t.product, t.role) for t in tiers)

    @property
    def role_names(self) -> list[str]:
        """Every configured tier role name, highest priority first."""
        names: list[str] = []
        for tier in self.tiers:
            if tier.role_name not in names:
                names.append(tier.role_name)
        return names

    def resolve(self, titles: Sequence[str]) -> TierDefinition | None:
        """Return the highest-priority tier any title matches, or None."""
        norm_titles = [normalize(t) for t in titles]
        if not norm_titles:
            return None
        for tier in self.tiers:
            key = normalize(tier.product_match_key)
            if any(key in title for title in norm_titles):
                return tier
        return None

    def is_subscription_for(
        self,
        line_items: Iterable[PurchaseLineItem],
        tier: TierDefinition,
    ) -> bool:
        """True if a line item matching this tier is a subscription."""
        return any(li.is_subscription and tier.matches(li.title) for li in line_items)

    def last_paid_at_for(
        self,
        line_items: Iterable[PurchaseLineItem],
        tier: TierDefinition,
    ) -> datetime | None:
        """
        Newest payment time among line items matching this tier.

        Scoped to the tier so an unrelated one-time purchase cannot reset a
        subscription's audit clock. Unparseable timestamps are ignored.
        """
        paid = [
            parse_timestamp(li.paid_at)
            for li in line_items
            if tier.matches(li.title)
        ]
        paid = [p for p in paid if p is not None]
        return max(paid) if paid else None

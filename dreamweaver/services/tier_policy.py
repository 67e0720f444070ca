"""Subscription tier policy table for video generation quotas."""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Optional

TIER_FREE = 'free'
TIER_PREMIUM = 'premium'
TIER_PREMIUM_PLUS = 'premium_plus'
KNOWN_TIERS = (TIER_FREE, TIER_PREMIUM, TIER_PREMIUM_PLUS)


@dataclass(frozen=True)
class TierPolicy:
    daily_video_limit: int
    max_clip_seconds: int
    # None means the tier is metered per day only.
    lifetime_video_limit: Optional[int] = None

    @property
    def uses_lifetime_cap(self):
        return self.lifetime_video_limit is not None


DEFAULT_TIER_POLICIES: Mapping[str, TierPolicy] = MappingProxyType({
    TIER_FREE: TierPolicy(daily_video_limit=0, max_clip_seconds=15, lifetime_video_limit=1),
    TIER_PREMIUM: TierPolicy(daily_video_limit=3, max_clip_seconds=20),
    TIER_PREMIUM_PLUS: TierPolicy(daily_video_limit=8, max_clip_seconds=30),
})


def normalize_tier(raw_tier):
    tier = str(raw_tier or '').strip().lower()
    return tier if tier in KNOWN_TIERS else TIER_FREE


def resolve_tier(stored_tier, hinted_tier):
    """Prefer the tier stored on the profile; fall back to the caller's hint."""
    stored = str(stored_tier or '').strip().lower()
    if stored in KNOWN_TIERS:
        return stored
    return normalize_tier(hinted_tier)


def get_tier_policy(tier, policies=None) -> TierPolicy:
    table = policies if policies is not None else DEFAULT_TIER_POLICIES
    key = normalize_tier(tier)
    if key not in table:
        raise KeyError(f"No quota policy configured for tier '{key}'")
    return table[key]

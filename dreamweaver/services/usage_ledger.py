"""Read/normalize helpers for the per-user usage ledger.

The ledger lives on the ``users/{uid}`` profile document, split across two
maps the mobile client also reads::

    dailyUsage:        {videos, dreams, lastReset}
    analyticsSummary:  {totalVideos, totalDreams, lastActive}

Stored values are not trusted: counters may be missing, negative or of the
wrong type, and ``lastReset`` may be a Firestore timestamp, a naive datetime or
epoch seconds. Everything funnels through ``normalize_ledger`` before any quota
arithmetic happens.
"""

from dataclasses import dataclass, replace
from datetime import date, datetime, timezone

FIELD_TIER = 'subscriptionStatus'
FIELD_DAILY_USAGE = 'dailyUsage'
FIELD_ANALYTICS = 'analyticsSummary'

DAILY_VIDEOS = 'videos'
DAILY_DREAMS = 'dreams'
DAILY_LAST_RESET = 'lastReset'
TOTAL_VIDEOS = 'totalVideos'
TOTAL_DREAMS = 'totalDreams'
LAST_ACTIVE = 'lastActive'


def field_path(*parts):
    return '.'.join(parts)


PATH_DAILY_VIDEOS = field_path(FIELD_DAILY_USAGE, DAILY_VIDEOS)
PATH_DAILY_DREAMS = field_path(FIELD_DAILY_USAGE, DAILY_DREAMS)
PATH_LAST_RESET = field_path(FIELD_DAILY_USAGE, DAILY_LAST_RESET)
PATH_TOTAL_VIDEOS = field_path(FIELD_ANALYTICS, TOTAL_VIDEOS)
PATH_TOTAL_DREAMS = field_path(FIELD_ANALYTICS, TOTAL_DREAMS)
PATH_LAST_ACTIVE = field_path(FIELD_ANALYTICS, LAST_ACTIVE)


@dataclass(frozen=True)
class UsageLedger:
    tier: str
    videos_today: int
    dreams_today: int
    last_reset: datetime
    total_videos: int
    total_dreams: int
    # False when the stored lastReset was missing or unreadable.
    reset_recorded: bool = True


def utc_now():
    return datetime.now(timezone.utc)


def coerce_count(value):
    if isinstance(value, bool):
        return 0
    try:
        count = int(value)
    except (TypeError, ValueError, OverflowError):
        return 0
    return max(0, count)


def coerce_utc_datetime(value, default=None):
    """Return ``value`` as an aware UTC datetime, or ``default`` if unusable."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(float(value), tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return default
    return default


def utc_day(instant) -> date:
    return coerce_utc_datetime(instant).date()


def start_of_utc_day(instant):
    day = utc_day(instant)
    return datetime(day.year, day.month, day.day, tzinfo=timezone.utc)


def needs_rollover(last_reset, now):
    return utc_day(last_reset) != utc_day(now)


def _as_map(value):
    return value if isinstance(value, dict) else {}


def normalize_ledger(data, now, tier=''):
    data = _as_map(data)
    usage = _as_map(data.get(FIELD_DAILY_USAGE))
    analytics = _as_map(data.get(FIELD_ANALYTICS))
    stored_reset = coerce_utc_datetime(usage.get(DAILY_LAST_RESET))
    return UsageLedger(
        tier=str(tier or data.get(FIELD_TIER) or ''),
        videos_today=coerce_count(usage.get(DAILY_VIDEOS)),
        dreams_today=coerce_count(usage.get(DAILY_DREAMS)),
        last_reset=stored_reset or coerce_utc_datetime(now),
        total_videos=coerce_count(analytics.get(TOTAL_VIDEOS)),
        total_dreams=coerce_count(analytics.get(TOTAL_DREAMS)),
        reset_recorded=stored_reset is not None,
    )


def anchor_new_window(ledger, now):
    return replace(
        ledger,
        videos_today=0,
        dreams_today=0,
        last_reset=coerce_utc_datetime(now),
        reset_recorded=True,
    )


def apply_rollover(ledger, now):
    """Return ``(ledger, rolled_over)`` with daily counters zeroed on a new UTC day."""
    if not needs_rollover(ledger.last_reset, now):
        return ledger, False
    return anchor_new_window(ledger, now), True


def rollover_updates(ledger):
    return {
        PATH_DAILY_VIDEOS: ledger.videos_today,
        PATH_DAILY_DREAMS: ledger.dreams_today,
        PATH_LAST_RESET: ledger.last_reset,
    }


def default_daily_usage(now):
    return {DAILY_VIDEOS: 0, DAILY_DREAMS: 0, DAILY_LAST_RESET: coerce_utc_datetime(now)}


def default_analytics_summary(now):
    return {TOTAL_VIDEOS: 0, TOTAL_DREAMS: 0, LAST_ACTIVE: coerce_utc_datetime(now), 'conversionDate': None}

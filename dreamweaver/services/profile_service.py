"""Profile provisioning and read-only usage summaries."""

from google.api_core import exceptions as google_exceptions

from dreamweaver.logging_config import get_logger
from dreamweaver.repositories import users_repo
from dreamweaver.services import tier_policy, usage_ledger
from dreamweaver.services.quota_service import ProfileMissing

DEFAULT_LANGUAGE = 'en'


def build_default_profile(uid, email, now, tier=tier_policy.TIER_FREE, language=DEFAULT_LANGUAGE):
    return {
        'userId': uid,
        'email': str(email or ''),
        'createdAt': now,
        'preferences': {
            'theme': 'system',
            'voiceStyle': 'default',
            'language': language,
        },
        usage_ledger.FIELD_TIER: tier_policy.normalize_tier(tier),
        usage_ledger.FIELD_DAILY_USAGE: usage_ledger.default_daily_usage(now),
        'language': language,
        usage_ledger.FIELD_ANALYTICS: usage_ledger.default_analytics_summary(now),
    }


def _backfill_updates(data, email, now):
    updates = {}
    if email and data.get('email') != email:
        updates['email'] = email
    if str(data.get(usage_ledger.FIELD_TIER) or '').strip().lower() not in tier_policy.KNOWN_TIERS:
        updates[usage_ledger.FIELD_TIER] = tier_policy.TIER_FREE

    usage = data.get(usage_ledger.FIELD_DAILY_USAGE)
    if not isinstance(usage, dict):
        updates[usage_ledger.FIELD_DAILY_USAGE] = usage_ledger.default_daily_usage(now)
    else:
        for key, value in usage_ledger.default_daily_usage(now).items():
            if key not in usage:
                updates[usage_ledger.field_path(usage_ledger.FIELD_DAILY_USAGE, key)] = value

    analytics = data.get(usage_ledger.FIELD_ANALYTICS)
    if not isinstance(analytics, dict):
        updates[usage_ledger.FIELD_ANALYTICS] = usage_ledger.default_analytics_summary(now)
    else:
        for key in (usage_ledger.TOTAL_VIDEOS, usage_ledger.TOTAL_DREAMS):
            if key not in analytics:
                updates[usage_ledger.field_path(usage_ledger.FIELD_ANALYTICS, key)] = 0
    return updates


def ensure_user_profile(uid, email='', *, db, now=None, logger=None):
    """Get a user's profile, creating it with a zeroed usage ledger if missing."""
    logger = logger or get_logger()
    uid = str(uid or '').strip()
    if not uid:
        raise ValueError('uid is required')
    now = usage_ledger.coerce_utc_datetime(now) or usage_ledger.utc_now()

    snapshot = users_repo.get_doc(db, uid)
    if not snapshot.exists:
        profile = build_default_profile(uid, email, now)
        try:
            users_repo.create_doc(db, uid, profile)
            logger.info(f"New user profile created: {uid}")
            return profile
        except google_exceptions.AlreadyExists:
            # Another sign-in created it first.
            snapshot = users_repo.get_doc(db, uid)

    data = snapshot.to_dict() or {}
    updates = _backfill_updates(data, email, now)
    if updates:
        users_repo.update_doc(db, uid, updates)
        snapshot = users_repo.get_doc(db, uid)
        data = snapshot.to_dict() or {}
    return data


def get_usage_summary(uid, *, db, now=None, policies=None):
    """Usage as the client should display it right now. Never writes."""
    now = usage_ledger.coerce_utc_datetime(now) or usage_ledger.utc_now()
    snapshot = users_repo.get_doc(db, uid)
    if not snapshot.exists:
        raise ProfileMissing(uid)
    data = snapshot.to_dict() or {}
    tier = tier_policy.normalize_tier(data.get(usage_ledger.FIELD_TIER))
    policy = tier_policy.get_tier_policy(tier, policies)
    ledger, _ = usage_ledger.apply_rollover(usage_ledger.normalize_ledger(data, now, tier=tier), now)

    if policy.uses_lifetime_cap:
        free_available = ledger.total_videos < policy.lifetime_video_limit
        remaining = 0
    else:
        free_available = False
        remaining = max(policy.daily_video_limit - ledger.videos_today, 0)

    return {
        'tier': tier,
        'videosToday': ledger.videos_today,
        'dreamsToday': ledger.dreams_today,
        'dailyVideoLimit': policy.daily_video_limit,
        'remainingToday': remaining,
        'maxClipSeconds': policy.max_clip_seconds,
        'freeVideoAvailable': free_available,
        'totalVideos': ledger.total_videos,
        'totalDreams': ledger.total_dreams,
        'lastReset': ledger.last_reset.isoformat(),
    }

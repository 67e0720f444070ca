"""Transactional quota gate for metered video generation and dream counting.

Both operations run as a Firestore read-modify-write transaction on the
user's profile document. The store serializes concurrent transactions on the
same document: a losing attempt fails its commit with ``Aborted`` and the
``transactional`` decorator re-runs it against a fresh snapshot, so the gate
never relies on application-level locks. Policy denials are returned as
``Decision`` values; only infrastructure failures raise.
"""

import logging
from dataclasses import dataclass

from google.api_core import exceptions as google_exceptions

from dreamweaver.logging_config import get_logger, log_event
from dreamweaver.repositories import users_repo
from dreamweaver.services import tier_policy, usage_ledger

REASON_OK = 'ok'
REASON_PROFILE_MISSING = 'profile_missing'
REASON_FREE_LIFETIME_LIMIT = 'free_lifetime_limit'
REASON_DAILY_LIMIT = 'daily_limit'

DEFAULT_MAX_ATTEMPTS = 5


class UsageMeteringError(Exception):
    """Base class for infrastructure failures in usage metering."""


class ProfileMissing(UsageMeteringError):
    def __init__(self, uid):
        super().__init__(f"No profile document for user '{uid}'")
        self.uid = uid


class TransientStoreConflict(UsageMeteringError):
    """Retry budget exhausted under contention; callers should try again."""

    retryable = True


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str
    max_clip_seconds: int = 0
    remaining_today: int = 0
    tier: str = tier_policy.TIER_FREE

    def to_dict(self):
        return {
            'allowed': self.allowed,
            'reason': self.reason,
            'maxClipSeconds': self.max_clip_seconds,
            'remainingToday': self.remaining_today,
            'tier': self.tier,
        }


def _open_day_window(ledger, now):
    """Apply rollover and return ``(ledger, staged_updates)``.

    A detected rollover is always staged, whatever the request outcome, since
    it records the passing of a day rather than this request's eligibility.
    """
    ledger, rolled_over = usage_ledger.apply_rollover(ledger, now)
    if rolled_over:
        return ledger, usage_ledger.rollover_updates(ledger)
    return ledger, {}


def _stage_counted_write(ledger, updates, now):
    """Common fields for a write that consumes or counts something.

    A ledger with no stored lastReset gets its window anchored here, so a
    denial alone never writes it.
    """
    if not ledger.reset_recorded:
        updates[usage_ledger.PATH_LAST_RESET] = ledger.last_reset
    updates[usage_ledger.PATH_LAST_ACTIVE] = now
    return updates


def decide_video_slot(ledger, policy, now):
    """Pure gate decision. Returns ``(Decision, updates)``; empty updates mean no write."""
    ledger, updates = _open_day_window(ledger, now)
    tier = ledger.tier

    if policy.uses_lifetime_cap:
        if ledger.total_videos >= policy.lifetime_video_limit:
            return Decision(False, REASON_FREE_LIFETIME_LIMIT, 0, 0, tier), updates
        updates[usage_ledger.PATH_TOTAL_VIDEOS] = ledger.total_videos + 1
        _stage_counted_write(ledger, updates, now)
        return Decision(True, REASON_OK, policy.max_clip_seconds, 0, tier), updates

    limit = policy.daily_video_limit
    if ledger.videos_today >= limit:
        return Decision(False, REASON_DAILY_LIMIT, policy.max_clip_seconds, 0, tier), updates

    videos_after = ledger.videos_today + 1
    updates[usage_ledger.PATH_DAILY_VIDEOS] = videos_after
    updates[usage_ledger.PATH_TOTAL_VIDEOS] = ledger.total_videos + 1
    _stage_counted_write(ledger, updates, now)
    remaining = min(max(limit - videos_after, 0), limit)
    return Decision(True, REASON_OK, policy.max_clip_seconds, remaining, tier), updates


def decide_dream_count(ledger, now):
    ledger, updates = _open_day_window(ledger, now)
    updates[usage_ledger.PATH_DAILY_DREAMS] = ledger.dreams_today + 1
    updates[usage_ledger.PATH_TOTAL_DREAMS] = ledger.total_dreams + 1
    return _stage_counted_write(ledger, updates, now)


def run_transaction(db, transactional_fn, max_attempts=DEFAULT_MAX_ATTEMPTS):
    """Run a ``@transactional`` function, mapping contention to ``TransientStoreConflict``."""
    transaction = db.transaction(max_attempts=max_attempts)
    try:
        return transactional_fn(transaction)
    except google_exceptions.Aborted as exc:
        raise TransientStoreConflict('Transaction aborted by a concurrent writer') from exc
    except ValueError as exc:
        # google-cloud-firestore signals an exhausted retry budget with a
        # ValueError chained to the last Aborted commit.
        if isinstance(exc.__cause__, google_exceptions.Aborted):
            raise TransientStoreConflict(str(exc)) from exc
        raise


def _resolve_now(now):
    return usage_ledger.coerce_utc_datetime(now) or usage_ledger.utc_now()


def check_and_consume_video_slot(
    uid,
    tier,
    *,
    db,
    firestore_module,
    now=None,
    policies=None,
    max_attempts=DEFAULT_MAX_ATTEMPTS,
    logger=None,
):
    """Atomically decide whether ``uid`` may generate a video and reserve the slot.

    ``tier`` is the caller's hint; a known tier stored on the profile takes
    precedence. Raises ``TransientStoreConflict`` when contention exhausts the
    transaction retry budget.
    """
    uid = str(uid or '').strip()
    if not uid:
        raise ValueError('uid is required')
    now = _resolve_now(now)
    logger = logger or get_logger()
    user_ref = users_repo.doc_ref(db, uid)

    @firestore_module.transactional
    def _consume_in_transaction(transaction):
        snapshot = user_ref.get(transaction=transaction)
        if not snapshot.exists:
            return Decision(False, REASON_PROFILE_MISSING, 0, 0, tier_policy.normalize_tier(tier))
        data = snapshot.to_dict() or {}
        resolved_tier = tier_policy.resolve_tier(data.get(usage_ledger.FIELD_TIER), tier)
        ledger = usage_ledger.normalize_ledger(data, now, tier=resolved_tier)
        policy = tier_policy.get_tier_policy(resolved_tier, policies)
        decision, updates = decide_video_slot(ledger, policy, now)
        if updates:
            transaction.update(user_ref, updates)
        return decision

    try:
        decision = run_transaction(db, _consume_in_transaction, max_attempts)
    except TransientStoreConflict:
        log_event(logging.WARNING, 'video_slot_conflict', logger=logger, uid=uid, tier=str(tier or ''))
        raise

    log_event(
        logging.INFO,
        'video_slot_decision',
        logger=logger,
        uid=uid,
        tier=decision.tier,
        allowed=decision.allowed,
        reason=decision.reason,
        remaining_today=decision.remaining_today,
    )
    return decision


def increment_dream_logged_counter(
    uid,
    *,
    db,
    firestore_module,
    now=None,
    max_attempts=DEFAULT_MAX_ATTEMPTS,
    logger=None,
):
    """Count a logged dream. Advisory: failures are logged, never raised.

    Returns True when the counters were written.
    """
    logger = logger or get_logger()
    uid = str(uid or '').strip()
    if not uid:
        logger.info("⚠️ Skipping dream count: missing uid")
        return False
    now = _resolve_now(now)
    user_ref = users_repo.doc_ref(db, uid)

    @firestore_module.transactional
    def _count_in_transaction(transaction):
        snapshot = user_ref.get(transaction=transaction)
        if not snapshot.exists:
            return False
        ledger = usage_ledger.normalize_ledger(snapshot.to_dict() or {}, now)
        transaction.update(user_ref, decide_dream_count(ledger, now))
        return True

    try:
        counted = run_transaction(db, _count_in_transaction, max_attempts)
    except Exception as exc:
        logger.info(f"❌ Failed to count dream for user {uid}: {exc}")
        return False

    if not counted:
        logger.info(f"⚠️ Dream not counted, no profile for user {uid}")
        return False
    log_event(logging.INFO, 'dream_counted', logger=logger, uid=uid)
    return True

"""Backstop sweep that zeroes daily usage left over from previous UTC days.

The quota gate already rolls ledgers over lazily on first use each day. This
sweep only tidies ledgers of users who have not been active yet today. Each
reset is its own transaction that re-checks the day boundary, so a ledger the
gate rolled over (and started counting) after the query ran is left alone.

Ledgers whose ``dailyUsage.lastReset`` is missing or not a timestamp never match
the stale query. ``include_unanchored`` adds a full-collection pass that zeroes
them and anchors their window at the sweep time.
"""

import logging
from datetime import datetime

from dreamweaver.logging_config import get_logger, log_event
from dreamweaver.repositories import users_repo
from dreamweaver.services import usage_ledger
from dreamweaver.services.quota_service import DEFAULT_MAX_ATTEMPTS, run_transaction


def has_reset_anchor(data):
    """True when the stale query can see this ledger (lastReset stored as a timestamp)."""
    usage = data.get(usage_ledger.FIELD_DAILY_USAGE)
    if not isinstance(usage, dict):
        return False
    return isinstance(usage.get(usage_ledger.DAILY_LAST_RESET), datetime)


def reset_ledger_if_stale(db, uid, *, firestore_module, now, max_attempts=DEFAULT_MAX_ATTEMPTS):
    user_ref = users_repo.doc_ref(db, uid)

    @firestore_module.transactional
    def _reset_in_transaction(transaction):
        snapshot = user_ref.get(transaction=transaction)
        if not snapshot.exists:
            return False
        ledger = usage_ledger.normalize_ledger(snapshot.to_dict() or {}, now)
        if ledger.reset_recorded:
            ledger, rolled_over = usage_ledger.apply_rollover(ledger, now)
            if not rolled_over:
                return False
        else:
            ledger = usage_ledger.anchor_new_window(ledger, now)
        transaction.update(user_ref, usage_ledger.rollover_updates(ledger))
        return True

    return run_transaction(db, _reset_in_transaction, max_attempts)


def _reset_each(db, docs, *, firestore_module, now, apply_changes, max_attempts, logger):
    scanned = 0
    reset = 0
    for doc in docs:
        scanned += 1
        if not apply_changes:
            continue
        try:
            if reset_ledger_if_stale(db, doc.id, firestore_module=firestore_module, now=now, max_attempts=max_attempts):
                reset += 1
        except Exception as exc:
            logger.info(f"Warning: could not reset daily usage for {doc.id}: {exc}")
    return scanned, reset


def reset_stale_daily_usage(
    db,
    *,
    firestore_module,
    now=None,
    apply_changes=True,
    include_unanchored=False,
    max_attempts=DEFAULT_MAX_ATTEMPTS,
    logger=None,
):
    """Return ``(scanned, reset)`` for ledgers whose lastReset predates today (UTC)."""
    logger = logger or get_logger()
    now = usage_ledger.coerce_utc_datetime(now) or usage_ledger.utc_now()
    cutoff = usage_ledger.start_of_utc_day(now)
    options = dict(
        firestore_module=firestore_module,
        now=now,
        apply_changes=apply_changes,
        max_attempts=max_attempts,
        logger=logger,
    )

    scanned, reset = _reset_each(db, users_repo.query_reset_before(db, usage_ledger.PATH_LAST_RESET, cutoff), **options)
    unanchored_scanned = unanchored_reset = 0
    if include_unanchored:
        unanchored_scanned, unanchored_reset = _reset_each(
            db, users_repo.stream_unanchored(db, has_reset_anchor), **options
        )

    log_event(
        logging.INFO,
        'daily_usage_sweep',
        logger=logger,
        cutoff=cutoff.isoformat(),
        scanned=scanned,
        reset=reset,
        unanchored_scanned=unanchored_scanned,
        unanchored_reset=unanchored_reset,
        applied=bool(apply_changes),
    )
    return scanned + unanchored_scanned, reset + unanchored_reset

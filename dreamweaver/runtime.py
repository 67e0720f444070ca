"""Process-wide runtime state, passed to API handlers as ``app_ctx``.

``extensions.init_extensions`` fills in the Firestore client at startup. The
wrappers below bind that state to the service functions so handlers only deal
with request data.
"""

from datetime import datetime, timezone

from firebase_admin import auth, firestore
from flask import jsonify

from dreamweaver.logging_config import get_logger
from dreamweaver.services import auth_service, profile_service, quota_service
from dreamweaver.services.quota_service import ProfileMissing, TransientStoreConflict

logger = get_logger()
db = None
firebase_init_error = ''
sentry_enabled = False
QUOTA_MAX_ATTEMPTS = quota_service.DEFAULT_MAX_ATTEMPTS


def utc_now():
    return datetime.now(timezone.utc)


def firebase_ready():
    return db is not None


def verify_firebase_token(request):
    return auth_service.verify_firebase_token(request, auth, logger)


def ensure_user_profile(uid, email=''):
    return profile_service.ensure_user_profile(uid, email, db=db, now=utc_now(), logger=logger)


def get_usage_summary(uid):
    return profile_service.get_usage_summary(uid, db=db, now=utc_now())


def check_and_consume_video_slot(uid, tier):
    return quota_service.check_and_consume_video_slot(
        uid,
        tier,
        db=db,
        firestore_module=firestore,
        now=utc_now(),
        max_attempts=QUOTA_MAX_ATTEMPTS,
        logger=logger,
    )


def increment_dream_logged_counter(uid):
    return quota_service.increment_dream_logged_counter(
        uid,
        db=db,
        firestore_module=firestore,
        now=utc_now(),
        max_attempts=QUOTA_MAX_ATTEMPTS,
        logger=logger,
    )

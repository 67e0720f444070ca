import json
import os

import firebase_admin
import sentry_sdk
from firebase_admin import credentials, firestore
from sentry_sdk.integrations.flask import FlaskIntegration

from dreamweaver import runtime


def load_firebase_credentials(config):
    if config.firebase_credentials_path and os.path.exists(config.firebase_credentials_path):
        return credentials.Certificate(config.firebase_credentials_path)
    if not config.firebase_credentials_json:
        raise ValueError("FIREBASE_CREDENTIALS is not set and firebase-credentials.json was not found.")
    return credentials.Certificate(json.loads(config.firebase_credentials_json))


def init_firebase(config):
    """Return ``(db, error)``; the service still boots without Firestore."""
    try:
        cred = load_firebase_credentials(config)
        if not firebase_admin._apps:
            firebase_admin.initialize_app(cred)
        return firestore.client(), ''
    except Exception as e:
        runtime.logger.info(f"⚠️ Firebase initialization skipped: {e}")
        return None, str(e)


def init_sentry(config):
    if not config.sentry_dsn:
        return False
    sentry_sdk.init(
        dsn=config.sentry_dsn,
        integrations=[FlaskIntegration()],
        traces_sample_rate=config.sentry_traces_sample_rate,
        send_default_pii=False,
        environment=config.environment,
        release=config.sentry_release,
    )
    return True


def init_extensions(app, config) -> None:
    runtime.db, runtime.firebase_init_error = init_firebase(config)
    runtime.sentry_enabled = init_sentry(config)
    runtime.QUOTA_MAX_ATTEMPTS = config.quota_max_attempts
    app.extensions.setdefault('dreamweaver', {})
    app.extensions['dreamweaver'].update({
        'firebase_ready': runtime.db is not None,
        'sentry_enabled': runtime.sentry_enabled,
    })

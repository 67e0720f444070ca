import os
import uuid

import sentry_sdk
from flask import Flask, g, request

from .config import load_config
from .extensions import init_extensions
from .logging_config import configure_logging


def _attach_request_context():
    request_id = str(request.headers.get('X-Request-ID', '') or '').strip()[:120] or uuid.uuid4().hex
    g.request_id = request_id
    from . import runtime

    if runtime.sentry_enabled:
        sentry_sdk.set_tag('request.id', request_id)
        sentry_sdk.set_tag('route.endpoint', request.endpoint or '')


def _attach_request_id(response):
    request_id = str(getattr(g, 'request_id', '') or '').strip()
    if request_id:
        response.headers['X-Request-ID'] = request_id
    return response


def create_app(config=None):
    """App factory: config, logging, Firebase/Sentry and blueprints."""
    config = config or load_config()
    configure_logging(config.log_level)

    app = Flask(__name__)
    app.secret_key = config.flask_secret_key or os.urandom(32).hex()
    init_extensions(app, config)
    app.before_request(_attach_request_context)
    app.after_request(_attach_request_id)

    from .blueprints import health_bp, usage_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(usage_bp)
    return app

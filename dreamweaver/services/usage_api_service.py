"""Business logic handlers for the usage APIs.

Policy denials are part of the normal 200 response body; only authentication,
store availability and contention map to error statuses.
"""

RETRY_AFTER_SECONDS = 1


def build_retryable_response(app_ctx, message):
    response = app_ctx.jsonify({
        'error': message,
        'retryable': True,
        'retry_after_seconds': RETRY_AFTER_SECONDS,
    })
    response.status_code = 503
    response.headers['Retry-After'] = str(RETRY_AFTER_SECONDS)
    return response


def _authenticate(app_ctx, request):
    decoded_token = app_ctx.verify_firebase_token(request)
    if not decoded_token:
        return None, (app_ctx.jsonify({'error': 'Unauthorized'}), 401)
    if not app_ctx.firebase_ready():
        return None, (app_ctx.jsonify({'error': 'Usage store unavailable'}), 503)
    return decoded_token, None


def ensure_profile(app_ctx, request):
    decoded_token, error_response = _authenticate(app_ctx, request)
    if error_response:
        return error_response
    uid = decoded_token['uid']
    try:
        app_ctx.ensure_user_profile(uid, decoded_token.get('email', ''))
        return app_ctx.jsonify({'ok': True, 'usage': app_ctx.get_usage_summary(uid)})
    except Exception as e:
        app_ctx.logger.info(f"Error provisioning profile for user {uid}: {e}")
        return app_ctx.jsonify({'error': 'Could not set up profile'}), 500


def get_usage(app_ctx, request):
    decoded_token, error_response = _authenticate(app_ctx, request)
    if error_response:
        return error_response
    uid = decoded_token['uid']
    try:
        return app_ctx.jsonify(app_ctx.get_usage_summary(uid))
    except app_ctx.ProfileMissing:
        return app_ctx.jsonify({'error': 'Profile not found', 'reason': 'profile_missing'}), 404
    except Exception as e:
        app_ctx.logger.info(f"Error fetching usage for user {uid}: {e}")
        return app_ctx.jsonify({'error': 'Could not fetch usage'}), 500


def consume_video_slot(app_ctx, request):
    decoded_token, error_response = _authenticate(app_ctx, request)
    if error_response:
        return error_response
    uid = decoded_token['uid']
    payload = request.get_json(silent=True) or {}
    tier = str(payload.get('tier', '') or '').strip()[:32]
    try:
        decision = app_ctx.check_and_consume_video_slot(uid, tier)
    except app_ctx.TransientStoreConflict:
        return build_retryable_response(app_ctx, 'Usage check is busy. Please try again.')
    except Exception as e:
        app_ctx.logger.error(f"Error checking video quota for user {uid}: {e}")
        return app_ctx.jsonify({'error': 'Could not check video quota'}), 500
    return app_ctx.jsonify(decision.to_dict())


def count_dream(app_ctx, request):
    decoded_token, error_response = _authenticate(app_ctx, request)
    if error_response:
        return error_response
    counted = app_ctx.increment_dream_logged_counter(decoded_token['uid'])
    return app_ctx.jsonify({'ok': True, 'counted': bool(counted)})

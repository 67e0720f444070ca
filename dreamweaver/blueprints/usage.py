from flask import Blueprint, request

from dreamweaver import runtime
from dreamweaver.services import usage_api_service

usage_bp = Blueprint('usage_api', __name__)


@usage_bp.route('/api/profile', methods=['POST'])
def ensure_profile():
    return usage_api_service.ensure_profile(runtime, request)


@usage_bp.route('/api/usage', methods=['GET'])
def get_usage():
    return usage_api_service.get_usage(runtime, request)


@usage_bp.route('/api/usage/video-slot', methods=['POST'])
def consume_video_slot():
    return usage_api_service.consume_video_slot(runtime, request)


@usage_bp.route('/api/usage/dream', methods=['POST'])
def count_dream():
    return usage_api_service.count_dream(runtime, request)

from flask import Blueprint, jsonify

from dreamweaver import runtime

health_bp = Blueprint('health', __name__)


@health_bp.route('/healthz', methods=['GET'])
def healthz():
    return jsonify({'ok': True, 'firebase_ready': runtime.firebase_ready()})

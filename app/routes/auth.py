from flask import Blueprint, request, jsonify, current_app
from app.utils.logger import get_logger

bp = Blueprint('auth', __name__)
logger = get_logger(__name__)


@bp.route('/login', methods=['POST'])
def login():
    """Login user"""
    try:
        data = request.get_json(silent=True) or {}

        if not data.get('email') or not data.get('password'):
            return jsonify({'error': 'Email and password are required'}), 400

        auth_service = current_app.extensions['matchscreen']['auth_service']
        result = auth_service.authenticate_user(data['email'], data['password'])

        if result.get('error'):
            return jsonify({'error': result['error']}), 401

        return jsonify({
            'access_token': result['access_token'],
            'user': {
                'id': result['user']['id'],
                'email': result['user']['email'],
                'name': f"{result['user']['first_name']} {result['user']['last_name']}",
                'role': result['user']['role']
            }
        }), 200

    except Exception as e:
        logger.error(f"Login error: {str(e)}")
        return jsonify({'error': 'Login failed'}), 500

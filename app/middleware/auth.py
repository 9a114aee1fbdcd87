from functools import wraps
from flask import request, jsonify
from app.utils.security import verify_token, Actor
from app.utils.logger import get_logger

logger = get_logger(__name__)


def require_auth(f):
    """Decorator to require authentication; passes the caller as current_user"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get('Authorization')

        if not auth_header:
            return jsonify({'error': 'Authorization header missing'}), 401

        parts = auth_header.split()
        if len(parts) != 2 or parts[0] != 'Bearer':
            return jsonify({'error': 'Invalid authorization header format'}), 401

        payload = verify_token(parts[1])
        if not payload:
            return jsonify({'error': 'Invalid or expired token'}), 401

        return f(current_user=Actor.from_token(payload), *args, **kwargs)

    return decorated_function


def require_role(allowed_roles):
    """Decorator to require specific roles"""
    def decorator(f):
        @wraps(f)
        def decorated_function(current_user: Actor, *args, **kwargs):
            if current_user.role not in allowed_roles:
                logger.warning(f"User {current_user.user_id} denied access to {request.path}")
                return jsonify({'error': 'Insufficient permissions'}), 403
            return f(current_user, *args, **kwargs)
        return decorated_function
    return decorator


def require_admin(f):
    """Decorator to require admin role"""
    return require_role(['admin'])(f)

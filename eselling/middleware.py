from flask import request, jsonify, abort
from flask_login import current_user
from functools import wraps
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import HTTPException
from eselling.extensions import db
from eselling.utils import wants_json_response
import logging
import re

logger = logging.getLogger(__name__)

# Exact API paths that never require login
LOGIN_WHITELIST = [
    '/api/register',
    '/api/login',
    '/api/logout',
    '/api/admin/login',
    '/api/admin/logout',
]

# Anonymous read access (GET/HEAD/OPTIONS)
PUBLIC_READ_PATTERNS = [
    re.compile(r'^/api/products$'),
    re.compile(r'^/api/products/\d+$'),
    re.compile(r'^/api/sellers/\d+$'),
    re.compile(r'^/api/sellers/\d+/products$'),
    re.compile(r'^/api/admin/gcash-settings$'),
]


def is_public_read_path(path: str) -> bool:
    return any(p.match(path) for p in PUBLIC_READ_PATTERNS)


def is_static_file(path):
    return path.startswith('/static/')


def setup_auth_middleware(app):

    @app.before_request
    def require_login():
        path = request.path
        method = request.method.upper()

        # Frontend shell pages and static files are public; the pages
        # themselves call the API.
        if is_static_file(path) or not path.startswith('/api/'):
            return None

        if path in LOGIN_WHITELIST:
            return None

        # Unrouted API paths answer 404/405 regardless of login
        if request.endpoint in (None, 'frontend.catch_all'):
            return None

        if method in ('GET', 'HEAD', 'OPTIONS') and is_public_read_path(path):
            return None

        if not current_user.is_authenticated:
            return jsonify({'error': 'Not logged in',
                            'login_required': True}), 401

        return None


def role_required(*allowed_roles):
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not current_user.is_authenticated:
                return jsonify({'error': 'Not logged in'}), 401

            if current_user.role not in allowed_roles:
                logger.warning(
                    "Principal %s attempted to access roles %s, "
                    "current role: %s",
                    current_user.get_id(),
                    allowed_roles,
                    current_user.role,
                )
                if wants_json_response():
                    return jsonify({'error': 'Insufficient permissions'}), 403
                abort(403)

            return f(*args, **kwargs)
        return decorated_function
    return decorator


def seller_required(verified=False):
    """Inject the signed-in customer's Seller profile as ``seller``."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not current_user.is_authenticated:
                return jsonify({'error': 'Not logged in'}), 401
            if current_user.role != 'CUSTOMER':
                return jsonify({'error': 'Insufficient permissions'}), 403

            seller = current_user.seller
            if seller is None or seller.deleted_at is not None:
                return jsonify({'error': 'Seller profile not found.'}), 404

            if verified and not (seller.is_verified and seller.is_active):
                logger.warning(
                    "Seller %s (status=%s active=%s) attempted %s",
                    seller.id,
                    seller.verification_status.value,
                    seller.is_active,
                    request.path,
                )
                return jsonify({
                    'error': 'Seller account is not verified or inactive.'
                }), 403

            kwargs['seller'] = seller
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def register_error_handlers(app):

    @app.errorhandler(IntegrityError)
    def handle_integrity_error(e):
        db.session.rollback()
        logger.warning("Integrity error on %s: %s", request.path, e.orig)
        return jsonify({'error': 'Conflicting or invalid data'}), 400

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        if not request.path.startswith('/api/'):
            return e
        return jsonify({'error': e.description}), e.code

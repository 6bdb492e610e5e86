"""Middleware for bearer-token authentication."""
from functools import wraps
from flask import g, request, current_app
from app.database import get_session
from app.models import AppUser
from app.exceptions import AuthenticationError


def load_current_user():
    """
    Load the caller into g (Flask's per-request global).

    Called before each request. Sets g.user, g.user_id and g.user_role when
    a valid 'Authorization: Bearer <token>' header names an active user.
    Invalid tokens leave the request anonymous; require_login rejects it.
    """
    g.user = None
    g.user_id = None
    g.user_role = None
    g.auth_error = None

    header = request.headers.get('Authorization', '')
    if not header.startswith('Bearer '):
        return

    from app.services.auth_service import decode_access_token
    try:
        user_id = decode_access_token(header[len('Bearer '):].strip())
    except AuthenticationError as e:
        g.auth_error = e.message
        return

    db_session = get_session()
    user = db_session.query(AppUser).filter_by(id=user_id, active=True).first()
    if user:
        g.user = user
        g.user_id = user.id
        g.user_role = user.role
    else:
        current_app.logger.warning(f"Token for unknown or inactive user {user_id}")
        g.auth_error = "Account not found or disabled"


def require_login(f):
    """
    Decorator: Require an authenticated caller.

    Raises AuthenticationError (401) if no valid bearer token was sent.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('user') is None:
            raise AuthenticationError(g.get('auth_error') or "Access denied. Please log in to continue.")
        return f(*args, **kwargs)
    return decorated_function

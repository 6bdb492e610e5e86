"""
Authentication service for API callers.

Bearer tokens are HS256 JWTs carrying the user id and role. The role in
the token is informational only; the role stored on the AppUser row is
what authorization checks use.
"""
from datetime import datetime, timedelta, timezone
import logging

import jwt
from flask import current_app
from sqlalchemy.exc import IntegrityError

from app.models import AppUser, UserRole
from app.exceptions import AuthenticationError, ValidationFailureError, BusinessLogicError

logger = logging.getLogger(__name__)


def issue_access_token(user, expires_hours=None):
    """
    Sign an access token for user.

    Returns:
        str: encoded JWT
    """
    hours = expires_hours or current_app.config.get('JWT_EXPIRES_HOURS', 24)
    now = datetime.now(timezone.utc)
    payload = {
        'sub': str(user.id),
        'role': user.role,
        'iat': now,
        'exp': now + timedelta(hours=hours),
    }
    return jwt.encode(
        payload,
        current_app.config['JWT_SECRET'],
        algorithm=current_app.config.get('JWT_ALGORITHM', 'HS256')
    )


def decode_access_token(token):
    """
    Verify a bearer token and return the user id it names.

    Raises:
        AuthenticationError: expired, tampered or malformed token
    """
    try:
        payload = jwt.decode(
            token,
            current_app.config['JWT_SECRET'],
            algorithms=[current_app.config.get('JWT_ALGORITHM', 'HS256')]
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Session expired. Please log in again.")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid authentication token")

    try:
        return int(payload['sub'])
    except (KeyError, TypeError, ValueError):
        raise AuthenticationError("Invalid authentication token")


def create_user(session, email, password, full_name=None, role=UserRole.SHOP_OWNER.value):
    """
    Create a platform account.

    Raises:
        ValidationFailureError: bad email/password/role
        BusinessLogicError: email already registered
    """
    email = (email or '').strip().lower()
    errors = []
    if not email or '@' not in email:
        errors.append('A valid email is required')
    if not password or len(password) < 6:
        errors.append('Password must be at least 6 characters')
    if role not in {r.value for r in UserRole}:
        errors.append('Role must be one of: ' + ', '.join(r.value for r in UserRole))
    if errors:
        raise ValidationFailureError(errors)

    if session.query(AppUser).filter_by(email=email).first():
        raise BusinessLogicError(f'A user with email {email} already exists', status_code=409)

    user = AppUser(email=email, full_name=full_name, role=role, active=True)
    user.set_password(password)
    session.add(user)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise BusinessLogicError(f'A user with email {email} already exists', status_code=409)

    logger.info(f"Created user {user.id} ({email}) with role {role}")
    return user


"""
Permission decorators for role-based access control.
Extends the basic require_login decorator with role checks.
"""

from functools import wraps
from flask import g

from app.exceptions import AuthenticationError, NotOwnerError


def require_role(*allowed_roles):
    """
    Decorator to restrict access to specific roles.

    Usage:
        @require_role('shopOwner')
        @require_role('shopOwner', 'admin')

    Args:
        *allowed_roles: Variable number of role strings (shopOwner, admin, customer)

    Returns:
        Decorator function
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            # Must be logged in
            if not g.get('user'):
                raise AuthenticationError(g.get('auth_error') or "Access denied. Please log in to continue.")

            user_role = g.get('user_role')
            if not user_role or user_role not in allowed_roles:
                raise NotOwnerError(
                    f"This action requires one of the roles: {', '.join(allowed_roles)}"
                )

            return f(*args, **kwargs)

        return decorated_function
    return decorator

"""
PLM Gate Workflow
Authentication collaborator.

Sign-in is handled by the hosted identity service in front of this API; it
forwards the signed-in user's id in the ``X-User-Id`` header. This module
resolves that id to a ``User`` row and provides the decorators blueprints
use to require a caller or a specific role.

Provides:
    - current_user(): the calling User or None
    - get_user(user_id): profile lookup by id
    - require_user: decorator, 401 when no active caller is identified
    - require_roles(*roles): decorator, 403 when the caller's role is not listed
"""

import functools
import logging

from flask import g, request

from plm.models import db
from plm.models.auth import User
from plm.utils.errors import E, api_error

logger = logging.getLogger(__name__)

USER_HEADER = "X-User-Id"


def get_user(user_id):
    """Return the User with *user_id*, or None."""
    if user_id is None:
        return None
    try:
        return db.session.get(User, int(user_id))
    except (TypeError, ValueError):
        return None


def current_user():
    """Resolve the calling user from the request header (cached on ``g``)."""
    raw_id = request.headers.get(USER_HEADER, "").strip() or None
    cached = g.get("_current_user")
    if cached is not None and cached[0] == raw_id:
        return cached[1]
    user = get_user(raw_id)
    if user is not None and not user.is_active:
        user = None
    # keyed on the header: g outlives the request when an app context is already pushed
    g._current_user = (raw_id, user)
    return user


def require_user(f):
    """Decorator: require an identified, active caller."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if current_user() is None:
            return api_error(E.UNAUTHENTICATED, f"Authentication required. Provide {USER_HEADER} header.")
        return f(*args, **kwargs)
    return decorated


def require_roles(*roles: str):
    """
    Decorator: require the caller to hold one of *roles*.

    Usage:
        @require_user
        @require_roles("branch_manager", "bu_director")
        def seed(): ...
    """
    allowed = frozenset(roles)

    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            user = current_user()
            if user is None:
                return api_error(E.UNAUTHENTICATED, "Authentication required")
            if user.role not in allowed:
                logger.warning(
                    "Access denied: role '%s' tried to access %s",
                    user.role, request.path,
                    extra={"user_id": user.id},
                )
                return api_error(E.FORBIDDEN, "Insufficient permissions")
            return f(*args, **kwargs)
        return decorated
    return decorator

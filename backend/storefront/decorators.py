# Overview: Request authentication decorators for API routes.

from dataclasses import dataclass
from functools import wraps

from flask import g, jsonify, request

from .services import auth_service, session_service


@dataclass(frozen=True)
class AuthContext:
    """Who is calling, resolved once per request."""
    user_id: int
    email: str
    is_admin: bool

    @property
    def actor_id(self) -> str:
        return str(self.user_id)


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def resolve_auth_context() -> AuthContext | None:
    """Build the AuthContext for the current request and store it in g.auth (None if anonymous)."""
    token = _bearer_token()
    user = session_service.validate_session(token) if token else None
    g.auth = AuthContext(
        user_id=user.id,
        email=user.email,
        is_admin=auth_service.is_admin(user.id),
    ) if user else None
    return g.auth


def require_auth(f):
    """
    Require a valid bearer token.

    Sets g.auth to an AuthContext; handlers read identity and admin rights
    from it instead of querying roles themselves.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if _bearer_token() is None:
            return jsonify({"error": "Authentication required"}), 401
        if resolve_auth_context() is None:
            return jsonify({"error": "Invalid or expired token"}), 401
        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """Require the authenticated user to hold the admin role. Use after @require_auth."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth = g.get("auth")
        if auth is None:
            return jsonify({"error": "Authentication required"}), 401
        if not auth.is_admin:
            return jsonify({"error": "Admin role required"}), 403
        return f(*args, **kwargs)

    return decorated_function


def optional_auth(f):
    """Resolve g.auth when a token is present; anonymous callers get g.auth = None."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        resolve_auth_context()
        return f(*args, **kwargs)

    return decorated_function

# Overview: Request and role decorators for API routes.

import hmac
from functools import wraps

from flask import current_app, g, jsonify, request

from .errors import ApprovalPending, AuthenticationFailed, RoleNotPermitted
from .services import session_service


def _error(exc):
    return jsonify(exc.to_dict()), exc.status_code


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1]


def _is_authenticated() -> bool:
    return hasattr(g, "current_user")


def _has_service_key() -> bool:
    expected = current_app.config.get("SERVICE_KEY") or ""
    provided = request.headers.get("X-Service-Key") or ""
    if not expected or not provided:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), provided.encode("utf-8"))


def require_auth(f):
    """
    Require a live session for an approved profile.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated Profile
    - g.session_token: The plaintext bearer token (for logout)

    Returns 401 for a missing/invalid/expired token and 403 when the account
    is awaiting approval.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if not token:
            return _error(AuthenticationFailed("Authentication required"))

        context = session_service.validate_session(token)
        if not context:
            return _error(AuthenticationFailed("Invalid or expired token"))

        user = context.user
        if not user.is_admin and not user.is_approved:
            return _error(ApprovalPending("Your account is pending approval"))

        g.current_user = user
        g.session_token = token
        return f(*args, **kwargs)

    return decorated_function


def require_role(role: str):
    """Require the authenticated profile to hold ``role`` (designation)."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return _error(AuthenticationFailed("Authentication required"))

            if g.current_user.designation != role:
                return _error(RoleNotPermitted(
                    f"This action requires the {role} role",
                    details={"required_role": role},
                ))

            return f(*args, **kwargs)
        return decorated_function
    return decorator


def require_privileged(f):
    """
    Require the privileged execution context: a valid X-Service-Key header,
    or a session belonging to an admin profile.

    g.privileged_via is "service_key" or "admin".
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if _has_service_key():
            g.privileged_via = "service_key"
            return f(*args, **kwargs)

        token = _bearer_token()
        context = session_service.validate_session(token) if token else None
        if not context:
            return _error(AuthenticationFailed("Authentication required"))

        if not context.user.is_admin:
            return _error(RoleNotPermitted("Administrator access required"))

        g.current_user = context.user
        g.session_token = token
        g.privileged_via = "admin"
        return f(*args, **kwargs)

    return decorated_function

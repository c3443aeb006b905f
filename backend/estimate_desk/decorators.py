# Overview: Request decorators for API routes (authentication and role guards).

from functools import wraps
from flask import request, g

from .errors import AuthenticationError, PermissionDenied
from .services import session_service
from .services.security_service import log_security_event


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    token = auth_header.split(" ", 1)[1].strip()
    return token or None


def require_auth(f):
    """
    Require a valid bearer session.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.current_role: The role captured when the session was created
    - g.session_token: The plaintext bearer token (for logout)

    SECURITY: Raises AuthenticationError (401) if:
    - No Authorization header
    - Invalid, expired or revoked token
    - User account deactivated or no longer approved
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if not token:
            raise AuthenticationError("No token, authorization denied")

        context = session_service.validate_session(token)
        if not context:
            raise AuthenticationError("Token is not valid")

        g.current_user = context.user
        g.current_role = context.role
        g.session_token = token

        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """
    Restrict a route to the given roles. Must be applied after @require_auth.

    Denials are written to the security event log.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not hasattr(g, "current_user"):
                raise AuthenticationError()

            role = g.current_role
            if role not in roles:
                log_security_event(
                    user_id=g.current_user.id,
                    event_type="ROLE_DENIED",
                    success=False,
                    reason=f"Role '{role}' not in {sorted(roles)}",
                )
                if roles == ("admin",):
                    raise PermissionDenied("Access denied. Admin only.")
                raise PermissionDenied("Access denied")

            return f(*args, **kwargs)

        return decorated_function
    return decorator

# Overview: Opaque bearer sessions (issue, validate, revoke).

"""
Bearer Sessions

Login hands the client a random 64-hex token. Only its SHA-256 digest is
stored, so a leaked sessions table cannot be replayed.

A session dies when any of these hold:
- it is older than SESSION_ABSOLUTE_TIMEOUT_HOURS
- it has been idle longer than SESSION_IDLE_TIMEOUT_HOURS
- it was revoked (logout, role change, deactivation)
- its user is inactive, or is a trader/admin who is no longer approved

The role is captured when the session is issued. Changing a user's role
revokes their sessions, so a captured role never outlives the change.
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SessionToken, User
from ..time_utils import utcnow


TOKEN_BYTES = 32


@dataclass
class SessionContext:
    user: User
    session: SessionToken
    role: str


def hash_token(token: str) -> str:
    # Tokens carry 256 bits of entropy; a plain digest is enough
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _hours(key: str, default: int) -> timedelta:
    return timedelta(hours=current_app.config.get(key, default))


def _live_session(token: str) -> SessionToken | None:
    return (
        db.session.query(SessionToken)
        .filter_by(token_hash=hash_token(token), is_revoked=False)
        .first()
    )


def _mark_revoked(session: SessionToken, reason: str, now) -> None:
    session.is_revoked = True
    session.revoked_at = now
    session.revoked_reason = reason


def create_session(user: User, user_agent: str | None = None, ip_address: str | None = None) -> tuple[SessionToken, str]:
    """
    Issue a session for user.

    Returns (session_row, plaintext_token). The plaintext is never stored.
    """
    token = secrets.token_hex(TOKEN_BYTES)
    now = utcnow()

    session = SessionToken(
        user_id=user.id,
        role=user.role,
        token_hash=hash_token(token),
        created_at=now,
        last_used_at=now,
        expires_at=now + _hours("SESSION_ABSOLUTE_TIMEOUT_HOURS", 24),
        user_agent=(user_agent or "")[:512] or None,
        ip_address=ip_address,
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()
    return session, token


def _rejection_reason(session: SessionToken, now) -> str | None:
    if now - session.last_used_at > _hours("SESSION_IDLE_TIMEOUT_HOURS", 2):
        return "Idle timeout"
    user = session.user
    if user is None or not user.is_active:
        return "User account deactivated"
    if not user.is_approved:
        return "User not approved"
    return None


def validate_session(token: str) -> SessionContext | None:
    """
    Resolve a bearer token to its user, or None.

    Sessions that fail a liveness check are revoked on the spot. A good
    session has last_used_at refreshed.
    """
    session = _live_session(token)
    if session is None:
        return None

    now = utcnow()
    if session.expires_at < now:
        return None

    reason = _rejection_reason(session, now)
    if reason:
        _mark_revoked(session, reason, now)
        db.session.commit()
        current_app.logger.info("Session %s revoked: %s", session.id, reason)
        return None

    session.last_used_at = now
    db.session.commit()
    return SessionContext(user=session.user, session=session, role=session.role)


def revoke_session(token: str, reason: str = "User logout") -> bool:
    """Revoke one session. False when no live session matches the token."""
    session = _live_session(token)
    if session is None:
        return False
    _mark_revoked(session, reason, utcnow())
    db.session.commit()
    return True


def revoke_all_user_sessions(user_id: int, reason: str = "Revoked by admin", *, commit: bool = True) -> int:
    """Revoke every live session of a user; returns how many were revoked."""
    now = utcnow()
    sessions = db.session.query(SessionToken).filter_by(user_id=user_id, is_revoked=False).all()
    for session in sessions:
        _mark_revoked(session, reason, now)
    if commit:
        db.session.commit()
    return len(sessions)

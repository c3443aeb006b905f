# Overview: Append-only security event logging.

from __future__ import annotations

from flask import current_app, has_request_context, request

from ..extensions import db
from ..models import SecurityEvent


def log_security_event(
    *,
    event_type: str,
    success: bool,
    user_id: int | None = None,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    commit: bool = True,
) -> SecurityEvent:
    """
    Record a security event.

    Request details (path, method, client address, user agent) are filled in
    from the active request when the caller does not pass them.
    """
    if has_request_context():
        resource = resource or request.path
        action = action or request.method
        ip_address = ip_address or request.remote_addr
        user_agent = user_agent or request.headers.get("User-Agent")

    event = SecurityEvent(
        user_id=user_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=(user_agent or "")[:512] or None,
    )
    db.session.add(event)
    if commit:
        db.session.commit()

    if not success:
        current_app.logger.warning(
            "Security event %s user=%s resource=%s reason=%s",
            event_type, user_id, resource, reason,
        )
    return event

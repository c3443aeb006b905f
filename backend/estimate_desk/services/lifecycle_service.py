# Overview: Service-layer operations for lifecycle; encapsulates business logic and database work.

"""
Estimate Lifecycle Service

================================================================================
PURPOSE: Enforce the estimate status state machine in one place
================================================================================

STATE MACHINE:
    draft -> sent -> viewed -> converted
      \\        \\        \\
       +--------+--------+--> expired

    draft:     Being prepared by the trader, not yet shown to the customer
    sent:      Shared with the customer (email, WhatsApp or print)
    viewed:    The customer opened it
    converted: Turned into an invoice (terminal)
    expired:   Withdrawn or lapsed by explicit action (terminal)

RULES:
1. Only the transitions in VALID_TRANSITIONS are allowed
2. sent -> converted is allowed (customer accepted without opening the link)
3. Writing the current status again is a no-op, so re-sending a sent
   estimate only refreshes sent_via
4. converted and expired are terminal
5. valid_till is informational; nothing expires an estimate automatically

Every status change (update, send, convert, expire, customer view) is
validated here before the row is written.
================================================================================
"""

from __future__ import annotations
from typing import Literal

from ..errors import ApiError
from ..models import Estimate, ESTIMATE_STATUSES
from ..time_utils import utcnow


VALID_STATUSES = set(ESTIMATE_STATUSES)
EstimateStatus = Literal["draft", "sent", "viewed", "converted", "expired"]
TERMINAL_STATUSES = {"converted", "expired"}

VALID_TRANSITIONS = {
    ("draft", "sent"),
    ("sent", "viewed"),
    ("sent", "converted"),
    ("viewed", "converted"),
    ("draft", "expired"),
    ("sent", "expired"),
    ("viewed", "expired"),
}


class LifecycleError(ApiError, ValueError):
    """
    Raised when an invalid lifecycle transition is attempted.

    This is a domain error, not a technical error. It indicates
    that the user attempted an operation that violates business rules.
    """
    status_code = 400
    default_message = "Invalid status transition"


def validate_status(status: str) -> None:
    """
    Validate that a status value is one of the allowed states.

    Raises:
        LifecycleError: If status is not in VALID_STATUSES
    """
    if status not in VALID_STATUSES:
        raise LifecycleError(
            f"Invalid status '{status}'. Must be one of: {', '.join(sorted(VALID_STATUSES))}"
        )


def can_transition(from_status: str, to_status: str) -> bool:
    """
    Check if a state transition is valid according to the lifecycle rules.

    Same-state writes are allowed (no-op).
    """
    validate_status(from_status)
    validate_status(to_status)

    if from_status == to_status:
        return True

    return (from_status, to_status) in VALID_TRANSITIONS


def apply_transition(estimate: Estimate, to_status: str) -> bool:
    """
    Move estimate to to_status, stamping the matching timestamp.

    Returns True if the status changed, False for a same-state no-op.
    Does not commit.

    Raises:
        LifecycleError: illegal transition
    """
    from_status = estimate.status
    if not can_transition(from_status, to_status):
        raise LifecycleError(f"Cannot change estimate status from '{from_status}' to '{to_status}'")

    if from_status == to_status:
        return False

    now = utcnow()
    estimate.status = to_status
    if to_status == "sent":
        estimate.sent_at = now
    elif to_status == "viewed":
        estimate.viewed_at = now
    elif to_status == "converted":
        estimate.is_converted = True
        estimate.converted_at = now
    return True

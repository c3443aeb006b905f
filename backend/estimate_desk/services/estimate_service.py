# Overview: Service-layer operations for estimates; encapsulates business logic and database work.

"""
Estimate Engine

Creates, prices, updates and moves estimates through their lifecycle.

PRICING: Delegated to pricing.price_estimate. Totals are recomputed from
scratch whenever lines or adjustments change; on update, adjustments the
caller omits keep their stored values.

BILL-TO: The customer reference resolves to either a directory Customer
owned by the estimate's trader or a registered customer account:

    "customer": 12                                  owned directory record or account
    "customer": {"kind": "registered", "id": 7}     explicit

NUMBERING: numbering_service allocates EST-{year}-{nnnn} per trader. If the
insert still collides on the per-trader unique constraint, creation is
retried under a timestamp-suffixed number.

TENANCY: Every load goes through access_policy. Missing rows are 404,
someone else's rows are 403.
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import CUSTOMER_KINDS, DISCOUNT_TYPES, Customer, Estimate, EstimateLine, Item, User
from ..time_utils import parse_iso_date, parse_iso_datetime, utcnow
from ..validation import MAX_AMOUNT, SEND_CHANNELS, coerce_decimal
from . import access_policy, lifecycle_service, numbering_service, pricing
from .concurrency import run_with_retry
from .lifecycle_service import LifecycleError
from .pagination import paginate


PRICING_FIELDS = ("items", "discount", "discount_type", "loading_charges")


# =============================================================================
# Input parsing
# =============================================================================

def _parse_amount(value, field: str, default: Decimal | None = None) -> Decimal:
    if value is None:
        if default is None:
            raise ValidationError(f"{field} is required", param=field)
        return default
    amount = coerce_decimal(value, field)
    if amount < 0:
        raise ValidationError(f"{field} must be >= 0", param=field)
    if amount > MAX_AMOUNT:
        raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT}", param=field)
    return amount


def _parse_discount_type(value, default: str = "percentage") -> str:
    if value in (None, ""):
        return default
    if value not in DISCOUNT_TYPES:
        raise ValidationError(
            f"discount_type must be one of: {', '.join(DISCOUNT_TYPES)}", param="discount_type"
        )
    return value


def _parse_valid_till(value):
    try:
        parsed = parse_iso_date(value) if isinstance(value, str) else None
    except ValueError:
        parsed = None
    if parsed is None:
        raise ValidationError("Valid till date is required", param="valid_till")
    return parsed


def _parse_int_id(value, field: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an id", param=field)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an id", param=field)


def _parse_sent_via(value) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValidationError("Sent via must be an array", param="sent_via")
    channels = []
    for channel in value:
        if channel not in SEND_CHANNELS:
            raise ValidationError(
                f"sent_via entries must be one of: {', '.join(SEND_CHANNELS)}", param="sent_via"
            )
        if channel not in channels:
            channels.append(channel)
    return channels


def _parse_customer_ref(payload: dict) -> tuple[str | None, int]:
    """Return (kind or None for auto-detect, id)."""
    ref = payload.get("customer")
    kind = payload.get("customer_kind")

    if isinstance(ref, dict):
        kind = ref.get("kind") or kind
        ref = ref.get("id")

    if ref in (None, ""):
        ref = payload.get("customer_id")
    if ref in (None, ""):
        raise ValidationError("Customer is required", param="customer")

    if kind is not None and kind not in CUSTOMER_KINDS:
        raise ValidationError(f"customer kind must be one of: {', '.join(CUSTOMER_KINDS)}", param="customer")

    return kind, _parse_int_id(ref, "customer")


# =============================================================================
# Reference resolution
# =============================================================================

def _check_owned_by(actor: User, obj, owner_id: int, label: str) -> None:
    """
    Referenced rows must belong to the estimate's trader.

    Traders hitting someone else's row get the logged 403. Admins acting for
    a trader get a 400 instead, since they are allowed to see the row.
    """
    if obj.trader_id == owner_id:
        return
    if access_policy.is_admin(actor):
        raise ValidationError(f"{label} does not belong to trader {owner_id}", param=label.lower())
    access_policy.check_access(actor, obj, write=True)
    # check_access only passes for the owner, which was handled above
    raise ValidationError(f"{label} does not belong to trader {owner_id}", param=label.lower())


def resolve_billable_party(actor: User, owner_id: int, kind: str | None, ref_id: int) -> tuple[str, Customer | None, User | None]:
    """
    Resolve a customer reference into (kind, directory_customer, account).

    Directory ids and account ids are separate sequences, so a bare id (no
    kind) only matches a directory record the owner actually owns, and
    otherwise falls through to a registered account. An id matching both
    must be disambiguated with {"kind", "id"}.

    Raises:
        ValidationError: bare id matches both kinds, or the record is inactive
        NotFoundError: nothing matches
        PermissionDenied: the directory record belongs to another trader
    """
    if kind == "directory":
        customer = db.session.get(Customer, ref_id)
        if customer is None:
            raise NotFoundError("Customer not found")
        _check_owned_by(actor, customer, owner_id, "Customer")
        return "directory", _require_active(customer), None

    account = db.session.get(User, ref_id)
    if account is not None and (account.role != "customer" or not account.is_active):
        account = None

    if kind == "registered":
        if account is None:
            raise NotFoundError("Customer not found")
        return "registered", None, account

    customer = db.session.get(Customer, ref_id)
    owned = customer if customer is not None and customer.trader_id == owner_id else None

    if owned is not None and account is not None:
        raise ValidationError(
            f"Customer {ref_id} matches both a directory customer and a registered account; "
            'send {"kind": "directory" | "registered", "id": ...}',
            param="customer",
        )
    if owned is not None:
        return "directory", _require_active(owned), None
    if account is not None:
        return "registered", None, account
    if customer is not None:
        # Someone else's directory record and no account to fall back to
        _check_owned_by(actor, customer, owner_id, "Customer")
    raise NotFoundError("Customer not found")


def _require_active(customer: Customer) -> Customer:
    if not customer.is_active:
        raise ValidationError("Customer is inactive", param="customer")
    return customer


def _resolve_lines(actor: User, owner_id: int, raw_items) -> list[tuple[int, Decimal, Decimal]]:
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("At least one item is required", param="items")

    lines = []
    for index, entry in enumerate(raw_items):
        if not isinstance(entry, dict):
            raise ValidationError("Each item must be an object", param=f"items[{index}]")

        raw_id = entry.get("item", entry.get("item_id"))
        if isinstance(raw_id, dict):
            raw_id = raw_id.get("id")
        item_id = _parse_int_id(raw_id, f"items[{index}].item")

        item = db.session.get(Item, item_id)
        if item is None:
            raise NotFoundError(f"Item not found: {item_id}")
        _check_owned_by(actor, item, owner_id, "Item")

        quantity = _parse_amount(entry.get("quantity"), f"items[{index}].quantity")
        # Rate is the caller's frozen snapshot; fall back to today's rate only if omitted
        rate = _parse_amount(entry.get("rate"), f"items[{index}].rate", default=Decimal(item.current_rate))
        lines.append((item.id, quantity, rate))
    return lines


def _apply_totals(estimate: Estimate, totals: pricing.EstimateTotals, *, replace_lines: bool) -> None:
    if replace_lines:
        estimate.lines = [
            EstimateLine(item_id=p.item_id, position=i, quantity=p.quantity, rate=p.rate, total=p.total)
            for i, p in enumerate(totals.lines)
        ]
    estimate.subtotal = totals.subtotal
    estimate.discount = totals.discount
    estimate.discount_type = totals.discount_type
    estimate.discount_amount = totals.discount_amount
    estimate.loading_charges = totals.loading_charges
    estimate.total = totals.total


# =============================================================================
# Create
# =============================================================================

def create_estimate(actor: User, payload: dict) -> Estimate:
    """
    Create a priced draft estimate.

    New estimates always start as draft; a caller-supplied status other than
    "draft" is rejected. Use the send/convert/expire actions afterwards.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    status = payload.get("status")
    if status not in (None, "", "draft"):
        raise ValidationError("New estimates always start as draft", param="status")

    owner_id = access_policy.resolve_owner_id(actor, payload.get("trader_id"))
    kind, ref_id = _parse_customer_ref(payload)
    lines = _resolve_lines(actor, owner_id, payload.get("items"))
    kind, customer, account = resolve_billable_party(actor, owner_id, kind, ref_id)

    if payload.get("valid_till") in (None, ""):
        valid_till = (utcnow() + timedelta(days=current_app.config.get("ESTIMATE_VALID_DAYS", 15))).date()
    else:
        valid_till = _parse_valid_till(payload.get("valid_till"))

    totals = pricing.price_estimate(
        lines,
        discount=_parse_amount(payload.get("discount"), "discount", default=Decimal("0")),
        discount_type=_parse_discount_type(payload.get("discount_type")),
        loading_charges=_parse_amount(payload.get("loading_charges"), "loading_charges", default=Decimal("0")),
    )
    notes = payload.get("notes")
    customer_id = customer.id if customer is not None else None
    customer_user_id = account.id if account is not None else None

    attempts = []

    def _op() -> Estimate:
        # The rollback before a retry also undoes the sequence bump, so a
        # repeat collision switches to the timestamp number
        if attempts:
            estimate_number = numbering_service.fallback_estimate_number(utcnow().year)
        else:
            estimate_number = numbering_service.next_estimate_number(owner_id)
        attempts.append(estimate_number)
        estimate = Estimate(
            estimate_number=estimate_number,
            trader_id=owner_id,
            customer_kind=kind,
            customer_id=customer_id,
            customer_user_id=customer_user_id,
            valid_till=valid_till,
            status="draft",
            is_converted=False,
            sent_via=[],
            notes=str(notes).strip() if notes else None,
        )
        _apply_totals(estimate, totals, replace_lines=True)
        db.session.add(estimate)
        db.session.commit()
        return estimate

    estimate = run_with_retry(_op, retry_on=(IntegrityError,))
    current_app.logger.info(
        "Estimate %s (%s) created for trader %s total=%s",
        estimate.id, estimate.estimate_number, owner_id, estimate.total,
    )
    return estimate


# =============================================================================
# Read
# =============================================================================

def _customer_filter(customer_id: int, kind: str | None = None):
    if kind == "directory":
        return Estimate.customer_id == customer_id
    if kind == "registered":
        return Estimate.customer_user_id == customer_id
    return or_(Estimate.customer_id == customer_id, Estimate.customer_user_id == customer_id)


def _date_range(query, date_from=None, date_to=None):
    try:
        start = parse_iso_datetime(date_from) if date_from else None
        end = parse_iso_datetime(date_to) if date_to else None
    except ValueError:
        raise ValidationError("date_from/date_to must be ISO-8601 dates", param="date_from")
    if start:
        query = query.filter(Estimate.created_at >= start)
    if end:
        # A bare date means "through the end of that day"
        if len(date_to.strip()) == 10:
            end = end + timedelta(days=1)
            query = query.filter(Estimate.created_at < end)
        else:
            query = query.filter(Estimate.created_at <= end)
    return query


def list_estimates(
    actor: User,
    *,
    search=None,
    status=None,
    customer_id=None,
    customer_kind=None,
    date_from=None,
    date_to=None,
    page: int = 1,
    limit: int = 10,
) -> dict:
    """
    Estimates visible to the actor, newest first.

    Customers may not filter by customer; their scope is already themselves.
    """
    query = access_policy.scoped_query(actor, Estimate)

    if search:
        query = query.filter(Estimate.estimate_number.ilike(f"%{search}%"))
    if status:
        lifecycle_service.validate_status(status)
        query = query.filter(Estimate.status == status)
    if customer_id and actor.role != "customer":
        query = query.filter(_customer_filter(customer_id, customer_kind))
    query = _date_range(query, date_from, date_to)

    query = query.order_by(Estimate.created_at.desc(), Estimate.id.desc())
    return paginate(query, page=page, limit=limit, serialize=lambda e: e.to_dict())


def list_my_estimates(actor: User, *, status=None, page: int = 1, limit: int = 10) -> dict:
    """Estimates billed to a customer account directly or via linked directory records."""
    query = db.session.query(Estimate).filter(access_policy.estimate_billed_to_filter(actor))
    if status:
        lifecycle_service.validate_status(status)
        query = query.filter(Estimate.status == status)
    query = query.order_by(Estimate.created_at.desc(), Estimate.id.desc())
    return paginate(query, page=page, limit=limit, serialize=lambda e: e.to_dict())


def list_for_customer(actor: User, customer_id: int, *, customer_kind=None, date_from=None, date_to=None, limit: int = 5) -> list[dict]:
    """Recent estimates for one billable party (estimate form history panel)."""
    query = access_policy.scoped_query(actor, Estimate).filter(_customer_filter(customer_id, customer_kind))
    query = _date_range(query, date_from, date_to)
    rows = query.order_by(Estimate.created_at.desc(), Estimate.id.desc()).limit(limit).all()
    return [e.to_dict() for e in rows]


def list_containing_item(actor: User, item_id: int) -> list[dict]:
    query = (
        access_policy.scoped_query(actor, Estimate)
        .filter(Estimate.lines.any(EstimateLine.item_id == item_id))
        .order_by(Estimate.created_at.desc(), Estimate.id.desc())
    )
    return [e.to_dict() for e in query.all()]


def get_estimate(actor: User, estimate_id: int) -> Estimate:
    """
    Load one estimate.

    When the reader is the billed customer and the estimate is "sent", it
    moves to "viewed" and viewed_at is stamped. Later reads change nothing.
    """
    estimate = access_policy.require_access(actor, Estimate, estimate_id)

    if actor.role == "customer" and estimate.status == "sent":
        lifecycle_service.apply_transition(estimate, "viewed")
        db.session.commit()
        current_app.logger.info("Estimate %s viewed by customer %s", estimate.id, actor.id)

    return estimate


# =============================================================================
# Update and lifecycle actions
# =============================================================================

def update_estimate(actor: User, estimate_id: int, payload: dict) -> Estimate:
    """
    Patch an estimate.

    - items / discount / discount_type / loading_charges: totals are fully
      recomputed; omitted adjustments keep their stored values
    - status / is_converted: validated by lifecycle_service
    - valid_till / notes / invoice_number: overwritten
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    estimate = access_policy.require_access(actor, Estimate, estimate_id, write=True)

    if any(field in payload for field in PRICING_FIELDS):
        if estimate.status in lifecycle_service.TERMINAL_STATUSES:
            raise LifecycleError(f"Cannot change pricing of a {estimate.status} estimate")

        if "items" in payload:
            lines = _resolve_lines(actor, estimate.trader_id, payload.get("items"))
        else:
            lines = [(line.item_id, Decimal(line.quantity), Decimal(line.rate)) for line in estimate.lines]

        totals = pricing.price_estimate(
            lines,
            discount=_parse_amount(payload.get("discount"), "discount", default=Decimal(estimate.discount)),
            discount_type=_parse_discount_type(payload.get("discount_type"), default=estimate.discount_type),
            loading_charges=_parse_amount(
                payload.get("loading_charges"), "loading_charges", default=Decimal(estimate.loading_charges)
            ),
        )
        _apply_totals(estimate, totals, replace_lines="items" in payload)

    if payload.get("valid_till"):
        estimate.valid_till = _parse_valid_till(payload["valid_till"])
    if "notes" in payload:
        estimate.notes = str(payload["notes"]).strip() if payload["notes"] else None
    if "invoice_number" in payload:
        estimate.invoice_number = str(payload["invoice_number"]).strip() if payload["invoice_number"] else None

    target_status = payload.get("status")
    if payload.get("is_converted") is True:
        if target_status not in (None, "", "converted"):
            raise LifecycleError(f"is_converted conflicts with status '{target_status}'")
        target_status = "converted"
    elif payload.get("is_converted") is False and estimate.is_converted:
        raise LifecycleError("A converted estimate cannot be un-converted")
    if target_status:
        lifecycle_service.apply_transition(estimate, target_status)

    db.session.commit()
    return estimate


def mark_as_sent(actor: User, estimate_id: int, sent_via) -> Estimate:
    """
    Record that the estimate was shared (email, WhatsApp, print).

    Allowed from draft, and again while still sent (re-send refreshes
    sent_via). Sending a viewed, converted or expired estimate is rejected.
    """
    channels = _parse_sent_via(sent_via)
    estimate = access_policy.require_access(actor, Estimate, estimate_id, write=True)

    lifecycle_service.apply_transition(estimate, "sent")
    estimate.sent_via = channels
    db.session.commit()
    current_app.logger.info("Estimate %s marked sent via %s", estimate.id, ",".join(channels) or "-")
    return estimate


def convert_estimate(actor: User, estimate_id: int, invoice_number=None) -> Estimate:
    estimate = access_policy.require_access(actor, Estimate, estimate_id, write=True)

    lifecycle_service.apply_transition(estimate, "converted")
    if invoice_number:
        estimate.invoice_number = str(invoice_number).strip()
    db.session.commit()
    current_app.logger.info("Estimate %s converted (invoice %s)", estimate.id, estimate.invoice_number)
    return estimate


def expire_estimate(actor: User, estimate_id: int) -> Estimate:
    estimate = access_policy.require_access(actor, Estimate, estimate_id, write=True)
    lifecycle_service.apply_transition(estimate, "expired")
    db.session.commit()
    return estimate


def delete_estimate(actor: User, estimate_id: int) -> None:
    estimate = access_policy.require_access(actor, Estimate, estimate_id, write=True)
    db.session.delete(estimate)
    db.session.commit()
    current_app.logger.info("Estimate %s deleted by user %s", estimate_id, actor.id)

# Overview: Read-only dashboard aggregates for traders and admins.

"""
Dashboard Aggregator

All figures are computed over the caller's scope from access_policy: a
trader sees their own estimates, customers and catalog; an admin sees every
trader's. Money sums are returned as 2-place decimal strings, rates as
floats rounded to 2 places.
"""

from __future__ import annotations

from collections import defaultdict
from decimal import Decimal

from sqlalchemy import case, func

from ..extensions import db
from ..models import Brand, Customer, Estimate, Item, User
from ..time_utils import month_start, shift_months, to_utc_z, utcnow
from . import access_policy
from .pricing import quantize_money


RECENT_LIMIT = 5
TOP_LIMIT = 5
MONTHS_BACK = 6


def _money(value) -> str:
    return str(quantize_money(Decimal(str(value or 0))))


def _rate(part: int, whole: int) -> float:
    if not whole:
        return 0
    return round(part / whole * 100, 2)


def _count(query) -> int:
    return query.order_by(None).count()


def get_stats(actor: User) -> dict:
    estimates = access_policy.scoped_query(actor, Estimate)
    start = month_start(utcnow())
    end = shift_months(start, 1)
    this_month = estimates.filter(Estimate.created_at >= start, Estimate.created_at < end)

    total_estimates = _count(estimates)
    converted = _count(estimates.filter(Estimate.is_converted.is_(True)))
    this_month_value = this_month.with_entities(func.coalesce(func.sum(Estimate.total), 0)).scalar()

    return {
        "total_estimates": total_estimates,
        "this_month_estimates": _count(this_month),
        "converted_estimates": converted,
        "pending_estimates": _count(
            estimates.filter(Estimate.status == "sent", Estimate.is_converted.is_(False))
        ),
        "total_customers": _count(access_policy.scoped_query(actor, Customer)),
        "total_items": _count(access_policy.scoped_query(actor, Item)),
        "total_brands": _count(access_policy.scoped_query(actor, Brand)),
        "this_month_value": _money(this_month_value),
        "conversion_rate": _rate(converted, total_estimates),
    }


def get_recent_estimates(actor: User, limit: int = RECENT_LIMIT) -> list[dict]:
    rows = (
        access_policy.scoped_query(actor, Estimate)
        .order_by(Estimate.created_at.desc(), Estimate.id.desc())
        .limit(limit)
        .all()
    )
    recent = []
    for estimate in rows:
        party = estimate.billable_party
        recent.append({
            "id": estimate.id,
            "estimate_number": estimate.estimate_number,
            "customer": {
                "kind": party["kind"],
                "id": party["id"],
                "name": party["name"],
                "phone": party["phone"],
            },
            "total": _money(estimate.total),
            "status": estimate.status,
            "created_at": to_utc_z(estimate.created_at),
        })
    return recent


def get_top_customers(actor: User, limit: int = TOP_LIMIT) -> list[dict]:
    """
    Billable parties ranked by estimate count.

    Directory customers and registered accounts are ranked together; each row
    says which kind it is.
    """
    converted = func.sum(case((Estimate.is_converted.is_(True), 1), else_=0))
    rows = (
        access_policy.scoped_query(actor, Estimate)
        .with_entities(
            Estimate.customer_kind,
            Estimate.customer_id,
            Estimate.customer_user_id,
            func.count(Estimate.id).label("estimate_count"),
            func.coalesce(func.sum(Estimate.total), 0).label("total_value"),
            converted.label("converted_count"),
        )
        .group_by(Estimate.customer_kind, Estimate.customer_id, Estimate.customer_user_id)
        .order_by(func.count(Estimate.id).desc())
        .limit(limit)
        .all()
    )

    top = []
    for row in rows:
        if row.customer_kind == "directory":
            party = db.session.get(Customer, row.customer_id)
            party_id = row.customer_id
        else:
            party = db.session.get(User, row.customer_user_id)
            party_id = row.customer_user_id
        count = int(row.estimate_count or 0)
        converted_count = int(row.converted_count or 0)
        top.append({
            "customer_kind": row.customer_kind,
            "id": party_id,
            "name": party.name if party else None,
            "phone": party.phone if party else None,
            "estimate_count": count,
            "total_value": _money(row.total_value),
            "converted_count": converted_count,
            "conversion_rate": _rate(converted_count, count),
        })
    return top


def get_monthly_stats(actor: User, months: int = MONTHS_BACK) -> list[dict]:
    """
    Per-month count, value and conversions for the current month and the
    months before it, oldest first. Months with no estimates are omitted.
    """
    since = shift_months(month_start(utcnow()), -(months - 1))
    rows = (
        access_policy.scoped_query(actor, Estimate)
        .filter(Estimate.created_at >= since)
        .with_entities(Estimate.created_at, Estimate.total, Estimate.is_converted)
        .all()
    )

    # Grouped in Python so the month bucketing does not depend on the SQL dialect
    buckets = defaultdict(lambda: {"count": 0, "total_value": Decimal("0"), "converted_count": 0})
    for created_at, total, is_converted in rows:
        bucket = buckets[(created_at.year, created_at.month)]
        bucket["count"] += 1
        bucket["total_value"] += Decimal(str(total or 0))
        if is_converted:
            bucket["converted_count"] += 1

    return [
        {
            "year": year,
            "month": month,
            "count": bucket["count"],
            "total_value": _money(bucket["total_value"]),
            "converted_count": bucket["converted_count"],
        }
        for (year, month), bucket in sorted(buckets.items())
    ]


def get_admin_stats(limit: int = TOP_LIMIT) -> dict:
    """System-wide counts plus the most active traders. Admin only."""
    user_stats = (
        db.session.query(User.role, func.count(User.id))
        .group_by(User.role)
        .order_by(User.role.asc())
        .all()
    )

    traders = (
        db.session.query(
            Estimate.trader_id,
            func.count(Estimate.id).label("estimate_count"),
            func.coalesce(func.sum(Estimate.total), 0).label("total_value"),
        )
        .group_by(Estimate.trader_id)
        .order_by(func.count(Estimate.id).desc())
        .limit(limit)
        .all()
    )

    active_traders = []
    for row in traders:
        trader = db.session.get(User, row.trader_id)
        if trader is None:
            continue
        active_traders.append({
            "id": trader.id,
            "name": trader.name,
            "business_name": trader.business_name,
            "estimate_count": int(row.estimate_count or 0),
            "total_value": _money(row.total_value),
        })

    return {
        "user_stats": [{"role": role, "count": count} for role, count in user_stats],
        "total_estimates": db.session.query(func.count(Estimate.id)).scalar(),
        "total_customers": db.session.query(func.count(Customer.id)).scalar(),
        "total_items": db.session.query(func.count(Item.id)).scalar(),
        "total_brands": db.session.query(func.count(Brand.id)).scalar(),
        "active_traders": active_traders,
    }

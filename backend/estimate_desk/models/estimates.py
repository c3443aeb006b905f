from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .customers import format_address


ESTIMATE_STATUSES = ("draft", "sent", "viewed", "converted", "expired")
DISCOUNT_TYPES = ("percentage", "amount")
CUSTOMER_KINDS = ("directory", "registered")


def _money(value) -> str | None:
    return str(value) if value is not None else None


class Estimate(db.Model):
    """
    Priced quote issued by a trader.

    BILL-TO: An estimate is billed either to a directory Customer owned by the
    trader (customer_kind="directory", customer_id set) or straight to a
    registered customer account (customer_kind="registered",
    customer_user_id set). Exactly one side is populated.

    NUMBERING: estimate_number is allocated once from the trader's yearly
    sequence (EST-2025-0001) and never reassigned.

    LIFECYCLE: draft -> sent -> viewed -> converted, with expired reachable
    from any open state. Transitions are validated in lifecycle_service.
    """
    __tablename__ = "estimates"
    __table_args__ = (
        db.UniqueConstraint("trader_id", "estimate_number", name="uq_estimates_trader_number"),
        db.CheckConstraint(
            "(customer_kind = 'directory' AND customer_id IS NOT NULL AND customer_user_id IS NULL)"
            " OR (customer_kind = 'registered' AND customer_user_id IS NOT NULL AND customer_id IS NULL)",
            name="ck_estimates_single_bill_to",
        ),
        db.Index("ix_estimates_trader_status_created", "trader_id", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    estimate_number = db.Column(db.String(32), nullable=False, index=True)

    trader_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    customer_kind = db.Column(db.String(16), nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    customer_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    subtotal = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    discount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    discount_type = db.Column(db.String(16), nullable=False, default="percentage")
    discount_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    loading_charges = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    # May go negative when a flat discount exceeds the subtotal
    total = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    valid_till = db.Column(db.Date, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="draft", index=True)
    invoice_number = db.Column(db.String(64), nullable=True)
    is_converted = db.Column(db.Boolean, nullable=False, default=False)
    sent_via = db.Column(db.JSON, nullable=False, default=list)
    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    viewed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    converted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    trader = db.relationship("User", foreign_keys=[trader_id])
    customer = db.relationship("Customer", foreign_keys=[customer_id], backref=db.backref("estimates", lazy=True))
    customer_user = db.relationship("User", foreign_keys=[customer_user_id])
    lines = db.relationship(
        "EstimateLine",
        backref="estimate",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="EstimateLine.position",
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def billable_party(self) -> dict | None:
        """Name, contact, address and GST of whoever this estimate is billed to."""
        if self.customer_kind == "directory" and self.customer is not None:
            c = self.customer
            return {
                "kind": "directory",
                "id": c.id,
                "user_id": c.user_id,
                "name": c.name,
                "phone": c.phone,
                "email": c.email,
                "address": dict(c.address or {}),
                "full_address": c.full_address,
                "gst_number": c.gst_number,
            }
        if self.customer_kind == "registered" and self.customer_user is not None:
            u = self.customer_user
            profile = u.customer_profile or {}
            return {
                "kind": "registered",
                "id": u.id,
                "user_id": u.id,
                "name": u.name,
                "phone": u.phone,
                "email": u.email,
                "address": dict(profile.get("address") or {}),
                "full_address": format_address(profile.get("address")),
                "gst_number": profile.get("gst_number"),
            }
        return None

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "estimate_number": self.estimate_number,
            "trader_id": self.trader_id,
            "trader": {
                "id": self.trader.id,
                "name": self.trader.name,
                "business_name": self.trader.business_name,
            } if self.trader else None,
            "customer_kind": self.customer_kind,
            "customer_id": self.customer_id,
            "customer_user_id": self.customer_user_id,
            "customer": self.billable_party,
            "subtotal": _money(self.subtotal),
            "discount": _money(self.discount),
            "discount_type": self.discount_type,
            "discount_amount": _money(self.discount_amount),
            "loading_charges": _money(self.loading_charges),
            "total": _money(self.total),
            "valid_till": self.valid_till.isoformat() if self.valid_till else None,
            "status": self.status,
            "invoice_number": self.invoice_number,
            "is_converted": self.is_converted,
            "sent_via": list(self.sent_via or []),
            "sent_at": to_utc_z(self.sent_at) if self.sent_at else None,
            "viewed_at": to_utc_z(self.viewed_at) if self.viewed_at else None,
            "converted_at": to_utc_z(self.converted_at) if self.converted_at else None,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_lines:
            data["items"] = [line.to_dict() for line in self.lines]
        return data


class EstimateLine(db.Model):
    """
    One priced line of an estimate.

    rate is frozen at estimate time; total = quantity * rate.
    """
    __tablename__ = "estimate_lines"
    __table_args__ = (
        db.Index("ix_estimate_lines_estimate", "estimate_id", "position"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    estimate_id = db.Column(db.Integer, db.ForeignKey("estimates.id"), nullable=False)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    quantity = db.Column(db.Numeric(12, 3), nullable=False)
    rate = db.Column(db.Numeric(14, 2), nullable=False)
    total = db.Column(db.Numeric(14, 2), nullable=False)

    item = db.relationship("Item")

    def to_dict(self) -> dict:
        item = self.item
        return {
            "id": self.id,
            "item_id": self.item_id,
            "item": {
                "id": item.id,
                "name": item.name,
                "category": item.category,
                "uom": item.uom,
                "brand": item.brand.name if item.brand else None,
            } if item else None,
            "quantity": format(self.quantity.normalize(), "f") if self.quantity is not None else None,
            "rate": _money(self.rate),
            "total": _money(self.total),
        }


class DocumentSequence(db.Model):
    """
    Per-trader, per-year document counter.

    next_number is the number the next allocation will hand out.
    Incremented atomically by numbering_service.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("trader_id", "document_type", "year", name="uq_document_sequences_trader_type_year"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    trader_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    document_type = db.Column(db.String(32), nullable=False)
    year = db.Column(db.Integer, nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)

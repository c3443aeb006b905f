from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


def format_address(address: dict | None) -> str:
    address = address or {}
    parts = [address.get(key) for key in ("street", "city", "state", "pincode")]
    return ", ".join(p for p in parts if p)


class Customer(db.Model):
    """
    A trader's directory entry for someone they quote.

    TENANCY: Owned by exactly one trader (trader_id). Phone is unique within
    that trader's directory, so two traders can each keep a record for the
    same person.

    A directory entry may be linked (user_id) to a registered customer
    account. The two stay separate records; the link only lets the account
    holder see estimates billed to the directory entry.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("trader_id", "phone", name="uq_customers_trader_phone"),
        db.Index("ix_customers_trader_active", "trader_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    trader_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    name = db.Column(db.String(128), nullable=False)
    phone = db.Column(db.String(32), nullable=False)
    email = db.Column(db.String(255), nullable=True)

    # {street, city, state, pincode}
    address = db.Column(db.JSON, nullable=False, default=dict)
    gst_number = db.Column(db.String(32), nullable=True)
    tags = db.Column(db.JSON, nullable=False, default=list)

    referred_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    referred_by_type = db.Column(db.String(16), nullable=True)  # customer, engineer, mason, other

    notes = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    trader = db.relationship("User", foreign_keys=[trader_id])
    linked_user = db.relationship("User", foreign_keys=[user_id])

    @property
    def full_address(self) -> str:
        return format_address(self.address)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "trader_id": self.trader_id,
            "user_id": self.user_id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "address": dict(self.address or {}),
            "full_address": self.full_address,
            "gst_number": self.gst_number,
            "tags": list(self.tags or []),
            "referred_by_user_id": self.referred_by_user_id,
            "referred_by_type": self.referred_by_type,
            "notes": self.notes,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }

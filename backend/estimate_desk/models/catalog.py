from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Brand(db.Model):
    """
    Trader-scoped brand.

    Names are unique per trader; the service layer also compares them
    case-insensitively before writing.
    """
    __tablename__ = "brands"
    __table_args__ = (
        db.UniqueConstraint("trader_id", "name", name="uq_brands_trader_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    trader_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    name = db.Column(db.String(128), nullable=False)
    description = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "trader_id": self.trader_id,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Item(db.Model):
    """
    Priced catalog item.

    current_rate is the price offered today. Estimates copy the rate into
    their lines, so changing it never rewrites an issued estimate.
    """
    __tablename__ = "items"
    __table_args__ = (
        db.Index("ix_items_trader_active", "trader_id", "is_active"),
        db.Index("ix_items_trader_category", "trader_id", "category"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    trader_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    brand_id = db.Column(db.Integer, db.ForeignKey("brands.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(128), nullable=False)
    uom = db.Column(db.String(16), nullable=False, default="piece")
    current_rate = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    description = db.Column(db.Text, nullable=True)
    specifications = db.Column(db.Text, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    brand = db.relationship("Brand", backref=db.backref("items", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "trader_id": self.trader_id,
            "brand_id": self.brand_id,
            "brand": {"id": self.brand.id, "name": self.brand.name} if self.brand else None,
            "name": self.name,
            "category": self.category,
            "uom": self.uom,
            "current_rate": str(self.current_rate) if self.current_rate is not None else None,
            "description": self.description,
            "specifications": self.specifications,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }

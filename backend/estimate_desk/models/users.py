from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


ROLES = ("admin", "trader", "customer")
# Roles that must be approved by an admin before they can log in
APPROVAL_ROLES = ("admin", "trader")
APPROVAL_STATUSES = ("pending", "approved", "rejected")


class User(db.Model):
    """
    User accounts for authentication and attribution.

    Email and phone are unique across the whole system; a person has one
    account regardless of how many traders bill them.

    Trader and admin self-registrations start with approval_status=pending
    and cannot log in until an admin approves them. Customers have no
    approval status.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.UniqueConstraint("email", name="uq_users_email"),
        db.UniqueConstraint("phone", name="uq_users_phone"),
        db.Index("ix_users_role_active", "role", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(128), nullable=False)
    email = db.Column(db.String(255), nullable=False, index=True)
    phone = db.Column(db.String(32), nullable=False)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    role = db.Column(db.String(16), nullable=False, default="customer", index=True)

    approval_status = db.Column(db.String(16), nullable=True, index=True)
    approved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)

    # {business_name, business_address, gst_number, license_number}
    trader_profile = db.Column(db.JSON, nullable=True)
    # {address{street, city, state, pincode}, gst_number, company_name, customer_type}
    customer_profile = db.Column(db.JSON, nullable=True)

    tags = db.Column(db.JSON, nullable=False, default=list)
    referred_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    approved_by = db.relationship("User", foreign_keys=[approved_by_user_id], remote_side=[id])
    referred_by = db.relationship("User", foreign_keys=[referred_by_user_id], remote_side=[id])

    @property
    def needs_approval(self) -> bool:
        return self.role in APPROVAL_ROLES

    @property
    def is_approved(self) -> bool:
        return not self.needs_approval or self.approval_status == "approved"

    @property
    def business_name(self) -> str | None:
        return (self.trader_profile or {}).get("business_name")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "role": self.role,
            "approval_status": self.approval_status,
            "approved_by_user_id": self.approved_by_user_id,
            "approved_at": to_utc_z(self.approved_at) if self.approved_at else None,
            "rejected_at": to_utc_z(self.rejected_at) if self.rejected_at else None,
            "rejection_reason": self.rejection_reason,
            "trader_profile": self.trader_profile,
            "customer_profile": self.customer_profile,
            "tags": list(self.tags or []),
            "referred_by_user_id": self.referred_by_user_id,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }


class SessionToken(db.Model):
    """
    Opaque bearer session.

    Only the SHA-256 of the token is stored. The role is captured at login so
    a role change by an admin does not silently widen an open session; every
    request still re-checks the user is active and approved.
    """
    __tablename__ = "session_tokens"
    __table_args__ = (
        db.Index("ix_session_tokens_user_active", "user_id", "is_revoked"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    role = db.Column(db.String(16), nullable=False)

    token_hash = db.Column(db.String(64), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)

    user_agent = db.Column(db.String(512), nullable=True)
    ip_address = db.Column(db.String(45), nullable=True)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_reason = db.Column(db.String(128), nullable=True)

    user = db.relationship("User", backref=db.backref("sessions", lazy=True, cascade="all, delete-orphan"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "role": self.role,
            "created_at": to_utc_z(self.created_at),
            "last_used_at": to_utc_z(self.last_used_at),
            "expires_at": to_utc_z(self.expires_at),
            "is_revoked": self.is_revoked,
        }

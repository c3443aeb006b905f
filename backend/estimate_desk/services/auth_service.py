# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication, Registration and Approval Service

WHY: Every action must be attributable to one account. Uses bcrypt for
password hashing; opaque session tokens are handled in session_service.

APPROVAL WORKFLOW:
- Customers can log in immediately after registering.
- Traders and admins register as approval_status="pending" and cannot log in
  until an existing admin approves them. A rejected account stays blocked and
  carries the admin's rejection_reason.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost from BCRYPT_ROUNDS, default 12)
- Minimum 6 characters
- Email and phone are unique across all accounts
"""

import re

import bcrypt
from flask import current_app

from ..extensions import db
from ..errors import AuthenticationError, ConflictError, NotFoundError, PermissionDenied, ValidationError
from ..models import User, ROLES
from ..time_utils import utcnow
from ..validation import normalize_address, normalize_tags
from .security_service import log_security_event


MIN_PASSWORD_LENGTH = 6
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
CUSTOMER_TYPES = ("individual", "business")
TRADER_PROFILE_FIELDS = ("business_name", "business_address", "gst_number", "license_number")
CUSTOMER_PROFILE_FIELDS = ("address", "gst_number", "company_name", "customer_type")

PENDING_MESSAGE = "Your account is pending approval. Please wait for admin approval."
REGISTERED_PENDING_MESSAGE = (
    "Registration successful! Your account is pending approval. You will be notified once approved."
)
DUPLICATE_USER_MESSAGE = "User already exists with this email or phone"


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""

    def __init__(self, message: str, param: str = "password"):
        super().__init__(message, param=param)


def validate_password_strength(password, param: str = "password") -> None:
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise PasswordValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters", param=param
        )


def hash_password(password: str, param: str = "password") -> str:
    """
    Hash password using bcrypt.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password, param=param)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    bcrypt.checkpw() is timing-safe. A malformed stored hash counts as a
    mismatch.
    """
    if not isinstance(password, str) or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def clean_email(value) -> str:
    email = str(value or "").strip().lower()
    if not EMAIL_RE.match(email):
        raise ValidationError("Please include a valid email", param="email")
    return email


def clean_required(value, param: str, message: str) -> str:
    text = str(value or "").strip()
    if not text:
        raise ValidationError(message, param=param)
    return text


def ensure_unique_contact(email: str | None, phone: str | None, exclude_user_id: int | None = None) -> None:
    clauses = []
    if email:
        clauses.append(User.email == email)
    if phone:
        clauses.append(User.phone == phone)
    if not clauses:
        return
    query = db.session.query(User).filter(db.or_(*clauses))
    if exclude_user_id is not None:
        query = query.filter(User.id != exclude_user_id)
    if query.first():
        raise ConflictError(DUPLICATE_USER_MESSAGE)


def _clean_trader_profile(raw, existing: dict | None = None) -> dict:
    if raw is None:
        return dict(existing or {})
    if not isinstance(raw, dict):
        raise ValidationError("trader_profile must be an object", param="trader_profile")
    merged = dict(existing or {})
    for key in TRADER_PROFILE_FIELDS:
        if key in raw:
            merged[key] = str(raw[key] or "").strip()
    return merged


def _clean_customer_profile(raw, existing: dict | None = None) -> dict:
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValidationError("customer_profile must be an object", param="customer_profile")
    merged = dict(existing or {})
    merged.setdefault("address", {})
    merged.setdefault("gst_number", "")
    merged.setdefault("company_name", "")
    merged.setdefault("customer_type", "individual")
    if "address" in raw:
        merged["address"] = normalize_address(raw["address"])
    for key in ("gst_number", "company_name"):
        if key in raw:
            merged[key] = str(raw[key] or "").strip()
    if "customer_type" in raw and raw["customer_type"]:
        if raw["customer_type"] not in CUSTOMER_TYPES:
            raise ValidationError(
                f"customer_type must be one of: {', '.join(CUSTOMER_TYPES)}", param="customer_type"
            )
        merged["customer_type"] = raw["customer_type"]
    return merged


def create_user(
    *,
    name: str,
    email: str,
    password: str,
    phone: str,
    role: str = "customer",
    trader_profile: dict | None = None,
    customer_profile: dict | None = None,
    tags: list | None = None,
    approved_by: User | None = None,
    commit: bool = True,
) -> User:
    """
    Create a user with a bcrypt password hash.

    Traders and admins start pending unless approved_by is given (CLI
    bootstrap and admin-created accounts are approved on creation).

    Raises:
        ValidationError: missing/invalid fields or weak password
        ConflictError: email or phone already registered
    """
    name = clean_required(name, "name", "Name is required")
    email = clean_email(email)
    phone = clean_required(phone, "phone", "Phone number is required")
    if role not in ROLES:
        raise ValidationError(f"role must be one of: {', '.join(ROLES)}", param="role")

    password_hash = hash_password(password)
    ensure_unique_contact(email, phone)

    user = User(
        name=name,
        email=email,
        phone=phone,
        password_hash=password_hash,
        role=role,
        tags=normalize_tags(tags, max_tags=current_app.config.get("MAX_USER_TAGS", 10)),
        is_active=True,
    )

    if role == "trader":
        user.trader_profile = _clean_trader_profile(trader_profile)
    if role == "customer":
        user.customer_profile = _clean_customer_profile(customer_profile)

    if user.needs_approval:
        if approved_by is not None:
            user.approval_status = "approved"
            user.approved_at = utcnow()
            user.approved_by_user_id = approved_by.id
        else:
            user.approval_status = "pending"

    db.session.add(user)
    if commit:
        db.session.commit()
    return user


def register(payload: dict) -> User:
    """
    Public self-registration (POST /api/auth/register).

    role defaults to customer. Admin self-registration is allowed but goes
    through the same approval gate as traders.
    """
    role = payload.get("role") or "customer"
    user = create_user(
        name=payload.get("name"),
        email=payload.get("email"),
        password=payload.get("password"),
        phone=payload.get("phone"),
        role=role,
        trader_profile=payload.get("trader_profile"),
        customer_profile=payload.get("customer_profile"),
        tags=payload.get("tags"),
    )
    current_app.logger.info("Registered user %s role=%s status=%s", user.id, user.role, user.approval_status)
    return user


def register_customer(payload: dict) -> User:
    """
    Customer self-registration with profile (POST /api/auth/register-customer).

    Profile fields may be sent flat (address, gst_number, company_name,
    customer_type) or nested under customer_profile.
    """
    profile = dict(payload.get("customer_profile") or {})
    for key in CUSTOMER_PROFILE_FIELDS:
        if key in payload and key not in profile:
            profile[key] = payload[key]

    user = create_user(
        name=payload.get("name"),
        email=payload.get("email"),
        password=payload.get("password"),
        phone=payload.get("phone"),
        role="customer",
        customer_profile=profile,
        tags=payload.get("tags"),
    )
    current_app.logger.info("Registered customer account %s", user.id)
    return user


def authenticate(email: str, password: str) -> User:
    """
    Check credentials and the account gate.

    Returns the User on success and stamps last_login_at.

    Raises:
        AuthenticationError (401): unknown email, wrong password, deactivated
        PermissionDenied (403): trader/admin pending or rejected
    """
    email = str(email or "").strip().lower()
    user = db.session.query(User).filter_by(email=email).first()

    if not user or not verify_password(password, user.password_hash):
        log_security_event(
            user_id=user.id if user else None,
            event_type="LOGIN_FAILED",
            success=False,
            reason="Invalid credentials",
        )
        raise AuthenticationError("Invalid credentials")

    if not user.is_active:
        log_security_event(user_id=user.id, event_type="LOGIN_BLOCKED", success=False, reason="Account deactivated")
        raise AuthenticationError("Account is deactivated")

    if user.needs_approval and user.approval_status == "pending":
        log_security_event(user_id=user.id, event_type="LOGIN_BLOCKED", success=False, reason="Pending approval")
        raise PermissionDenied(PENDING_MESSAGE, payload={"approval_status": "pending"})

    if user.needs_approval and user.approval_status == "rejected":
        log_security_event(user_id=user.id, event_type="LOGIN_BLOCKED", success=False, reason="Rejected")
        raise PermissionDenied(
            "Your account has been rejected.",
            payload={"approval_status": "rejected", "rejection_reason": user.rejection_reason},
        )

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def update_profile(user: User, payload: dict) -> User:
    """
    Update the caller's own name, email, phone and tags.

    trader_profile is merged for traders, customer_profile for customers;
    each is ignored for other roles.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    email = None
    phone = None
    if "name" in payload:
        user.name = clean_required(payload["name"], "name", "Name cannot be empty")
    if "email" in payload:
        email = clean_email(payload["email"])
    if "phone" in payload:
        phone = clean_required(payload["phone"], "phone", "Phone number cannot be empty")

    ensure_unique_contact(email, phone, exclude_user_id=user.id)
    if email:
        user.email = email
    if phone:
        user.phone = phone

    if "tags" in payload:
        user.tags = normalize_tags(payload["tags"], max_tags=current_app.config.get("MAX_USER_TAGS", 10))

    if user.role == "trader" and payload.get("trader_profile") is not None:
        user.trader_profile = _clean_trader_profile(payload["trader_profile"], user.trader_profile)
    if user.role == "customer" and payload.get("customer_profile") is not None:
        user.customer_profile = _clean_customer_profile(payload["customer_profile"], user.customer_profile)

    db.session.commit()
    return user


def change_password(user: User, current_password: str, new_password: str) -> None:
    if not current_password:
        raise ValidationError("Current password is required", param="current_password")
    validate_password_strength(new_password, param="new_password")
    if not verify_password(current_password, user.password_hash):
        raise ValidationError("Current password is incorrect", param="current_password")

    user.password_hash = hash_password(new_password, param="new_password")
    db.session.commit()
    current_app.logger.info("Password changed for user %s", user.id)


def update_tags(user: User, tags) -> list[str]:
    user.tags = normalize_tags(tags, max_tags=current_app.config.get("MAX_USER_TAGS", 10))
    db.session.commit()
    return list(user.tags)


def list_pending_approvals() -> list[User]:
    return (
        db.session.query(User)
        .filter(User.approval_status == "pending")
        .order_by(User.created_at.desc(), User.id.desc())
        .all()
    )


def _get_pending_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    if user.approval_status != "pending":
        raise ValidationError("User is not pending approval")
    return user


def approve_user(user_id: int, admin: User) -> User:
    user = _get_pending_user(user_id)
    user.approval_status = "approved"
    user.approved_by_user_id = admin.id
    user.approved_at = utcnow()
    user.rejected_at = None
    user.rejection_reason = None
    db.session.commit()
    current_app.logger.info("User %s approved by admin %s", user.id, admin.id)
    return user


def reject_user(user_id: int, admin: User, reason: str | None = None) -> User:
    user = _get_pending_user(user_id)
    user.approval_status = "rejected"
    user.approved_by_user_id = admin.id
    user.rejected_at = utcnow()
    user.rejection_reason = (reason or "").strip() or "No reason provided"
    db.session.commit()
    current_app.logger.info("User %s rejected by admin %s", user.id, admin.id)
    return user

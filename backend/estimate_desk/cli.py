# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/estimate_desk/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--email admin@estimatedesk.local] [--password admin123]
#   Create tables (if missing) and an approved bootstrap admin.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed
#   Demo admin, trader, customer account, brands, items, directory customers and estimates.
# - python -m flask system clear-estimates --yes
#   Delete every estimate and reset the estimate number sequences.
# - python -m flask system clear-brands --yes
#   Delete every brand that no longer has items.
#
# User inspection/bootstrap:
# - python -m flask users list [--role trader]
#   List users with role, approval status and active flag.
# - python -m flask users create --name "A Trader" --email t@example.com --phone 9000000000 --password secret1 --role trader
#   Create an approved user (prompts if options are omitted).
# - python -m flask users approve t@example.com
#   Approve a pending trader/admin.

from decimal import Decimal

import click
from flask.cli import with_appcontext

from .extensions import db
from .errors import ApiError
from .models import ROLES, Brand, Customer, DocumentSequence, Estimate, EstimateLine, Item, User
from .services import estimate_service
from .services.auth_service import create_user, PasswordValidationError
from .time_utils import utcnow


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--name', default='Admin User', help='Bootstrap admin name')
@click.option('--email', default='admin@estimatedesk.local', help='Bootstrap admin email')
@click.option('--phone', default='+91-9000000000', help='Bootstrap admin phone')
@click.option('--password', default='admin123', help='Bootstrap admin password')
@with_appcontext
def init_system(name, email, phone, password):
    """
    Create missing tables and an approved bootstrap admin.

    Idempotent: an existing admin with the same email is left alone.

    SECURITY: Change the default password immediately in production!
    """
    click.echo("START Initializing Estimate Desk...")
    db.create_all()
    click.echo("PASS Tables ready")

    existing = db.session.query(User).filter_by(email=email.lower()).first()
    if existing:
        click.echo(f"WARN  User '{email}' already exists, skipping...")
        return

    try:
        admin = create_user(name=name, email=email, password=password, phone=phone, role="admin", commit=False)
        db.session.flush()
        admin.approval_status = "approved"
        admin.approved_at = utcnow()
        admin.approved_by_user_id = admin.id
        db.session.commit()
    except PasswordValidationError as e:
        db.session.rollback()
        click.echo(f"FAIL Password validation failed: {e.message}")
        return
    except ApiError as e:
        db.session.rollback()
        click.echo(f"FAIL Failed to create admin: {e.message}")
        return

    click.echo(f"PASS Created admin: {admin.email}")
    click.echo("\nSECURITY WARNING: change the bootstrap password in production!")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


SEED_BRANDS = [
    ("Ambuja Cement", "Premium quality cement"),
    ("Ultratech", "Leading cement brand"),
    ("JSW Steel", "Quality steel products"),
    ("Birla TMT", "TMT bars and steel"),
]

SEED_CUSTOMERS = [
    {
        "name": "Rajesh Kumar",
        "phone": "+91-9876543210",
        "email": "rajesh@example.com",
        "address": {"street": "123 Main Street", "city": "Mumbai", "state": "Maharashtra", "pincode": "400001"},
        "tags": ["Engineer", "Regular"],
    },
    {
        "name": "Priya Construction",
        "phone": "+91-9876543211",
        "email": "priya@construction.com",
        "address": {"street": "456 Builder Lane", "city": "Delhi", "state": "Delhi", "pincode": "110001"},
        "gst_number": "07AAAAA0000A1Z6",
        "tags": ["Contractor", "VIP"],
    },
    {
        "name": "Amit Sharma",
        "phone": "+91-9876543212",
        "email": "amit@example.com",
        "address": {"street": "789 Home Street", "city": "Bangalore", "state": "Karnataka", "pincode": "560001"},
        "tags": ["Individual", "New"],
    },
]

# (name, category, brand index, uom, current_rate, description)
SEED_ITEMS = [
    ("OPC Cement 50kg", "Cement", 0, "bag", "350", "Ordinary Portland Cement 50kg bag"),
    ("TMT Bar 12mm", "Steel", 2, "kg", "65", "12mm TMT reinforcement bar"),
    ("Sand (River Sand)", "Aggregates", 0, "cft", "45", "Natural river sand for construction"),
    ("Concrete Blocks", "Blocks", 1, "piece", "25", "Hollow concrete blocks"),
]


@system_group.command('seed')
@with_appcontext
def seed_data():
    """
    Load demo data: an admin, a trader with a catalog and directory, a
    registered customer account, and two estimates.

    Skips if the demo trader already exists. Passwords: admin123,
    trader123, customer123.
    """
    if db.session.query(User).filter_by(email="trader@costestimation.com").first():
        click.echo("WARN  Demo data already present, skipping...")
        return

    click.echo("USERS Creating demo users...")
    admin = db.session.query(User).filter_by(email="admin@costestimation.com").first()
    if not admin:
        admin = create_user(
            name="Admin User", email="admin@costestimation.com", password="admin123",
            phone="+91-9999999999", role="admin", commit=False,
        )
        db.session.flush()
        admin.approval_status = "approved"
        admin.approved_at = utcnow()
        admin.approved_by_user_id = admin.id
        db.session.commit()

    trader = create_user(
        name="John Trader",
        email="trader@costestimation.com",
        password="trader123",
        phone="+91-9999999998",
        role="trader",
        trader_profile={
            "business_name": "John Construction Materials",
            "business_address": "123 Business Street, City, State - 123456",
            "gst_number": "27AAAAA0000A1Z5",
            "license_number": "LIC12345",
        },
        approved_by=admin,
    )
    account = create_user(
        name="Jane Customer",
        email="customer@costestimation.com",
        password="customer123",
        phone="+91-9999999997",
        role="customer",
    )
    click.echo(f"PASS Created users: {admin.email}, {trader.email}, {account.email}")

    brands = [Brand(trader_id=trader.id, name=name, description=desc) for name, desc in SEED_BRANDS]
    db.session.add_all(brands)
    db.session.flush()

    customers = [Customer(trader_id=trader.id, **data) for data in SEED_CUSTOMERS]
    db.session.add_all(customers)

    items = [
        Item(
            trader_id=trader.id, name=name, category=category, brand_id=brands[brand_index].id,
            uom=uom, current_rate=Decimal(rate), description=description,
        )
        for name, category, brand_index, uom, rate, description in SEED_ITEMS
    ]
    db.session.add_all(items)
    db.session.commit()
    click.echo(f"PASS Created {len(brands)} brands, {len(items)} items, {len(customers)} customers")

    estimate_service.create_estimate(trader, {
        "customer": {"kind": "directory", "id": customers[1].id},
        "items": [
            {"item": items[0].id, "quantity": 100},
            {"item": items[1].id, "quantity": 250, "rate": 62},
        ],
        "discount": 5,
        "discount_type": "percentage",
        "loading_charges": 500,
        "notes": "Delivery within 3 days",
    })
    estimate_service.create_estimate(trader, {
        "customer": {"kind": "registered", "id": account.id},
        "items": [{"item": items[3].id, "quantity": 400}],
        "discount": 200,
        "discount_type": "amount",
    })
    click.echo("PASS Created 2 estimates")

    click.echo("\nDONE Demo data loaded")
    click.echo("   admin    -> admin@costestimation.com    / admin123")
    click.echo("   trader   -> trader@costestimation.com   / trader123")
    click.echo("   customer -> customer@costestimation.com / customer123")


@system_group.command('clear-estimates')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def clear_estimates(yes):
    """Delete every estimate and its lines, and reset number sequences."""
    if not yes:
        click.confirm("WARN This will DELETE ALL ESTIMATES. Are you sure?", abort=True)

    db.session.query(EstimateLine).delete(synchronize_session=False)
    deleted = db.session.query(Estimate).delete(synchronize_session=False)
    db.session.query(DocumentSequence).delete(synchronize_session=False)
    db.session.commit()
    click.echo(f"PASS Cleared {deleted} estimates")


@system_group.command('clear-brands')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def clear_brands(yes):
    """Delete every brand with no items. Brands still carrying items are kept."""
    if not yes:
        click.confirm("WARN This will DELETE ALL unused BRANDS. Are you sure?", abort=True)

    in_use = db.session.query(Item.brand_id).distinct()
    deleted = (
        db.session.query(Brand)
        .filter(Brand.id.notin_(in_use))
        .delete(synchronize_session=False)
    )
    kept = db.session.query(Brand).count()
    db.session.commit()
    click.echo(f"PASS Cleared {deleted} brands")
    if kept:
        click.echo(f"WARN  Kept {kept} brands that still have items")


# =============================================================================
# USER COMMANDS
# =============================================================================

@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@click.option('--role', type=click.Choice(ROLES), default=None, help='Filter by role')
@with_appcontext
def list_users(role):
    """List users with role, approval status and active flag."""
    query = db.session.query(User)
    if role:
        query = query.filter(User.role == role)
    users = query.order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Name':<24} {'Email':<32} {'Role':<10} {'Approval':<10} {'Active'}")
    click.echo("="*90)
    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(
            f"{user.id:<5} {user.name[:23]:<24} {user.email[:31]:<32} {user.role:<10} "
            f"{user.approval_status or '-':<10} {active_str}"
        )
    click.echo("="*90 + "\n")


@users_group.command('create')
@click.option('--name', prompt=True, help='Full name')
@click.option('--email', prompt=True, help='Email address')
@click.option('--phone', prompt=True, help='Phone number')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(ROLES), default='trader', help='Role')
@with_appcontext
def create_user_cli(name, email, phone, password, role):
    """Create a user. Traders and admins created here are approved immediately."""
    try:
        user = create_user(name=name, email=email, password=password, phone=phone, role=role, commit=False)
        db.session.flush()
        if user.needs_approval:
            user.approval_status = "approved"
            user.approved_at = utcnow()
        db.session.commit()
    except ApiError as e:
        db.session.rollback()
        click.echo(f"FAIL {e.message}")
        return

    click.echo(f"PASS Created {user.role} '{user.email}' (ID: {user.id})")


@users_group.command('approve')
@click.argument('email')
@with_appcontext
def approve_user_cli(email):
    """Approve a pending trader or admin by email."""
    user = db.session.query(User).filter_by(email=email.strip().lower()).first()
    if not user:
        click.echo(f"FAIL User '{email}' not found")
        return
    if user.approval_status != "pending":
        click.echo(f"FAIL User '{email}' is not pending approval (status: {user.approval_status or '-'})")
        return

    user.approval_status = "approved"
    user.approved_at = utcnow()
    user.rejected_at = None
    user.rejection_reason = None
    db.session.commit()
    click.echo(f"PASS Approved {user.role} '{user.email}'")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)

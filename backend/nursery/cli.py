# Overview: Flask CLI command groups for bootstrap, inspection, and demo data.

# backend/nursery/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables and one user per role.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system cleanup-sessions
#   Delete expired and revoked session tokens.
#
# Users:
# - python -m flask users list
# - python -m flask users create --name "Jo" --email jo@nursery.local --password "Password123!" --role cashier
#
# Demo data:
# - python -m flask seed demo
#   Suppliers, a customer and a handful of plants with opening stock.

import click
from flask.cli import with_appcontext

from .errors import NurseryError
from .extensions import db
from .models import SessionToken, Supplier, User
from .models.auth import ROLES, ROLE_ADMIN, ROLE_MANAGER, ROLE_CASHIER, ROLE_INVENTORY
from .services import barcode_service, customers_service, products_service, suppliers_service
from .services.auth_service import create_user, PasswordValidationError
from .time_utils import utcnow


DEFAULT_PASSWORD = "Password123!"

DEFAULT_USERS = [
    ("Administrator", "admin@nursery.local", ROLE_ADMIN),
    ("Store Manager", "manager@nursery.local", ROLE_MANAGER),
    ("Cashier", "cashier@nursery.local", ROLE_CASHIER),
    ("Inventory Clerk", "inventory@nursery.local", ROLE_INVENTORY),
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Create tables and default staff accounts.

    All passwords default to "Password123!". Change them in production.
    """
    click.echo("START Initializing nursery POS...")
    db.create_all()

    for name, email, role in DEFAULT_USERS:
        if db.session.query(User).filter_by(email=email).first():
            click.echo(f"WARN  User '{email}' already exists, skipping...")
            continue
        try:
            create_user(name=name, email=email, password=DEFAULT_PASSWORD, role=role)
            click.echo(f"PASS Created user: {email} with role '{role}'")
        except NurseryError as e:
            click.echo(f"FAIL Failed to create user '{email}': {e.message}")

    click.echo("\nDefault Credentials (CHANGE IN PRODUCTION!):")
    for _, email, role in DEFAULT_USERS:
        click.echo(f"   {role:<10} -> {email:<26} / {DEFAULT_PASSWORD}")


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


@system_group.command('cleanup-sessions')
@with_appcontext
def cleanup_sessions():
    """Delete expired or revoked session tokens."""
    deleted = db.session.query(SessionToken).filter(
        (SessionToken.expires_at < utcnow()) | SessionToken.is_revoked.is_(True)
    ).delete(synchronize_session=False)
    db.session.commit()
    click.echo(f"PASS Removed {deleted} session tokens")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their role and active flag."""
    users = db.session.query(User).order_by(User.id.asc()).all()
    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 80)
    click.echo(f"{'ID':<5} {'Name':<20} {'Email':<30} {'Active':<8} {'Role'}")
    click.echo("=" * 80)
    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.name:<20} {user.email:<30} {active_str:<8} {user.role}")
    click.echo("=" * 80 + "\n")


@users_group.command('create')
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(ROLES), prompt=True, help='Role')
@with_appcontext
def create_user_cli(name, email, password, role):
    """
    Create a staff account.

    Password must have 8+ chars with an uppercase letter, a lowercase
    letter, a digit and a special character.
    """
    try:
        user = create_user(name=name, email=email, password=password, role=role)
        click.echo(f"PASS Created user: {user.email} with role '{user.role}'")
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {e.message}")
    except NurseryError as e:
        click.echo(f"FAIL Failed to create user: {e.message}")


DEMO_SUPPLIERS = [
    {"name": "Kiwi Growers Ltd", "contact_person": "Aroha Smith", "email": "orders@kiwigrowers.example",
     "phone": "09 555 0101", "lead_time_days": 5},
    {"name": "Garden Supply Co", "contact_person": "Tom Baker", "email": "sales@gardensupply.example",
     "phone": "09 555 0202", "lead_time_days": 10, "payment_terms": "Net 14"},
]

DEMO_PRODUCTS = [
    ("Kowhai Tree", "Trees", 1850, 3999, 12,
     {"scientific_name": "Sophora microphylla", "care_level": "Easy", "sun_requirement": "Full Sun",
      "watering_needs": "Low", "is_perennial": True}),
    ("Lavender 'Hidcote'", "Shrubs", 450, 1299, 40,
     {"scientific_name": "Lavandula angustifolia", "care_level": "Easy", "sun_requirement": "Full Sun",
      "watering_needs": "Low", "is_perennial": True}),
    ("Basil Seedling", "Herbs", 120, 449, 60,
     {"scientific_name": "Ocimum basilicum", "care_level": "Moderate", "sun_requirement": "Full Sun",
      "watering_needs": "Medium", "is_perennial": False}),
    ("Monstera Deliciosa 200mm", "Indoor Plants", 1500, 4499, 8,
     {"scientific_name": "Monstera deliciosa", "care_level": "Easy", "sun_requirement": "Partial Sun",
      "watering_needs": "Medium", "is_perennial": True}),
    ("Terracotta Pot 250mm", "Pots", 600, 1599, 25, None),
    ("Sheep Pellets 8kg", "Fertilizers", 900, 1999, 30, None),
]


@click.group('seed')
def seed_group():
    """Demo data for development."""


@seed_group.command('demo')
@with_appcontext
def seed_demo():
    """Load demo suppliers, products and a customer. Requires 'system init'."""
    admin = db.session.query(User).filter_by(role=ROLE_ADMIN).order_by(User.id.asc()).first()
    if admin is None:
        click.echo("FAIL No admin user found. Run 'python -m flask system init' first.")
        return

    suppliers = []
    for data in DEMO_SUPPLIERS:
        existing = db.session.query(Supplier).filter_by(email=data["email"]).first()
        suppliers.append(existing or suppliers_service.create_supplier(dict(data)))
    click.echo(f"PASS Suppliers ready: {', '.join(s.name for s in suppliers)}")

    for i, (name, category, cost, price, stock, details) in enumerate(DEMO_PRODUCTS):
        payload = {
            "barcode": barcode_service.generate_barcode(category),
            "name": name,
            "category": category,
            "cost_price_cents": cost,
            "selling_price_cents": price,
            "current_stock": stock,
            "supplier_id": suppliers[i % len(suppliers)].id,
        }
        if details:
            payload["plant_details"] = details
        try:
            product = products_service.create_product(payload, performed_by_user_id=admin.id)
            click.echo(f"PASS Created {product.name} ({product.barcode}) stock={product.current_stock}")
        except NurseryError as e:
            click.echo(f"FAIL {name}: {e.message}")

    try:
        customers_service.create_customer({
            "name": "Mere Walker",
            "email": "mere@example.com",
            "phone": "021 555 0303",
            "address": {"city": "Auckland"},
        })
        click.echo("PASS Created demo customer")
    except NurseryError as e:
        click.echo(f"WARN  Demo customer skipped: {e.message}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(seed_group)

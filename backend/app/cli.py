# Overview: Flask CLI command groups for bootstrap and inspection.

# backend/app/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables directly (use "flask db upgrade" for migrated deployments).
# - python -m flask system seed [--password "Password123!"]
#   Idempotent demo data: owner "admin", organization, three products, default
#   settings and one sample sale. Does nothing if any user exists.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Organization management (MULTI-TENANT):
# - python -m flask orgs list
#   List all organizations with member counts.
#
# Users:
# - python -m flask users create --org-id 1 --name "Jane" --username jane --password "Password123!" --role cashier
#   Create a user inside an existing organization (prompts if options are omitted).
# - python -m flask users register --name "Jane" --username jane --password "Password123!"
#   Create a user together with a new organization they own.
# - python -m flask users list [--org-id 1]
#   List users with memberships.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Membership, Organization, Product, User
from .roles import Role
from .services import auth_service, products_service, sales_service, settings_service
from .services.auth_service import DuplicateLoginError, PasswordValidationError
from .services.tenant_service import MembershipContext
from .time_utils import utcnow


DEFAULT_SETTINGS = {
    "printer_type": "Bluetooth",
    "business_name": "My Business",
    "receipt_footer": "Thank you for your purchase!",
    "use_inventory_tracking": "true",
    "use_sku_field": "true",
}

DEMO_PRODUCTS = [
    {"name": "Coffee Beans 1kg", "sku": "SKU-1001", "price_cents": 1550, "stock_quantity": 100},
    {"name": "Milk 1L", "sku": "SKU-1002", "price_cents": 120, "stock_quantity": 200},
    {"name": "Sugar 500g", "sku": "SKU-1003", "price_cents": 80, "stock_quantity": 150},
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created.")


@system_group.command('seed')
@click.option('--password', default='Password123!', show_default=True, help='Password for the seeded owner')
@with_appcontext
def seed(password):
    """
    Seed demo data for a fresh database.

    Creates:
    - Owner user "admin" and the organization "Admin's Store"
    - Products: Coffee Beans 1kg, Milk 1L, Sugar 500g
    - Default per-user settings
    - One sample sale (1 x Coffee Beans, 2 x Milk, 20.00 received)

    SECURITY: The password is bcrypt-hashed; change it in production!
    """
    if db.session.query(User.id).first():
        click.echo("SKIP Users already exist; nothing seeded.")
        return

    try:
        admin = auth_service.register(name="Admin", username="admin", password=password)
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
        return

    org_id = admin.current_org_id
    click.echo(f"PASS Created owner: admin (org ID: {org_id})")

    for key, value in DEFAULT_SETTINGS.items():
        settings_service.put_setting(org_id, admin.id, key, value)

    products = [
        products_service.create_product(patch=dict(row), org_id=org_id, user_id=admin.id)
        for row in DEMO_PRODUCTS
    ]
    click.echo(f"PASS Created {len(products)} products")

    header = sales_service.SaleHeader(amount_received_cents=2000, transaction_date=utcnow())
    lines = [
        sales_service.CartLine(product_id=products[0].id, quantity=1),
        sales_service.CartLine(product_id=products[1].id, quantity=2),
    ]
    txn = sales_service.record_sale(org_id, admin.id, header, lines)
    click.echo(f"PASS Recorded sample transaction {txn.id} (change {txn.change_cents / 100:.2f})")

    click.echo("\nSECURITY Password securely hashed with bcrypt")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system seed' for demo data.")


@click.group('orgs')
def orgs_group():
    """Organization (tenant) management commands."""


@orgs_group.command('list')
@with_appcontext
def list_orgs():
    """List all organizations."""
    orgs = db.session.query(Organization).order_by(Organization.id).all()

    if not orgs:
        click.echo("No organizations found.")
        return

    click.echo("\n" + "="*70)
    click.echo(f"{'ID':<5} {'Name':<30} {'Members':<9} {'Active':<8} {'Products'}")
    click.echo("="*70)

    for org in orgs:
        member_count = db.session.query(Membership).filter_by(org_id=org.id).count()
        active_count = db.session.query(Membership).filter_by(org_id=org.id, is_active=True).count()
        product_count = db.session.query(Product).filter_by(org_id=org.id).count()

        click.echo(f"{org.id:<5} {org.name:<30} {member_count:<9} {active_count:<8} {product_count}")

    click.echo("="*70 + "\n")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@click.option('--name', prompt=True, help='Display name')
@click.option('--username', prompt=True, help='Username')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice([r.value for r in Role]), prompt=True, help='Role')
@with_appcontext
def create_user_cli(org_id, name, username, password, role):
    """
    Create a user inside an existing organization.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character
    """
    org = db.session.get(Organization, org_id)
    if not org:
        click.echo(f"FAIL Organization ID {org_id} not found")
        return

    # The CLI acts with owner rights inside the target organization
    operator = MembershipContext(user_id=0, org_id=org.id, role=Role.OWNER)
    try:
        user = auth_service.create_member(operator, name=name, username=username, password=password, role=role)
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
        return
    except DuplicateLoginError as e:
        click.echo(f"FAIL {str(e)}")
        return

    click.echo(f"PASS Created user: {username} (ID: {user.id}) with role '{role}'")
    click.echo(f"     Organization: {org.name} (ID: {org.id})")
    click.echo("SECURITY Password securely hashed with bcrypt")


@users_group.command('register')
@click.option('--name', prompt=True, help='Display name')
@click.option('--username', prompt=True, help='Username')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@with_appcontext
def register_user_cli(name, username, password):
    """Create a user with a new organization they own."""
    try:
        user = auth_service.register(name=name, username=username, password=password)
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        return
    except DuplicateLoginError as e:
        click.echo(f"FAIL {str(e)}")
        return

    click.echo(f"PASS Registered {username} (ID: {user.id}) as owner of org ID {user.current_org_id}")


@users_group.command('list')
@click.option('--org-id', type=int, help='Filter by organization ID')
@with_appcontext
def list_users(org_id):
    """List users with their memberships."""
    query = db.session.query(User, Membership).join(Membership, Membership.user_id == User.id)
    if org_id:
        query = query.filter(Membership.org_id == org_id)

    rows = query.order_by(User.id, Membership.org_id).all()

    if not rows:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*70)
    click.echo(f"{'ID':<5} {'Org':<5} {'Username':<20} {'Role':<10} {'Active':<8} {'Current'}")
    click.echo("="*70)

    for user, membership in rows:
        active_str = "Yes" if membership.is_active else "No"
        current_str = "*" if user.current_org_id == membership.org_id else ""
        click.echo(f"{user.id:<5} {membership.org_id:<5} {user.username:<20} {membership.role:<10} {active_str:<8} {current_str}")

    click.echo("="*70 + "\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(orgs_group)  # Multi-tenant organization management
    app.cli.add_command(users_group)

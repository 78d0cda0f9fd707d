# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/app/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--brand "Acme"] [--admin-email admin@shop.local]
#   Idempotent bootstrap: creates tables, default brands, and optionally an admin.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list [--role admin]
#   List all users with role and active status.
# - python -m flask users create --full-name "Shop Admin" --email admin@shop.local --password "Password123" --admin
#   Create a user (prompts if options are omitted).
#
# Catalog maintenance:
# - python -m flask catalog add-product --name "Field Watch" --price-cents 129900 --stock 5 [--brand "Acme"]
#   Create an active product.
# - python -m flask catalog set-stock 12 40
#   Set a product's stock to an absolute value.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Brand, User
from .models.auth import ROLE_ADMIN, ROLE_CUSTOMER, VALID_ROLES
from .services import auth_service
from .services import catalog_service
from .services.concurrency import run_in_transaction
from .services.errors import CommerceError
from .services.inventory_service import set_stock
from .validation import ConflictError, ValidationError

DEFAULT_BRANDS = ("Unbranded",)


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--brand', 'brands', multiple=True, help='Brand to seed (repeatable)')
@click.option('--admin-email', default=None, help='Create an admin with this email if missing')
@click.option('--admin-password', default=None, help='Password for --admin-email')
@with_appcontext
def init_system(brands, admin_email, admin_password):
    """
    Initialize the storefront database.

    Creates:
    - All tables (no-op for tables that already exist)
    - Default brands (or the --brand values)
    - An admin account when --admin-email is given

    SECURITY: Change the admin password immediately in production!
    """
    click.echo("START Initializing storefront...")

    db.create_all()
    click.echo("PASS Tables ready")

    for name in brands or DEFAULT_BRANDS:
        if db.session.query(Brand).filter_by(name=name).first():
            click.echo(f"WARN  Brand '{name}' already exists, skipping...")
            continue
        catalog_service.create_brand(name)
        click.echo(f"PASS Created brand: {name}")

    if admin_email:
        existing = db.session.query(User).filter_by(email=admin_email.strip().lower()).first()
        if existing:
            click.echo(f"WARN  User '{admin_email}' already exists, skipping...")
        else:
            if not admin_password:
                admin_password = click.prompt('Admin password', hide_input=True, confirmation_prompt=True)
            try:
                user = auth_service.create_admin("Administrator", admin_email, admin_password)
                click.echo(f"PASS Created admin: {user.email} (ID: {user.id})")
            except (ValidationError, ConflictError) as e:
                click.echo(f"FAIL Failed to create admin: {e}")

    click.echo("DONE Storefront initialized")


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


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--full-name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--admin', 'is_admin', is_flag=True, help='Create an admin instead of a customer')
@with_appcontext
def create_user_cli(full_name, email, password, is_admin):
    """
    Create a new user.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    """
    role = ROLE_ADMIN if is_admin else ROLE_CUSTOMER
    try:
        user = auth_service.register_user(full_name, email, password, role=role)
        click.echo(f"PASS Created user: {user.email} (ID: {user.id}) with role '{role}'")
    except (ValidationError, ConflictError) as e:
        click.echo(f"FAIL Failed to create user: {e}")


@users_group.command('list')
@click.option('--role', type=click.Choice(list(VALID_ROLES)), help='Filter by role')
@with_appcontext
def list_users(role):
    """List all users with their roles."""
    users = auth_service.list_users(role=role)

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Email':<35} {'Name':<30} {'Role':<10} {'Active'}")
    click.echo("="*90)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.email:<35} {user.full_name:<30} {user.role:<10} {active_str}")

    click.echo("="*90 + "\n")


@click.group('catalog')
def catalog_group():
    """Catalog maintenance commands."""


@catalog_group.command('add-product')
@click.option('--name', prompt=True, help='Product name')
@click.option('--price-cents', type=int, prompt=True, help='Unit price in cents')
@click.option('--stock', type=int, default=0, show_default=True, help='Initial stock')
@click.option('--model', default=None, help='Model code')
@click.option('--brand', 'brand_name', default=None, help='Brand name (created if missing)')
@click.option('--new', 'is_new', is_flag=True, help='Flag as a new arrival')
@with_appcontext
def add_product(name, price_cents, stock, model, brand_name, is_new):
    """Create an active product."""
    payload = {"name": name, "price_cents": price_cents, "stock": stock, "is_new": is_new}
    if model:
        payload["model"] = model

    try:
        if brand_name:
            brand = db.session.query(Brand).filter_by(name=brand_name).first()
            if not brand:
                brand = catalog_service.create_brand(brand_name)
                click.echo(f"PASS Created brand: {brand.name}")
            payload["brand_id"] = brand.id

        product = catalog_service.create_product(payload)
        click.echo(f"PASS Created product {product.id}: {product.name} (stock {product.stock})")
    except (CommerceError, ValidationError, ConflictError) as e:
        click.echo(f"FAIL Failed to create product: {e}")


@catalog_group.command('set-stock')
@click.argument('product_id', type=int)
@click.argument('stock', type=int)
@with_appcontext
def set_stock_cli(product_id, stock):
    """Set a product's stock to an absolute value."""
    if stock < 0:
        click.echo("FAIL Stock cannot be negative")
        return

    def _op():
        product = set_stock(product_id, stock)
        db.session.commit()
        return product

    try:
        product = run_in_transaction(_op)
        click.echo(f"PASS Product {product.id} stock is now {product.stock}")
    except CommerceError as e:
        click.echo(f"FAIL {e}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(catalog_group)

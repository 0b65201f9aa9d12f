# Overview: Flask CLI command groups for bootstrap, user management and demo data.

# backend/storefront/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to the package (PowerShell: $env:FLASK_APP="storefront").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables and the default admin and staff accounts.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User management:
# - python -m flask users list [--role staff]
# - python -m flask users create --name "Awa" --email awa@shop.local --password "Password123" --role staff
# - python -m flask users deactivate awa@shop.local
#   Disables login and revokes every open session for the account.
#
# Catalog:
# - python -m flask catalog seed
#   Inserts a few categories and products for local development (skips when products exist).

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import ROLES, Category, Product, User
from .services import products_service
from .services.auth_service import PasswordValidationError, create_user
from .services.session_service import revoke_all_user_sessions
from storefront.validation import ConflictError, ValidationError


DEFAULT_PASSWORD = "Password123"

DEFAULT_USERS = [
    ("Store Admin", "admin@storefront.local", "admin"),
    ("Store Staff", "staff@storefront.local", "staff"),
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Create the schema (when missing) and the default admin and staff users.

    All default passwords are "Password123". Change them in production.
    """
    click.echo("START Initializing storefront...")
    db.create_all()

    for name, email, role in DEFAULT_USERS:
        if db.session.query(User.id).filter_by(email=email).first():
            click.echo(f"WARN  User '{email}' already exists, skipping...")
            continue
        create_user(name=name, email=email, password=DEFAULT_PASSWORD, role=role)
        click.echo(f"PASS Created user: {email} with role '{role}'")

    click.echo("\nDefault Credentials (CHANGE IN PRODUCTION!):")
    for _, email, _ in DEFAULT_USERS:
        click.echo(f"   {email:<28} / {DEFAULT_PASSWORD}")


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
    """User inspection and management commands."""


@users_group.command('create')
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--phone', default=None, help='Phone number')
@click.option('--role', type=click.Choice(list(ROLES)), default='staff', show_default=True, help='Role')
@with_appcontext
def create_user_cli(name, email, password, phone, role):
    """
    Create a user account. Staff and admin accounts can only be made here.

    Password must be 8+ characters with an uppercase letter, a lowercase
    letter and a digit.
    """
    try:
        user = create_user(name=name, email=email, password=password, phone=phone, role=role)
        click.echo(f"PASS Created user: {user.email} with role '{user.role}' (ID: {user.id})")
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        raise SystemExit(1)
    except (ValidationError, ConflictError) as e:
        click.echo(f"FAIL Failed to create user: {str(e)}")
        raise SystemExit(1)


@users_group.command('list')
@click.option('--role', type=click.Choice(list(ROLES)), help='Filter by role')
@with_appcontext
def list_users(role):
    """List users with their role and active status."""
    query = db.session.query(User)
    if role:
        query = query.filter_by(role=role)
    users = query.order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Name':<24} {'Email':<34} {'Role':<10} {'Active'}")
    click.echo("="*90)
    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.name:<24} {user.email:<34} {user.role:<10} {active_str}")
    click.echo("="*90 + "\n")


@users_group.command('deactivate')
@click.argument('email')
@with_appcontext
def deactivate_user(email):
    """Disable an account and revoke its sessions."""
    user = db.session.query(User).filter_by(email=email.strip().lower()).first()
    if not user:
        click.echo(f"FAIL User '{email}' not found")
        raise SystemExit(1)

    user.is_active = False
    db.session.commit()
    revoked = revoke_all_user_sessions(user.id, reason="Account deactivated")
    click.echo(f"PASS Deactivated {user.email}; revoked {revoked} session(s)")


@click.group('catalog')
def catalog_group():
    """Catalog data commands."""


SEED_CATEGORIES = [
    {"name": "Shoes", "icon": "shoe"},
    {"name": "Shirts", "icon": "shirt"},
    {"name": "Accessories", "icon": "bag"},
]

SEED_PRODUCTS = [
    {
        "category": "shoes",
        "name": "Canvas Sneaker",
        "brand": "Dakar Walk",
        "gender": "unisex",
        "color": "white",
        "price": 25000,
        "purchase_price": 14000,
        "discount": 10,
        "stock_by_size": {"40": 6, "41": 8, "42": 5},
    },
    {
        "category": "shirts",
        "name": "Wax Print Shirt",
        "brand": "Sahel",
        "gender": "men",
        "color": "blue",
        "price": 15000,
        "purchase_price": 7000,
        "stock_by_size": {"M": 10, "L": 12, "XL": 4},
    },
    {
        "category": "accessories",
        "name": "Leather Belt",
        "brand": "Sahel",
        "gender": "unisex",
        "color": "brown",
        "price": 8000,
        "purchase_price": 3500,
        "stock": 20,
    },
]


@catalog_group.command('seed')
@with_appcontext
def seed_catalog():
    """Insert demo categories and products."""
    if db.session.query(Product.id).first():
        click.echo("WARN  Products already exist, skipping seed")
        return

    for payload in SEED_CATEGORIES:
        slug = products_service.slugify(payload["name"])
        if not db.session.query(Category.id).filter_by(slug=slug).first():
            products_service.create_category(payload)
            click.echo(f"PASS Created category: {payload['name']}")

    for payload in SEED_PRODUCTS:
        data = dict(payload)
        slug = products_service.slugify(data["name"])
        data["images"] = [{"url": f"https://placehold.co/600x600?text={slug}", "public_id": f"seed/{slug}"}]
        product = products_service.create_product(data)
        click.echo(f"PASS Created product: {product.name} (stock {product.stock})")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(catalog_group)

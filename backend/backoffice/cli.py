# Overview: Flask CLI command groups for bootstrap and account management.

# backend/backoffice/cli.py
# Commands (run from the backend directory with FLASK_APP=backoffice):
# - flask system init-db
#   Create all tables that do not exist yet.
# - flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - flask system seed-demo
#   Insert three locations, a service catalog, products with stock, and a staff login.
# - flask users create --email a@b.c --password "Password123!" --role operator
#   Create a user with an empty minute balance.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Location, Product, Service, User, USER_ROLES
from .services.auth_service import create_user, PasswordValidationError
from .services.inventory_service import ensure_stock_rows


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    db.create_all()
    click.echo("PASS Tables created.")


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

    click.echo("PASS Database reset complete. Run 'flask system seed-demo' to add sample data.")


@system_group.command('seed-demo')
@click.option('--password', default='Password123!', help='Password for the demo operator')
@with_appcontext
def seed_demo(password):
    """Idempotent demo data: locations 01-03, services, products, one operator."""
    locations = [
        ("City Centre", "01"),
        ("Riverside", "02"),
        ("Northgate", "03"),
    ]
    for name, code in locations:
        if not db.session.query(Location).filter_by(name=name).first():
            db.session.add(Location(name=name, location_code=code, city="Demo"))
            click.echo(f"PASS Created location {name} ({code})")

    services = [
        ("30 Minute Session", 30, 2500),
        ("60 Minute Session", 60, 4500),
        ("120 Minute Bundle", 120, 8000),
    ]
    for name, minutes, price_cents in services:
        if not db.session.query(Service).filter_by(name=name).first():
            db.session.add(Service(name=name, minutes_available=minutes, price_cents=price_cents))
            click.echo(f"PASS Created service {name}")

    products = [
        ("Accelerator Lotion", "SunCo", 1999),
        ("Aftercare Gel", "SunCo", 1299),
    ]
    for name, brand, price_cents in products:
        product = db.session.query(Product).filter_by(name=name).first()
        if not product:
            product = Product(name=name, brand=brand, price_cents=price_cents)
            db.session.add(product)
            db.session.flush()
            click.echo(f"PASS Created product {name}")
        ensure_stock_rows(product, {code: 25 for _, code in locations})

    db.session.commit()

    if not db.session.query(User).filter_by(email="operator@backoffice.local").first():
        create_user(email="operator@backoffice.local", password=password, role="operator",
                    first_name="Demo", last_name="Operator")
        click.echo("PASS Created operator@backoffice.local")

    click.echo("DONE Demo data ready.")


@click.group('users')
def users_group():
    """User management commands."""


@users_group.command('create')
@click.option('--email', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--role', type=click.Choice(USER_ROLES), default='customer', show_default=True)
@click.option('--first-name', default='')
@click.option('--last-name', default='')
@with_appcontext
def create_user_cli(email, password, role, first_name, last_name):
    try:
        user = create_user(email=email, password=password, role=role,
                           first_name=first_name, last_name=last_name)
    except (ValueError, PasswordValidationError) as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created user {user.email} (ID: {user.id}, role: {user.role})")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)

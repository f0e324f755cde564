# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/orion_pos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--password admin_26]
#   Idempotent bootstrap: creates tables, the default admin and the company config.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system cleanup-sessions --retention-days 30
#   Delete expired/revoked session tokens older than the retention window.
#
# User inspection/bootstrap:
# - python -m flask users list
#   List all users with role and active status.
# - python -m flask users create --username alice --password secret1 --role cashier
#   Create a user (prompts if options are omitted).
#
# Stock ledger:
# - python -m flask stock reconcile
#   Compare each product's stored quantity with its movement-log fold.
#   Exits with status 1 if any product disagrees.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .services import auth_service, inventory_service, session_service, settings_service
from .services.auth_service import DEFAULT_ADMIN_PASSWORD, DEFAULT_ADMIN_USERNAME
from .validation import ValidationError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--password', default=DEFAULT_ADMIN_PASSWORD, show_default=True, help='Password for the default admin')
@with_appcontext
def init_system(password):
    """
    Initialize Orion POS: schema, default admin and company config.

    SECURITY: Change the default admin password immediately in production!
    """
    click.echo("START Initializing Orion POS...")

    db.create_all()
    click.echo("PASS Tables created")

    try:
        user, created = auth_service.ensure_default_admin(password)
    except ValidationError as e:
        raise click.ClickException(f"Failed to create default admin: {e}")
    if created:
        click.echo(f"PASS Created default admin: {user.username}")
    else:
        click.echo(f"WARN  Default admin '{user.username}' already exists, skipping...")

    _, config_created = settings_service.ensure_company_config()
    click.echo("PASS Created company config" if config_created else "PASS Company config present")

    click.echo("\n" + "=" * 60)
    click.echo("DONE Orion POS Initialized Successfully!")
    click.echo("=" * 60)
    if created:
        click.echo("\nDefault Credentials (CHANGE IN PRODUCTION!):")
        click.echo(f"   {DEFAULT_ADMIN_USERNAME} / {password}")
    click.echo("")


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
@click.option('--retention-days', type=int, default=30, show_default=True)
@with_appcontext
def cleanup_sessions(retention_days):
    """Delete expired or revoked sessions older than the retention window."""
    deleted = session_service.cleanup_expired_sessions(retention_days=retention_days)
    click.echo(f"PASS Deleted {deleted} session token(s)")


@click.group('users')
def users_group():
    """User management commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(['admin', 'cashier']), default='cashier', show_default=True, help='Role')
@click.option('--full-name', default=None, help='Display name')
@with_appcontext
def create_user_cli(username, password, role, full_name):
    """Create a new user."""
    try:
        user = auth_service.create_user(username=username, password=password, role=role, full_name=full_name)
    except ValidationError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created user: {user.username} (ID: {user.id}) with role '{user.role}'")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their roles."""
    users = db.session.query(User).order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 80)
    click.echo(f"{'ID':<5} {'Username':<20} {'Role':<10} {'Active':<8} {'Default':<8} {'Full name'}")
    click.echo("=" * 80)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        default_str = "Yes" if user.is_default else "No"
        click.echo(
            f"{user.id:<5} {user.username:<20} {user.role:<10} {active_str:<8} {default_str:<8} {user.full_name or ''}"
        )

    click.echo("=" * 80 + "\n")


@click.group('stock')
def stock_group():
    """Stock ledger inspection commands."""


@stock_group.command('reconcile')
@with_appcontext
def reconcile_stock():
    """Compare stored quantities with the movement log; exit 1 on mismatch."""
    rows = inventory_service.reconcile_products()
    mismatches = [row for row in rows if not row.matches]

    for row in mismatches:
        click.echo(
            f"FAIL Product {row.product_id} ({row.product_name}): "
            f"stored={row.stored_quantity} ledger={row.ledger_quantity}"
        )

    if mismatches:
        click.echo(f"\nFAIL {len(mismatches)} of {len(rows)} product(s) out of balance")
        raise SystemExit(1)

    click.echo(f"PASS {len(rows)} product(s) reconciled, no mismatches")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(stock_group)

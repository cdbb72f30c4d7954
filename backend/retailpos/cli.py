# Overview: Flask CLI command groups for bootstrap and inspection.

# backend/retailpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--admin-username admin --admin-password "Password123!"]
#   Idempotent bootstrap: creates all tables and the first admin user.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list
#   List all users with role and active status.
# - python -m flask users create --username cashier1 --password "Password123!" --role cashier
#   Create a user (prompts if options are omitted).
#
# Schema migrations: python -m flask db <migrate|upgrade|...> (Flask-Migrate)

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .models.auth import ROLE_ADMIN, VALID_ROLES
from .services.auth_service import create_user, PasswordValidationError
from .validation import ValidationError, ConflictError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-username', default='admin', help='Username of the first admin')
@click.option('--admin-password', default='Password123!', help='Password of the first admin')
@click.option('--admin-name', default='Administrator', help='Display name of the first admin')
@with_appcontext
def init_system(admin_username, admin_password, admin_name):
    """
    Create all tables and the first admin user (skipped if an admin exists).

    SECURITY: Change the default password immediately in production!
    """
    click.echo("START Initializing retailpos...")

    db.create_all()
    click.echo("PASS Tables created")

    existing_admin = db.session.query(User).filter_by(role=ROLE_ADMIN).first()
    if existing_admin:
        click.echo(f"WARN  Admin '{existing_admin.username}' already exists, skipping...")
        return

    try:
        user = create_user(
            username=admin_username,
            password=admin_password,
            name=admin_name,
            role=ROLE_ADMIN,
        )
    except (PasswordValidationError, ValidationError, ConflictError) as e:
        raise click.ClickException(f"Failed to create admin '{admin_username}': {e}")

    click.echo(f"PASS Created admin user: {user.username}")
    click.echo("\nSECURITY WARNING: change the admin password in production!")


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
    click.echo("BUILD Creating all tables...")
    db.create_all()
    click.echo("PASS Database reset complete. Run 'flask system init' to create the admin user.")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with role and active status."""
    users = db.session.query(User).order_by(User.username).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 70)
    click.echo(f"{'ID':<5} {'Username':<20} {'Name':<25} {'Role':<10} {'Active'}")
    click.echo("=" * 70)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<20} {user.name:<25} {user.role:<10} {active_str}")

    click.echo("=" * 70 + "\n")


@users_group.command('create')
@click.option('--username', prompt=True, help='Username (case-sensitive)')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--name', default=None, help='Display name')
@click.option('--email', default=None, help='Email')
@click.option('--role', type=click.Choice(VALID_ROLES), default='cashier', show_default=True)
@with_appcontext
def create_user_cli(username, password, name, email, role):
    """Create a user."""
    try:
        user = create_user(username=username, password=password, name=name, role=role, email=email)
    except (PasswordValidationError, ValidationError, ConflictError) as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS Created user: {user.username} (ID: {user.id}) with role '{user.role}'")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)

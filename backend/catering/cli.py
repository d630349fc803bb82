# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/catering/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates the default departments and users.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection:
# - python -m flask users list [--role APPROVER]
#   List users with roles and departments.
# - python -m flask users promote someone@sasakawa.edu FINANCE_OFFICER
#   Change a user's role.
#
# Maintenance:
# - python -m flask maintenance cleanup-notifications [--retention-days 30]
#   Delete read notifications older than the retention window.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User, VALID_ROLES
from .services import maintenance_service, user_service
from .validation import ValidationError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize reference data: departments and default users.

    Creates (if missing):
    - Departments: CS, BUS, ENG, LA, FIN
    - Approvers for CS and BUS, one finance officer, three requesters

    Seeded users are linked to identity-provider accounts by e-mail on
    their first sign-in.
    """
    click.echo("START Initializing catering system...")
    db.create_all()
    created = maintenance_service.seed_reference_data()
    click.echo(f"PASS Departments created: {created['departments']}")
    click.echo(f"PASS Users created: {created['users']}")
    click.echo("DONE System initialized.")


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
    """User inspection and role management."""


@users_group.command('list')
@click.option('--role', default=None, help='Filter by role')
@with_appcontext
def list_users(role):
    """List all users with roles and departments."""
    users = user_service.list_users(role=role)
    if not users:
        click.echo("No users found.")
        return

    click.echo(f"{'ID':<5} {'Email':<35} {'Name':<25} {'Role':<16} {'Dept':<6} {'Active'}")
    click.echo("-" * 100)
    for user in users:
        dept = user.department.code if user.department else "-"
        active_str = "yes" if user.is_active else "no"
        click.echo(f"{user.id:<5} {user.email:<35} {user.name:<25} {user.role:<16} {dept:<6} {active_str}")


@users_group.command('promote')
@click.argument('email')
@click.argument('role', type=click.Choice(VALID_ROLES, case_sensitive=False))
@with_appcontext
def promote_user(email, role):
    """Set the role of the user with EMAIL."""
    user = db.session.query(User).filter(db.func.lower(User.email) == email.strip().lower()).first()
    if not user:
        click.echo(f"FAIL No user with e-mail '{email}'")
        raise SystemExit(1)

    try:
        user = user_service.change_role(user_id=user.id, role=role)
    except ValidationError as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)
    click.echo(f"PASS {user.email} is now {user.role}")


@click.group('maintenance')
def maintenance_group():
    """Retention and cleanup tasks."""


@maintenance_group.command('cleanup-notifications')
@click.option('--retention-days', type=int, default=None, help='Days to keep read notifications (default from config)')
@with_appcontext
def cleanup_notifications(retention_days):
    """Delete read notifications older than the retention window."""
    deleted = maintenance_service.cleanup_notifications(retention_days=retention_days)
    click.echo(f"PASS Deleted {deleted} read notification(s)")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(maintenance_group)

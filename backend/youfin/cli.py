# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/youfin/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Create all tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list [--role parent]
#   List users with role and verification status.
# - python -m flask users create --email parent@youfin.local --role parent ...
#   Create a verified account (prompts if options are omitted).
# - python -m flask users seed
#   Create a demo parent, child (with a savings goal) and business account.
#
# Businesses:
# - python -m flask businesses seed
#   Insert the demo Tirana businesses.
#
# Maintenance:
# - python -m flask maintenance cleanup-sessions --older-than-days 30
#   Delete expired/revoked session tokens.
# - python -m flask maintenance cleanup-security-events --retention-days 90
#   Delete security events older than the retention window.

import click
from datetime import date
from flask.cli import with_appcontext

from .extensions import db
from .models import User, SavingsGoal
from .services import auth_service
from .services import business_service
from .services import session_service
from .services import login_throttle_service
from .validation import ValidationError, ConflictError, USER_ROLES


DEMO_PASSWORD = "Password123!"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """Create all database tables that do not exist yet."""
    click.echo("START Initializing YouFin database...")
    db.create_all()
    click.echo("PASS Tables ready.")


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

    click.echo("PASS Database reset complete.")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--first-name', prompt=True, help='First name')
@click.option('--last-name', prompt=True, help='Last name')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(['parent', 'child', 'business']), prompt=True, help='Role')
@click.option('--parent-id', type=int, help='Parent user ID (child accounts)')
@click.option('--date-of-birth', help='YYYY-MM-DD (child accounts)')
@with_appcontext
def create_user_cli(first_name, last_name, email, password, role, parent_id, date_of_birth):
    """Create a verified account. Business accounts are created through the API."""
    if role == 'business':
        click.echo("FAIL Business accounts need address details; register them through /api/auth/register.")
        return

    payload = {
        "firstName": first_name,
        "lastName": last_name,
        "email": email,
        "password": password,
        "role": role,
    }
    if role == 'child':
        payload["parentId"] = parent_id
        payload["dateOfBirth"] = date_of_birth

    try:
        user, _ = auth_service.register_user(payload)
    except (ValidationError, ConflictError) as e:
        db.session.rollback()
        click.echo(f"FAIL {str(e)}")
        return

    user.is_verified = True
    db.session.commit()
    click.echo(f"PASS Created {role} user: {user.email} (ID: {user.id})")


@users_group.command('list')
@click.option('--role', type=click.Choice(list(USER_ROLES)), help='Filter by role')
@with_appcontext
def list_users(role):
    """List all users with their role."""
    query = db.session.query(User)

    if role:
        query = query.filter_by(role=role)

    users = query.order_by(User.id).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<5} {'Role':<10} {'Name':<30} {'Email':<35} {'Verified':<9} {'2FA'}")
    click.echo("="*100)

    for user in users:
        name = f"{user.first_name} {user.last_name}"
        verified_str = "Yes" if user.is_verified else "No"
        two_factor_str = "On" if user.two_factor_enabled else "Off"
        click.echo(f"{user.id:<5} {user.role:<10} {name:<30} {user.email:<35} {verified_str:<9} {two_factor_str}")

    click.echo("="*100 + "\n")


@users_group.command('seed')
@click.option('--password', default=DEMO_PASSWORD, show_default=True, help='Password for seeded users')
@with_appcontext
def seed_users(password):
    """Create demo parent, child and business accounts (skips existing emails)."""

    def ensure_user(payload: dict) -> User:
        existing = db.session.query(User).filter_by(email=payload["email"]).first()
        if existing:
            click.echo(f"SKIP {payload['email']} already exists")
            return existing
        user, _ = auth_service.register_user({**payload, "password": password})
        user.is_verified = True
        db.session.commit()
        click.echo(f"PASS Created {user.role}: {user.email}")
        return user

    parent = ensure_user({
        "firstName": "Parent",
        "lastName": "Demo",
        "email": "parent@demo.com",
        "role": "parent",
    })

    child = ensure_user({
        "firstName": "Child",
        "lastName": "Demo",
        "email": "child@demo.com",
        "role": "child",
        "parentId": parent.id,
        "dateOfBirth": date(date.today().year - 12, 1, 1).isoformat(),
    })
    if not child.goals:
        db.session.add(SavingsGoal(
            user_id=child.id,
            name="New Phone",
            target_amount_cents=50000,
            current_amount_cents=20000,
        ))
        db.session.commit()

    ensure_user({
        "firstName": "Business",
        "lastName": "Demo",
        "email": "business@demo.com",
        "role": "business",
        "businessName": "Demo Cafe",
        "businessType": "food",
        "address": {
            "street": "Rruga Myslym Shyri",
            "city": "Tirana",
            "state": "Tirana",
            "zipCode": "1001",
            "country": "Albania",
        },
        "description": "Demo business account",
    })

    click.echo(f"Seeded users share the password: {password}")


@click.group('businesses')
def businesses_group():
    """Business data commands."""


@businesses_group.command('seed')
@with_appcontext
def seed_businesses_cli():
    """Insert the demo Tirana businesses."""
    created = business_service.seed_businesses()
    for business in created:
        click.echo(f"PASS Created business: {business.name} (ID: {business.id})")


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup-sessions')
@click.option('--older-than-days', type=int, default=30, show_default=True)
@with_appcontext
def cleanup_sessions_cli(older_than_days):
    """Delete expired or revoked session tokens older than the window."""
    deleted = session_service.cleanup_expired_sessions(older_than_days=older_than_days)
    click.echo(f"Deleted {deleted} sessions older than {older_than_days} days.")


@maintenance_group.command('cleanup-security-events')
@click.option('--retention-days', type=int, default=90, show_default=True)
@with_appcontext
def cleanup_security_events_cli(retention_days):
    """Delete security events older than retention window."""
    deleted = login_throttle_service.cleanup_security_events(retention_days=retention_days)
    click.echo(f"Deleted {deleted} security events older than {retention_days} days.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(businesses_group)
    app.cli.add_command(maintenance_group)

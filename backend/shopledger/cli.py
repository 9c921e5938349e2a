# Overview: Flask CLI command groups for bootstrap, user admin and ledger checks.

# backend/shopledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--email admin@shopledger.local --password "Admin12345"]
#   Idempotent bootstrap: creates all tables and a default super admin.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list
#   List all users with role and active status.
# - python -m flask users create --name "Asha" --email asha@example.com --password "secret123" --role sub_admin
#   Create a user (prompts if options are omitted).
#
# Ledger consistency:
# - python -m flask ledger check
#   Compare every customer's cached total due with the sum of their bill dues.
# - python -m flask ledger check --fix
#   Rewrite drifted totals from the bills and record a ledger.reconciled audit event.

import click
from flask.cli import with_appcontext

from .errors import ValidationError
from .extensions import db
from .models import User
from .models.auth import ROLE_SUPER_ADMIN, VALID_ROLES
from .services import auth_service, ledger_service


DEFAULT_ADMIN_EMAIL = "admin@shopledger.local"
DEFAULT_ADMIN_PASSWORD = "Admin12345"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--name', default='Super Admin', help='Display name of the default super admin')
@click.option('--email', default=DEFAULT_ADMIN_EMAIL, help='Login email of the default super admin')
@click.option('--password', default=DEFAULT_ADMIN_PASSWORD, help='Initial password')
@with_appcontext
def init_system(name, email, password):
    """
    Create tables and a default super admin.

    Safe to run repeatedly: existing tables and users are left alone.

    SECURITY: Change the default password immediately in production!
    """
    click.echo("START Initializing shopledger...")
    db.create_all()
    click.echo("PASS Tables ready")

    if db.session.query(User).filter(User.role == ROLE_SUPER_ADMIN).first():
        click.echo("WARN  A super admin already exists, skipping...")
        return

    try:
        user = auth_service.create_user({
            "name": name,
            "email": email,
            "password": password,
            "role": ROLE_SUPER_ADMIN,
        })
    except ValidationError as e:
        click.echo(f"FAIL Could not create super admin: {e.message}")
        raise SystemExit(1)

    click.echo(f"PASS Created super admin: {user.email} (ID: {user.id})")
    if password == DEFAULT_ADMIN_PASSWORD:
        click.echo("\nSECURITY WARNING: default credentials in use. Change the password now!")


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
    click.echo("PASS Database reset complete. Run 'flask system init' to create a super admin.")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@with_appcontext
def list_users_cli():
    users = auth_service.list_users()
    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 80)
    click.echo(f"{'ID':<5} {'Name':<24} {'Email':<32} {'Role':<12} {'Active'}")
    click.echo("=" * 80)
    for u in users:
        click.echo(f"{u.id:<5} {u.name[:24]:<24} {u.email[:32]:<32} {u.role:<12} {'yes' if u.is_active else 'no'}")
    click.echo("=" * 80 + "\n")


@users_group.command('create')
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(VALID_ROLES), prompt=True, help='Role')
@with_appcontext
def create_user_cli(name, email, password, role):
    """
    Create a new user.

    Password must be at least 8 characters with a letter and a digit.
    """
    try:
        user = auth_service.create_user({
            "name": name,
            "email": email,
            "password": password,
            "role": role,
        })
    except ValidationError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)
    click.echo(f"PASS Created user: {user.email} (ID: {user.id}) with role '{user.role}'")


@click.group('ledger')
def ledger_group():
    """Customer balance consistency checks."""


@ledger_group.command('check')
@click.option('--fix', is_flag=True, help='Rewrite drifted customer totals from their bills')
@with_appcontext
def ledger_check(fix):
    """Verify bill amounts and customer totals; exit 1 if anything is off and not fixed."""
    bad_bills = ledger_service.bill_anomalies()
    for row in bad_bills:
        click.echo(
            f"FAIL Bill {row['bill_number']} (ID: {row['bill_id']}): "
            f"total {row['total_cents']} paid {row['paid_amount_cents']} due {row['due_amount_cents']}"
        )

    drift = ledger_service.customer_drift()
    for row in drift:
        click.echo(
            f"FAIL Customer {row['name']} (ID: {row['customer_id']}): cached {row['cached_total_due_cents']} "
            f"vs bills {row['bills_due_cents']} (diff {row['difference_cents']})"
        )

    if not bad_bills and not drift:
        click.echo("PASS Ledger consistent")
        return

    if fix and drift:
        fixed = ledger_service.reconcile_customer_dues()
        click.echo(f"FIXED {len(fixed)} customer total(s) rebuilt from bills")
        drift = []

    if bad_bills or drift:
        raise SystemExit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(ledger_group)

# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/shopledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables and the singleton balances row.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Profile inspection/bootstrap:
# - python -m flask users list [--pending]
#   List profiles with designation and approval status.
# - python -m flask users create --phone 9876543210 --name "Asha" --pin 123456 --designation "Store Manager"
#   Create a profile (prompts if options are omitted).
# - python -m flask users approve 9876543210 [--revoke]
#   Approve (or revoke) a profile by phone number.
#
# Ledger inspection:
# - python -m flask balances show
#   Print shop and bank balances and the stock per category.

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import LedgerError
from .extensions import db
from .models import KNOWN_ROLES, Profile
from .services import auth_service, ledger_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Create tables (if missing) and the singleton balances record.

    Safe to run repeatedly.
    """
    click.echo("START Initializing shop ledger...")
    db.create_all()

    balance = ledger_service.get_balances()
    click.echo(f"PASS Balances record ready (shop={balance.shop_balance}, bank={balance.bank_balance})")

    admin_phone = current_app.config.get("ADMIN_PHONE")
    admin = db.session.query(Profile).filter_by(phone=admin_phone).first()
    if admin:
        click.echo(f"PASS Admin profile present: {admin.name} ({admin.phone})")
    else:
        click.echo(f"WARN No admin profile yet. Sign up with {admin_phone} to create it.")


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
    ledger_service.get_balances()

    click.echo("PASS Database reset complete")


@click.group('users')
def users_group():
    """Profile inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--phone', prompt=True, help='10-digit phone number')
@click.option('--name', prompt=True, help='Display name')
@click.option('--pin', prompt=True, hide_input=True, confirmation_prompt=True, help='6-digit PIN')
@click.option('--designation', type=click.Choice(list(KNOWN_ROLES)), default='Store Manager', show_default=True)
@click.option('--approve', is_flag=True, help='Approve the profile immediately')
@with_appcontext
def create_user_cli(phone, name, pin, designation, approve):
    """Create a profile the same way the signup endpoint does."""
    try:
        profile = auth_service.register_profile(phone=phone, pin=pin, name=name, designation=designation)
    except LedgerError as e:
        raise click.ClickException(f"{e.code}: {e.message}")

    if approve and not profile.is_approved:
        auth_service.set_approval(profile.id, True)

    click.echo(f"PASS Created profile {profile.id}: {profile.name} ({profile.phone}) as {profile.designation}")


@users_group.command('list')
@click.option('--pending', is_flag=True, help='Only profiles awaiting approval')
@with_appcontext
def list_users(pending):
    """List profiles with designation and approval status."""
    profiles = auth_service.list_profiles(approved=False if pending else None)

    if not profiles:
        click.echo("No profiles found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Phone':<12} {'Name':<24} {'Designation':<16} {'Approved':<9} {'Admin'}")
    click.echo("="*80)

    for p in profiles:
        click.echo(
            f"{p.id:<5} {p.phone:<12} {p.name[:23]:<24} {p.designation:<16} "
            f"{'yes' if p.is_approved else 'no':<9} {'yes' if p.is_admin else ''}"
        )


@users_group.command('approve')
@click.argument('phone')
@click.option('--revoke', is_flag=True, help='Revoke approval instead')
@with_appcontext
def approve_user(phone, revoke):
    """Approve (or revoke) the profile registered to PHONE."""
    profile = db.session.query(Profile).filter_by(phone=auth_service.normalize_phone(phone)).first()
    if not profile:
        raise click.ClickException(f"No profile with phone {phone}")

    result = auth_service.set_approval(profile.id, not revoke)
    if not result["success"]:
        raise click.ClickException(result["error"])

    click.echo(f"PASS {profile.name} is now {'revoked' if revoke else 'approved'}")


@click.group('balances')
def balances_group():
    """Ledger inspection commands."""


@balances_group.command('show')
@with_appcontext
def show_balances():
    """Print balances and per-category stock."""
    snapshot = ledger_service.get_snapshot()
    symbol = current_app.config.get("CURRENCY_SYMBOL", "")

    click.echo(f"Shop balance: {symbol}{snapshot.shop_balance}")
    click.echo(f"Bank balance: {symbol}{snapshot.bank_balance}")
    if not snapshot.categories:
        click.echo("No categories.")
        return
    click.echo(f"\n{'Price':>8}  Stock")
    for category in snapshot.categories:
        click.echo(f"{symbol}{category.price:>7}  {category.stock}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(balances_group)

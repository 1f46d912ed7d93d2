# Overview: Flask CLI command groups for bootstrap, payment recovery, and catalog maintenance.

# backend/storefront/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to "storefront:create_app".
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--admin-email admin@lorcana.local] [--password ...]
#   Idempotent bootstrap: creates tables and the first admin user.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list
# - python -m flask users create --email a@b.cl --password "Secret123" [--admin]
# - python -m flask users grant-admin a@b.cl
# - python -m flask users revoke-admin a@b.cl
#
# Payment recovery:
# - python -m flask payments process 131919510493
#   Fetch the payment from Mercado Pago and fulfill it (idempotent).
# - python -m flask payments sweep --hours 24
#   Fulfill approved payments from the window that have no order.
# - python -m flask payments backfill-fees [--payment-id 131919510493]
#   Fill gateway fee / net amounts on orders missing them.
#
# Catalog:
# - python -m flask catalog set-stock tfc-1 foil 3

import json
from datetime import timedelta

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .services import auth_service, catalog_service, payment_pipeline, reconciliation_service
from .services.auth_service import PasswordValidationError, UserError
from .services.catalog_service import CatalogError
from .services.fulfillment_service import PaymentNotApproved, SYSTEM_USER
from .services.gateway_client import GatewayError
from .services.order_store import StoreWriteFailure
from .services.reconciliation_service import ReconciliationError
from .time_utils import utcnow


CLI_ACTOR = "cli"


def _user_by_email(email: str) -> User:
    user = db.session.query(User).filter_by(email=email.strip().lower()).first()
    if not user:
        raise click.ClickException(f"User '{email}' not found")
    return user


# =============================================================================
# SYSTEM
# =============================================================================

@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-email', default=None, help='Admin email (defaults to BOOTSTRAP_ADMIN_EMAIL)')
@click.option('--password', default='Password123', help='Initial admin password')
@with_appcontext
def init_system(admin_email, password):
    """
    Create all tables and the first admin user.

    SECURITY: Change the default password immediately in production!
    """
    from flask import current_app

    click.echo("START Initializing storefront...")
    db.create_all()
    click.echo("PASS Tables ready")

    email = (admin_email or current_app.config["BOOTSTRAP_ADMIN_EMAIL"]).strip().lower()
    existing = db.session.query(User).filter_by(email=email).first()
    if existing:
        if not auth_service.is_admin(existing.id):
            auth_service.grant_admin(existing.id, SYSTEM_USER)
        click.echo(f"WARN  User '{email}' already exists, ensured admin role")
        return

    try:
        auth_service.create_user(email, password, name="Administrator", is_admin=True)
    except PasswordValidationError as e:
        raise click.ClickException(f"Password validation failed: {e}")

    click.echo(f"PASS Created admin user: {email}")
    click.echo("\nSECURITY Change this password immediately in production!")


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


# =============================================================================
# USERS
# =============================================================================

@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--name', default=None, help='Display name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--admin', 'make_admin', is_flag=True, help='Grant the admin role')
@with_appcontext
def create_user_cli(email, name, password, make_admin):
    """
    Create a new user.

    Password must be 8+ characters with at least one letter and one digit.
    """
    try:
        user = auth_service.create_user(email, password, name=name, is_admin=make_admin)
    except PasswordValidationError as e:
        raise click.ClickException(f"Password validation failed: {e}")
    except UserError as e:
        raise click.ClickException(str(e))

    role = "admin" if make_admin else "customer"
    click.echo(f"PASS Created user: {user.email} (ID: {user.id}) as {role}")


@users_group.command('grant-admin')
@click.argument('email')
@with_appcontext
def grant_admin_cli(email):
    user = _user_by_email(email)
    auth_service.grant_admin(user.id, CLI_ACTOR)
    click.echo(f"PASS {user.email} is now an admin")


@users_group.command('revoke-admin')
@click.argument('email')
@with_appcontext
def revoke_admin_cli(email):
    user = _user_by_email(email)
    try:
        auth_service.revoke_admin(user.id, CLI_ACTOR)
    except UserError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Removed admin role from {user.email}")


@users_group.command('list')
@with_appcontext
def list_users_cli():
    """List all users with their roles."""
    users = auth_service.list_users()
    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Email':<35} {'Active':<8} {'Roles'}")
    click.echo("="*80)
    for user in users:
        roles_str = ", ".join(r.role for r in user.roles) or "none"
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.email:<35} {active_str:<8} {roles_str}")
    click.echo("="*80 + "\n")


# =============================================================================
# PAYMENTS
# =============================================================================

@click.group('payments')
def payments_group():
    """Payment recovery and reconciliation commands."""


@payments_group.command('process')
@click.argument('payment_id')
@with_appcontext
def process_payment_cli(payment_id):
    """Fetch a payment from Mercado Pago and fulfill it."""
    try:
        payment, result = payment_pipeline.fulfill_payment(payment_id, payment_pipeline.SOURCE_CLI)
    except PaymentNotApproved as e:
        raise click.ClickException(str(e))
    except (GatewayError, StoreWriteFailure) as e:
        raise click.ClickException(f"{type(e).__name__}: {e}")

    click.echo(f"PASS Payment {payment.payment_id}: {result.overall_status} (order {result.order_id})")
    for item in result.per_item_results:
        click.echo(
            f"     {item.item_id} [{item.version}] {item.quantity_fulfilled}/{item.quantity_requested} {item.outcome}"
        )


@payments_group.command('sweep')
@click.option('--hours', default=24, type=click.IntRange(min=1), help='Look-back window in hours')
@with_appcontext
def sweep_payments_cli(hours):
    """Fulfill approved payments in the window that have no order."""
    try:
        report = reconciliation_service.sweep_unfulfilled_payments(since=utcnow() - timedelta(hours=hours))
    except GatewayError as e:
        raise click.ClickException(f"Gateway search failed: {e}")

    click.echo(
        f"PASS Scanned {report.scanned}: {report.already_fulfilled} already fulfilled, "
        f"{len(report.fulfilled)} fulfilled now, {len(report.items_empty)} without items, {len(report.failed)} failed"
    )
    for failure in report.failed:
        click.echo(f"FAIL {failure['paymentId']}: {failure['error']}")


@payments_group.command('backfill-fees')
@click.option('--payment-id', default=None, help='Only this payment (default: all orders missing fees)')
@with_appcontext
def backfill_fees_cli(payment_id):
    """Fill Mercado Pago fee and net amounts on orders."""
    try:
        results = reconciliation_service.backfill_order_fees(
            payment_id=payment_id, update_all=payment_id is None
        )
    except (ReconciliationError, GatewayError) as e:
        raise click.ClickException(str(e))

    for result in results:
        status = "PASS" if result["success"] else "FAIL"
        click.echo(f"{status} {result['paymentId']}: {json.dumps(result, default=str)}")
    click.echo(f"DONE {sum(1 for r in results if r['success'])}/{len(results)} orders updated")


# =============================================================================
# CATALOG
# =============================================================================

@click.group('catalog')
def catalog_group():
    """Catalog maintenance commands."""


@catalog_group.command('set-stock')
@click.argument('card_id')
@click.argument('version', type=click.Choice(['normal', 'foil']))
@click.argument('stock', type=click.IntRange(min=0))
@with_appcontext
def set_stock_cli(card_id, version, stock):
    try:
        record = catalog_service.set_stock(card_id, version, stock, CLI_ACTOR)
    except CatalogError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS {record.card_id} [{record.version}] stock = {record.stock}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(payments_group)
    app.cli.add_command(catalog_group)

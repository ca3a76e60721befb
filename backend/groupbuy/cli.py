# Overview: Flask CLI command groups for bootstrap, catalog seeding, users and audits.

# backend/groupbuy/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to groupbuy (PowerShell: $env:FLASK_APP="groupbuy").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init --email admin@groupbuy.local --password "Password123!"
#   Idempotent: creates tables, default feature flags and the first admin.
#
# Catalog:
# - python -m flask catalog seed
#   Insert the built-in peptide list (already present products are skipped).
# - python -m flask catalog list [--all]
#
# Users:
# - python -m flask users list [--role host]
# - python -m flask users create --email host@example.com --password "Password123!" --role host
# - python -m flask users set-role host@example.com host
#
# Audits / maintenance:
# - python -m flask integrity check
#   Exit code 1 when any invariant is violated.
# - python -m flask maintenance cleanup-security-events --retention-days 90

import click
from datetime import timedelta
from flask.cli import with_appcontext

from .extensions import db
from .models import User, SecurityEvent
from .models.auth import USER_ROLES, ROLE_ADMIN
from .services import catalog_service, settings_service, integrity_service
from .services.auth_service import create_user, set_role, normalize_email, AccountError, PasswordValidationError
from .time_utils import utcnow


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@click.option('--email', default='admin@groupbuy.local', help='Admin email')
@click.option('--password', default='Password123!', help='Admin password')
@with_appcontext
def init_system(email, password):
    """
    Initialize the store: tables, feature flags and an admin account.

    SECURITY: change the default admin password immediately in production!
    """
    click.echo("START Initializing group-buy store...")

    db.create_all()
    click.echo("PASS Tables ready")

    created = settings_service.ensure_defaults()
    click.echo(f"PASS Feature flags ready ({created} created)")

    existing = db.session.query(User).filter_by(email=normalize_email(email)).first()
    if existing:
        click.echo(f"WARN  User '{existing.email}' already exists, skipping...")
        return

    try:
        user = create_user(email=email, password=password, role=ROLE_ADMIN)
    except (AccountError, PasswordValidationError) as e:
        click.echo(f"FAIL Could not create admin: {e}")
        return
    click.echo(f"PASS Created admin: {user.email}")


@click.group('catalog')
def catalog_group():
    """Product catalog commands."""


@catalog_group.command('seed')
@with_appcontext
def seed_catalog_cli():
    """Insert the built-in peptide catalog."""
    result = catalog_service.seed_catalog()
    click.echo(
        f"PASS Seeded catalog: {result['created']} created, "
        f"{result['skipped']} skipped, {result['total']} total"
    )


@catalog_group.command('list')
@click.option('--all', 'include_inactive', is_flag=True, help='Include inactive products')
@with_appcontext
def list_catalog_cli(include_inactive):
    result = catalog_service.list_products(include_inactive=include_inactive)
    if not result["items"]:
        click.echo("No products found.")
        return

    click.echo(f"{'ID':<5} {'Name':<28} {'Category':<24} {'Vial':>10} {'Box':>11} {'Active'}")
    for p in result["items"]:
        click.echo(
            f"{p['id']:<5} {p['name'][:28]:<28} {p['category'][:24]:<24} "
            f"{p['price_per_vial_cents'] / 100:>10.2f} {p['price_per_box_cents'] / 100:>11.2f} "
            f"{'Yes' if p['is_active'] else 'No'}"
        )
    click.echo(f"\n{result['count']} product(s)")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@click.option('--role', type=click.Choice(USER_ROLES), default=None)
@with_appcontext
def list_users(role):
    query = db.session.query(User)
    if role:
        query = query.filter(User.role == role)
    users = query.order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo(f"{'ID':<5} {'Email':<35} {'Role':<10} {'Active'}")
    for u in users:
        click.echo(f"{u.id:<5} {u.email:<35} {u.role:<10} {'Yes' if u.is_active else 'No'}")


@users_group.command('create')
@click.option('--email', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--role', type=click.Choice(USER_ROLES), default='customer')
@click.option('--first-name', default=None)
@click.option('--last-name', default=None)
@with_appcontext
def create_user_cli(email, password, role, first_name, last_name):
    try:
        user = create_user(
            email=email,
            password=password,
            first_name=first_name,
            last_name=last_name,
            role=role,
        )
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {e}")
        return
    except AccountError as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(f"PASS Created user: {user.email} with role '{user.role}'")


@users_group.command('set-role')
@click.argument('email')
@click.argument('role', type=click.Choice(USER_ROLES))
@with_appcontext
def set_role_cli(email, role):
    user = db.session.query(User).filter_by(email=normalize_email(email)).first()
    if not user:
        click.echo(f"FAIL User '{email}' not found")
        return
    set_role(user.id, role)
    click.echo(f"PASS {user.email} is now '{role}' (sessions revoked)")


@click.group('integrity')
def integrity_group():
    """Read-only invariant audits."""


@integrity_group.command('check')
@with_appcontext
@click.pass_context
def integrity_check(ctx):
    report = integrity_service.run_integrity_checks()
    checked = report["checked"]
    if report["ok"]:
        click.echo(
            f"PASS No violations ({checked['memberships']} memberships, {checked['orders']} orders checked)"
        )
        return

    click.echo(f"FAIL {len(report['violations'])} violation(s):")
    for v in report["violations"]:
        target = v.get("order_code") or f"batch_product {v.get('batch_product_id')}"
        click.echo(f"  - {v['check']}: {target}")
    ctx.exit(1)


@click.group('maintenance')
def maintenance_group():
    """Housekeeping commands."""


@maintenance_group.command('cleanup-security-events')
@click.option('--retention-days', default=90, show_default=True, type=int)
@with_appcontext
def cleanup_security_events(retention_days):
    cutoff = utcnow() - timedelta(days=retention_days)
    deleted = db.session.query(SecurityEvent).filter(SecurityEvent.occurred_at < cutoff).delete()
    db.session.commit()
    click.echo(f"PASS Deleted {deleted} security event(s) older than {retention_days} days")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(users_group)
    app.cli.add_command(integrity_group)
    app.cli.add_command(maintenance_group)

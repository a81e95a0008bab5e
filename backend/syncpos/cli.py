# Overview: Flask CLI command groups for bootstrap, activation, sync and inspection.

# backend/syncpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Use: flask --app wsgi <group> <command> [options]
#
# Local store:
# - flask --app wsgi system init-db
#   Create all tables in the local store (idempotent). Prefer `flask db upgrade`.
# - flask --app wsgi system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Activation and sync:
# - flask --app wsgi sync activate --license-key XXXX-XXXX
#   Validate the license remotely, save the tenant and run the initial pull.
# - flask --app wsgi sync pull
#   Re-run a full pull for the activated tenant (remote wins).
# - flask --app wsgi sync push [--entity sales --entity sale_items]
#   Push unsynced rows now (all entities in dependency order by default).
# - flask --app wsgi sync status
#   Show the activated tenant and unsynced row counts per entity.
#
# Users:
# - flask --app wsgi users list
# - flask --app wsgi users create --username admin --password secret1 --role admin

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .services.activation_service import activate, ActivationError
from .services.auth_service import PasswordValidationError
from .services.tenant_service import get_activated_tenant, TenantContext
from .services import user_service
from .sync.engine import SyncEngine, SyncResult, unsynced_counts
from .sync.registry import ENTITY_ORDER
from .sync.remote import RemoteGateway, RemoteError
from .validation import ValidationError, ConflictError


def _echo_result(result: SyncResult) -> None:
    click.echo(f"{result.kind.upper()} {result.status}")
    for name, counts in result.counts.items():
        click.echo(
            f"  {name:<18} pulled={counts.pulled} pushed={counts.pushed} "
            f"skipped={counts.skipped} failed={counts.failed}"
        )
    if result.error:
        click.echo(f"  error: {result.error}")


def _require_tenant():
    tenant = get_activated_tenant()
    if tenant is None:
        raise click.ClickException("Installation is not activated. Run: flask sync activate --license-key ...")
    return tenant


def _remote() -> RemoteGateway:
    try:
        return RemoteGateway.from_config(current_app.config)
    except RemoteError as e:
        raise click.ClickException(str(e))


@click.group('system')
def system_group():
    """Local store bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Local store initialized")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        raise click.ClickException("Refusing to reset without --yes")
    db.drop_all()
    db.create_all()
    click.echo("PASS Local store reset")


@click.group('sync')
def sync_group():
    """Activation and synchronization commands."""


@sync_group.command('activate')
@click.option('--license-key', prompt=True, help='License key issued for the tenant')
@with_appcontext
def activate_command(license_key):
    with _remote() as remote:
        try:
            tenant, result = activate(license_key, remote, on_progress=click.echo)
        except ActivationError as e:
            raise click.ClickException(str(e))
    _echo_result(result)
    click.echo(f"DONE Tenant {tenant.uuid} activated")


@sync_group.command('pull')
@with_appcontext
def pull_command():
    tenant = _require_tenant()
    with _remote() as remote:
        result = SyncEngine(tenant.uuid, remote, on_progress=click.echo).pull()
    _echo_result(result)
    if not result.ok:
        raise SystemExit(1)


@sync_group.command('push')
@click.option('--entity', 'entities', multiple=True, type=click.Choice(ENTITY_ORDER), help='Limit to entity (repeatable)')
@with_appcontext
def push_command(entities):
    tenant = _require_tenant()
    # Keep dependency order even when a subset is requested
    names = [name for name in ENTITY_ORDER if not entities or name in entities]
    with _remote() as remote:
        result = SyncEngine(tenant.uuid, remote, on_progress=click.echo).push_entities(names)
    _echo_result(result)
    if not result.ok:
        raise SystemExit(1)


@sync_group.command('status')
@with_appcontext
def status_command():
    tenant = _require_tenant()
    click.echo(f"Tenant: {tenant.uuid} ({tenant.status}), activated {tenant.activated_at}")
    counts = unsynced_counts(tenant.uuid)
    for name in ENTITY_ORDER:
        click.echo(f"  {name:<18} unsynced={counts[name]}")


@click.group('users')
def users_group():
    """User inspection/bootstrap for the activated tenant."""


@users_group.command('list')
@with_appcontext
def list_users():
    tenant = _require_tenant()
    for user in user_service.list_users(tenant.uuid):
        status = "active" if user.is_active else "inactive"
        click.echo(f"{user.id:>4}  {user.username:<20} {user.role:<10} {status}")


@users_group.command('create')
@click.option('--username', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--role', default='cashier', show_default=True)
@click.option('--firstname', default='')
@click.option('--lastname', default='')
@with_appcontext
def create_user_command(username, password, role, firstname, lastname):
    tenant = _require_tenant()
    ctx = TenantContext(tenant_id=tenant.uuid)
    try:
        user = user_service.create_user(
            ctx, username, password, role=role, firstname=firstname, lastname=lastname,
        )
    except (ValidationError, ConflictError, PasswordValidationError) as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created user {user.username} (ID: {user.id}) with role '{user.role}'")


def register_commands(app):
    app.cli.add_command(system_group)
    app.cli.add_command(sync_group)
    app.cli.add_command(users_group)

# Overview: Flask CLI command groups for bootstrap, tokens, and maintenance.

# backend/gymoffice/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--branch "Main Gym"]
#   Idempotent bootstrap: creates the default branch and an admin user.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users create --username frontdesk --email desk@gym.local --role staff
#   Create a user (prompts if options are omitted).
# - python -m flask users token --username frontdesk [--ttl-hours 24]
#   Issue a bearer token for the API. The token is printed once and never stored.
# - python -m flask users revoke --token <token>
#   Revoke a bearer token before it expires (prompts without echo if omitted).
#
# Subscriptions:
# - python -m flask subscriptions expire
#   Store active -> expired for every lapsed subscription (safe to cron).
#
# Inventory:
# - python -m flask inventory low-stock [--branch-id 1]
#   List items at or below their reorder level.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Branch, InventoryItem, User
from .models.users import USER_ROLES
from .errors import ServiceError
from .services import session_service, subscription_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--branch', 'branch_name', default='Main Gym', help='Default branch name')
@click.option('--branch-code', default='MAIN', help='Default branch code')
@with_appcontext
def init_system(branch_name, branch_code):
    """
    Initialize the back office: default branch and an admin user.

    Safe to run repeatedly; existing rows are reused.
    """
    click.echo("START Initializing gym back office...")

    branch = db.session.query(Branch).first()
    if not branch:
        branch = Branch(name=branch_name, code=branch_code)
        db.session.add(branch)
        db.session.commit()
        click.echo(f"PASS Created default branch: {branch.name} (ID: {branch.id})")
    else:
        click.echo(f"PASS Using existing branch: {branch.name} (ID: {branch.id})")

    admin = db.session.query(User).filter_by(username="admin").first()
    if not admin:
        admin = User(
            branch_id=branch.id,
            username="admin",
            email="admin@gym.local",
            full_name="Administrator",
            role="admin",
        )
        db.session.add(admin)
        db.session.commit()
        click.echo(f"PASS Created admin user (ID: {admin.id})")
    else:
        click.echo(f"PASS Using existing admin user (ID: {admin.id})")

    click.echo("\nNext: python -m flask users token --username admin")


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
    """User bootstrap and token commands."""


@users_group.command('create')
@click.option('--branch-id', type=int, help='Home branch ID (uses the first branch if not specified)')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--full-name', default=None, help='Display name')
@click.option('--role', type=click.Choice(USER_ROLES), default='member', show_default=True, help='Role')
@with_appcontext
def create_user_cli(branch_id, username, email, full_name, role):
    """Create a member or staff account."""
    if branch_id is None:
        branch = db.session.query(Branch).first()
        if not branch:
            raise click.ClickException("No branch exists. Run 'flask system init' first.")
        branch_id = branch.id
    elif db.session.get(Branch, branch_id) is None:
        raise click.ClickException(f"Branch {branch_id} not found")

    taken = db.session.query(User).filter(
        (User.username == username) | (User.email == email.lower())
    ).first()
    if taken:
        raise click.ClickException("A user with this username or email already exists")

    user = User(branch_id=branch_id, username=username, email=email.lower(), full_name=full_name, role=role)
    db.session.add(user)
    db.session.commit()
    click.echo(f"PASS Created user {user.username} (ID: {user.id}, role: {user.role})")


@users_group.command('token')
@click.option('--username', prompt=True, help='Username')
@click.option('--ttl-hours', type=int, default=None, help='Token lifetime (defaults to SESSION_TTL_HOURS)')
@with_appcontext
def issue_token_cli(username, ttl_hours):
    """Issue an API bearer token for a user."""
    user = db.session.query(User).filter_by(username=username).first()
    if not user:
        raise click.ClickException(f"User {username} not found")
    if not user.is_active:
        raise click.ClickException(f"User {username} is deactivated")

    token = session_service.issue_token(user.id, ttl_hours=ttl_hours)
    click.echo(token)


@users_group.command('revoke')
@click.option('--token', prompt=True, hide_input=True, help='Bearer token to revoke')
@with_appcontext
def revoke_token_cli(token):
    """Revoke an API bearer token."""
    if not session_service.revoke_token(token.strip()):
        raise click.ClickException("Token not found or already revoked")
    click.echo("PASS Token revoked")


@click.group('subscriptions')
def subscriptions_group():
    """Subscription maintenance commands."""


@subscriptions_group.command('expire')
@with_appcontext
def expire_subscriptions_cli():
    """Store the expired status for every lapsed subscription."""
    try:
        expired = subscription_service.expire_lapsed_subscriptions()
    except ServiceError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Expired {len(expired)} subscription(s)")


@click.group('inventory')
def inventory_group():
    """Inventory inspection commands."""


@inventory_group.command('low-stock')
@click.option('--branch-id', type=int, help='Filter by branch ID')
@with_appcontext
def low_stock_cli(branch_id):
    """List items at or below their reorder level."""
    q = db.session.query(InventoryItem).filter(InventoryItem.quantity <= InventoryItem.reorder_level)
    if branch_id is not None:
        q = q.filter(InventoryItem.branch_id == branch_id)
    items = q.order_by(InventoryItem.quantity.asc(), InventoryItem.sku.asc()).all()

    if not items:
        click.echo("PASS No low-stock items")
        return

    click.echo(f"{'SKU':<16} {'NAME':<32} {'QTY':>6} {'REORDER':>8}")
    for item in items:
        click.echo(f"{item.sku:<16} {item.name[:32]:<32} {item.quantity:>6} {item.reorder_level:>8}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(subscriptions_group)
    app.cli.add_command(inventory_group)

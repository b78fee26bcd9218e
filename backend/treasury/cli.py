# Overview: Flask CLI command groups for bootstrap and cash-register inspection.

# backend/treasury/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to treasury (PowerShell: $env:FLASK_APP="treasury").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Operators:
# - python -m flask users create --username cajero1 --name "Cajero Uno"
#   Create an operator.
# - python -m flask users list
#   List operators with their open session, if any.
#
# Cash register inspection:
# - python -m flask cash sessions --status open --limit 20
#   List recent sessions with totals and differences.
# - python -m flask cash discrepancies --threshold-cents 1000
#   List closed sessions whose difference exceeds the threshold.

import click
from flask.cli import with_appcontext

from .extensions import db
from .money import format_cents


@click.group('system')
def system_group():
    """System bootstrap and maintenance commands."""


@system_group.command('init-db')
@with_appcontext
def init_db_cli():
    """Create all tables (idempotent)."""
    from . import models  # noqa: F401

    db.create_all()
    click.echo("PASS Database tables created")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset')
@with_appcontext
def reset_db_cli(yes):
    """
    DEV/TEST only: drop and recreate all tables.

    Example:
        flask system reset-db --yes
    """
    if not yes:
        click.echo("FAIL Refusing to reset without --yes")
        raise SystemExit(1)

    from . import models  # noqa: F401

    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


@click.group('users')
def users_group():
    """Operator commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Unique username')
@click.option('--name', prompt=True, help='Display name')
@with_appcontext
def create_user_cli(username, name):
    """
    Create an operator.

    Example:
        flask users create --username cajero1 --name "Cajero Uno"
    """
    from .models import User

    if db.session.query(User).filter_by(username=username).first():
        click.echo(f"FAIL User '{username}' already exists")
        raise SystemExit(1)

    user = User(username=username, name=name, is_active=True)
    db.session.add(user)
    db.session.commit()
    click.echo(f"PASS Created user {user.username} (ID {user.id})")


@users_group.command('list')
@with_appcontext
def list_users_cli():
    """List operators and their open session."""
    from .models import User, CashRegisterSession, SessionStatus

    users = db.session.query(User).order_by(User.username).all()
    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*70)
    click.echo(f"{'ID':<5} {'Username':<20} {'Name':<25} {'Active':<8} {'Open session'}")
    click.echo("="*70)
    for user in users:
        open_session = db.session.query(CashRegisterSession).filter_by(
            user_id=user.id, status=SessionStatus.OPEN
        ).first()
        click.echo(
            f"{user.id:<5} {user.username:<20} {user.name[:25]:<25} "
            f"{'yes' if user.is_active else 'no':<8} {open_session.id if open_session else '-'}"
        )
    click.echo("="*70 + "\n")


@click.group('cash')
def cash_group():
    """Cash register inspection commands."""


@cash_group.command('sessions')
@click.option('--status', type=click.Choice(['open', 'closed']), help='Filter by status')
@click.option('--limit', type=int, default=20, help='Max sessions to show')
@with_appcontext
def list_sessions_cli(status, limit):
    """
    List cash register sessions.

    Example:
        flask cash sessions
        flask cash sessions --status open
    """
    from .models import SessionStatus
    from .services import register_service

    sessions = register_service.list_sessions(SessionStatus(status) if status else None, limit=limit)
    if not sessions:
        click.echo("No sessions found.")
        return

    click.echo("\n" + "="*100)
    click.echo(
        f"{'ID':<5} {'User':<6} {'Status':<8} {'Initial':>12} {'Income':>12} "
        f"{'Expenses':>12} {'Balance':>12} {'Difference':>12}"
    )
    click.echo("="*100)
    for s in sessions:
        click.echo(
            f"{s.id:<5} {s.user_id:<6} {s.status.value:<8} {format_cents(s.initial_amount_cents):>12} "
            f"{format_cents(s.total_income_cents):>12} {format_cents(s.total_expenses_cents):>12} "
            f"{format_cents(s.calculated_balance_cents):>12} {format_cents(s.difference_cents):>12}"
        )
    click.echo("="*100 + "\n")


@cash_group.command('discrepancies')
@click.option('--threshold-cents', type=int, default=None, help='Override configured threshold')
@click.option('--limit', type=int, default=50, help='Max sessions to show')
@with_appcontext
def list_discrepancies_cli(threshold_cents, limit):
    """
    List closed sessions whose difference exceeds the threshold.

    Example:
        flask cash discrepancies --threshold-cents 500
    """
    from .services import register_service

    sessions = register_service.list_sessions_with_discrepancies(threshold_cents, limit=limit)
    if not sessions:
        click.echo("No discrepancies found.")
        return

    for s in sessions:
        click.echo(
            f"Session {s.id} (user {s.user_id}) difference {format_cents(s.difference_cents)}"
            f" - {s.difference_justification or 'no justification'}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(cash_group)

# Overview: Flask CLI command groups for bootstrap, schema maintenance and ledger audits.

# backend/stockline/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system bootstrap --name "Acme" --location "Lagos" --admin-id u1 --admin-name "Ada"
#   Create the single Company record.
#
# Ledger audits:
# - python -m flask ledger check
#   Recompute aggregate totals from rows and report every discrepancy.
#   Exits non-zero when the ledger is inconsistent.

import click
from flask.cli import with_appcontext

from .errors import LedgerError
from .extensions import db
from .services import audit_service, company_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Schema is in place.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system bootstrap' to create the company.")


@system_group.command('bootstrap')
@click.option('--name', required=True, help='Company name')
@click.option('--location', required=True, help='Company location')
@click.option('--admin-id', required=True, help='Administrator id')
@click.option('--admin-name', required=True, help='Administrator display name')
@click.option('--address', default=None, help='Street address')
@with_appcontext
def bootstrap(name, location, admin_id, admin_name, address):
    """Create the Company record. Fails if one already exists."""
    try:
        company = company_service.bootstrap_company(
            name=name,
            location=location,
            admin_id=admin_id,
            admin_name=admin_name,
            address=address,
        )
    except LedgerError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created company: {company.name} (ID: {company.id})")


@click.group('ledger')
def ledger_group():
    """Ledger inspection commands."""


@ledger_group.command('check')
@with_appcontext
def check_ledger():
    """Verify that stored totals match the rows they summarize."""
    issues = audit_service.check_consistency()
    if not issues:
        click.echo("PASS Ledger is consistent.")
        return

    for issue in issues:
        click.echo(f"FAIL [{issue['check']}] {issue['message']}")
    raise click.ClickException(f"{len(issues)} consistency issue(s) found")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(ledger_group)

# Overview: Flask CLI command group for ledger bootstrap, snapshots and maintenance.

# backend/posledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask ledger <command> [options]
#
# - python -m flask ledger init-db
#   Create the ledger_collections table (use `flask db upgrade` for migrations).
# - python -m flask ledger export backup.json
#   Write every collection to a JSON snapshot.
# - python -m flask ledger import backup.json [--yes]
#   Replace every collection from a snapshot (deletes current data).
# - python -m flask ledger empty-bin --yes
#   Permanently remove soft-deleted items, sales and sale returns.
# - python -m flask ledger reconcile
#   Re-derive supplier and receipt balances from their records.

import json

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .services.ledger_service import LedgerPolicy, LedgerService
from .services.record_store import SqlRecordStore


def _ledger() -> LedgerService:
    store = SqlRecordStore(attempts=current_app.config.get("COMMIT_RETRY_ATTEMPTS", 3))
    return LedgerService(store, LedgerPolicy.from_config(current_app.config))


@click.group('ledger')
def ledger_group():
    """Ledger storage, snapshot and maintenance commands."""


@ledger_group.command('init-db')
@with_appcontext
def init_db():
    """Create tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Ledger tables ready.")


@ledger_group.command('export')
@click.argument('path', type=click.Path(dir_okay=False, writable=True))
@with_appcontext
def export_snapshot(path):
    """Write a full snapshot of every collection to PATH."""
    snapshot = _ledger().export_snapshot()
    with open(path, "w", encoding="utf-8") as fh:
        json.dump(snapshot, fh, indent=2)
    counts = {k: len(v) for k, v in snapshot.items() if isinstance(v, list)}
    click.echo(f"PASS Exported to {path}: {counts}")


@ledger_group.command('import')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def import_snapshot(path, yes):
    """Replace every collection with the snapshot at PATH."""
    if not yes:
        click.confirm("WARN This will REPLACE ALL LEDGER DATA. Are you sure?", abort=True)
    with open(path, encoding="utf-8") as fh:
        try:
            data = json.load(fh)
        except ValueError as exc:
            raise click.ClickException(f"{path} is not valid JSON: {exc}")
    counts = _ledger().import_snapshot(data)
    click.echo(f"PASS Imported {counts}")


@ledger_group.command('empty-bin')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def empty_bin(yes):
    """
    DANGER: Permanently remove soft-deleted items, sales and sale returns.
    """
    if not yes:
        click.confirm("WARN Deleted records cannot be restored afterwards. Continue?", abort=True)
    counts = _ledger().empty_bin()
    click.echo(f"DELETE  Purged {counts}")


@ledger_group.command('reconcile')
@with_appcontext
def reconcile():
    """Fold every supplier's records again and print the resulting balances."""
    suppliers = _ledger().reconcile_suppliers()
    if not suppliers:
        click.echo("No suppliers found.")
        return
    for s in suppliers:
        status = "deleted" if s.is_deleted else "active"
        click.echo(
            f"  {s.name} ({status}) supplied={s.total_supplied_cents} paid={s.total_paid_cents} "
            f"debt={s.total_debt_cents} credit={s.credit_cents}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(ledger_group)

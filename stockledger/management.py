"""
Management commands for deployment and ledger maintenance
"""
import click
from flask.cli import with_appcontext

from .extensions import db
from .services.ledger import refresh_all_balances, verify_ledger


@click.command('init-db')
@with_appcontext
def init_db_command():
    """Create ledger tables directly (local development; production uses flask db upgrade)"""
    try:
        print("🔄 Creating ledger tables...")
        db.create_all()
        print("✅ Tables created/verified")
    except Exception as e:
        print(f"❌ Table creation failed: {str(e)}")
        db.session.rollback()
        raise


@click.command('verify-ledger')
@click.option('--halt/--no-halt', default=True, help='Halt items whose ledger replays below zero.')
@with_appcontext
def verify_ledger_command(halt):
    """Replay every item's ledger and compare it with the cached balance"""
    report = verify_ledger(halt_negative=halt)
    problems = [entry for entry in report if not entry['valid']]

    for entry in problems:
        marker = " (halted)" if entry['halted'] else ""
        print(f"❌ Item {entry['item_id']}: {entry['error']}{marker}")

    if problems:
        print(f"⚠️  {len(problems)} of {len(report)} items failed verification")
        print("   Run 'flask refresh-balances' for cache mismatches; reconcile halted items with a physical count")
        raise click.exceptions.Exit(1)

    print(f"✅ Ledger verified: {len(report)} items consistent")


@click.command('refresh-balances')
@with_appcontext
def refresh_balances_command():
    """Rebuild every cached on-hand quantity from the ledger"""
    try:
        print("🔄 Rebuilding cached balances from the ledger...")
        changed = refresh_all_balances()
        print(f"✅ Balances refreshed ({changed} changed)")
    except Exception as e:
        print(f"❌ Balance refresh failed: {str(e)}")
        db.session.rollback()
        raise


def register_commands(app):
    """Register management commands"""
    app.cli.add_command(init_db_command)
    app.cli.add_command(verify_ledger_command)
    app.cli.add_command(refresh_balances_command)

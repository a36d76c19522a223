"""
Pytest configuration and shared fixtures for stockledger tests.
"""
import os
import tempfile
from datetime import timedelta

import pytest

from stockledger import create_app
from stockledger.extensions import db
from stockledger.services import item_registry
from stockledger.services.ledger import post_transaction
from stockledger.utils.timezone_utils import TimezoneUtils


@pytest.fixture(scope='function')
def app():
    """Create and configure a new app instance for each test."""
    # A file database so worker threads share one schema
    db_fd, db_path = tempfile.mkstemp(suffix='.db')

    app = create_app({
        'TESTING': True,
        'DATABASE_URL': f'sqlite:///{db_path}',
        'LOG_LEVEL': 'INFO',
        'LEDGER_LOCK_TIMEOUT': 5.0,
        'LEDGER_ALLOW_BACKDATED_DAYS': 365,
        'LEDGER_TIMEZONE': 'UTC',
    })

    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()

    os.close(db_fd)
    os.unlink(db_path)


@pytest.fixture
def client(app):
    """A test client for the app."""
    return app.test_client()


@pytest.fixture
def runner(app):
    """A test runner for the app's Click commands."""
    return app.test_cli_runner()


@pytest.fixture
def app_context(app):
    """Provide an application context for tests that need it."""
    with app.app_context():
        yield


@pytest.fixture
def today():
    return TimezoneUtils.office_today("UTC")


@pytest.fixture
def days_ago(today):
    def _days_ago(days):
        return today - timedelta(days=days)
    return _days_ago


@pytest.fixture
def make_item(app_context):
    """Register an item and optionally receive an opening stock under its own reference."""
    def _make_item(code='A4-PAPER', name='Bond paper A4', stock=0, reorder_level=0, unit_cost='0',
                   effective_date=None, **extra):
        item_id = item_registry.register_item(
            code=code,
            name=name,
            unit=extra.pop('unit', 'ream'),
            unit_cost=unit_cost,
            reorder_level=reorder_level,
            **extra,
        )
        if stock:
            result = post_transaction(
                [{'item_id': item_id, 'direction': 'received', 'quantity': stock}],
                f'OPEN-{code}',
                effective_date,
                'tester',
            )
            assert result.success, result.rejection_reason
        return item_id
    return _make_item

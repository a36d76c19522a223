import pytest

from stockledger.errors import (
    DuplicateReferenceError,
    ImmutableRecordError,
    InvariantViolation,
    ItemNotFoundError,
    ValidationError,
)
from stockledger.extensions import db
from stockledger.models import Item, ReconciliationRecord, StockMovement
from stockledger.services.ledger import compute_balance, get_balance, post_transaction, reconcile


def test_shortage_posts_a_decrease_adjustment(make_item):
    paper = make_item(code='A4-PAPER', stock=100)

    record = reconcile(paper, 94, None, 'auditor')

    assert record.expected_quantity == 100
    assert record.counted_quantity == 94
    assert record.discrepancy == -6
    assert record.resolution == 'adjusted'
    movement = db.session.get(StockMovement, record.adjustment_movement_id)
    assert movement.direction == 'adjustment'
    assert movement.adjustment_effect == 'decrease'
    assert movement.quantity == 6
    assert movement.reference.startswith('RECON-A4-PAPER-')
    assert get_balance(paper) == 94
    assert db.session.get(Item, paper).on_hand_quantity == 94


def test_overage_posts_an_increase_adjustment(make_item):
    paper = make_item(code='A4-PAPER', stock=10)

    record = reconcile(paper, 13, None, 'auditor', reference='COUNT-Q3')

    movement = db.session.get(StockMovement, record.adjustment_movement_id)
    assert movement.adjustment_effect == 'increase'
    assert movement.quantity == 3
    assert movement.reference == 'COUNT-Q3'
    assert get_balance(paper) == 13


def test_matching_count_is_recorded_without_movement(make_item):
    paper = make_item(code='A4-PAPER', stock=10)

    record = reconcile(paper, 10, None, 'auditor')

    assert record.discrepancy == 0
    assert record.resolution == 'accepted_as_is'
    assert record.adjustment_movement_id is None
    assert StockMovement.query.filter_by(item_id=paper).count() == 1


def test_reconcile_as_of_a_past_date(make_item, days_ago):
    paper = make_item(code='A4-PAPER')
    post_transaction([{'item_id': paper, 'direction': 'received', 'quantity': 30}], 'PO-1', days_ago(10), 'clerk')
    post_transaction([{'item_id': paper, 'direction': 'received', 'quantity': 5}], 'PO-2', days_ago(1), 'clerk')

    record = reconcile(paper, 28, days_ago(5), 'auditor')

    assert record.expected_quantity == 30
    assert record.discrepancy == -2
    assert compute_balance(paper, days_ago(5)) == 28
    assert get_balance(paper) == 33


def test_reconcile_rejects_bad_counts(make_item):
    paper = make_item(code='A4-PAPER', stock=10)

    for bad in (-1, '3.5', None, 'ten'):
        with pytest.raises(ValidationError):
            reconcile(paper, bad, None, 'auditor')

    with pytest.raises(ItemNotFoundError):
        reconcile(424242, 3, None, 'auditor')
    with pytest.raises(ItemNotFoundError):
        reconcile('paper', 3, None, 'auditor')


def test_reconcile_accepts_an_item_id_given_as_text(make_item):
    paper = make_item(code='A4-PAPER', stock=10)

    record = reconcile(str(paper), 7, None, 'auditor')

    assert record.item_id == paper
    assert record.discrepancy == -3
    assert get_balance(paper) == 7


def test_reused_adjustment_reference_is_rejected(make_item):
    paper = make_item(code='A4-PAPER', stock=10)
    reconcile(paper, 8, None, 'auditor', reference='COUNT-1')

    with pytest.raises(DuplicateReferenceError):
        reconcile(paper, 5, None, 'auditor', reference='COUNT-1')
    assert get_balance(paper) == 8


def test_reconciliation_releases_a_halted_item(make_item, today):
    paper = make_item(code='A4-PAPER', stock=5)
    # Corrupt the ledger behind the engine's back
    db.session.add(StockMovement(item_id=paper, direction='issued', quantity=9, effective_date=today, reference='ROGUE'))
    db.session.commit()

    with pytest.raises(InvariantViolation):
        get_balance(paper)
    assert db.session.get(Item, paper).ledger_halted is True

    record = reconcile(paper, 2, None, 'auditor')

    assert record.expected_quantity == -4
    assert record.discrepancy == 6
    item = db.session.get(Item, paper)
    assert item.ledger_halted is False
    assert item.halted_reason is None
    assert item.on_hand_quantity == 2
    assert get_balance(paper) == 2
    assert post_transaction([{'item_id': paper, 'direction': 'issued', 'quantity': 1}], 'RIS-1', None, 'clerk').success


def test_reconciliation_records_are_immutable(make_item):
    paper = make_item(code='A4-PAPER', stock=10)
    record = reconcile(paper, 9, None, 'auditor')

    record.notes = 'rewritten'
    with pytest.raises(ImmutableRecordError):
        db.session.commit()
    db.session.rollback()
    assert db.session.get(ReconciliationRecord, record.id).notes is None

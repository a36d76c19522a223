import pytest

from stockledger.errors import (
    CountSessionNotFoundError,
    InsufficientBalanceError,
    ItemNotFoundError,
    ValidationError,
)
from stockledger.models import ReconciliationRecord, StockMovement
from stockledger.services.ledger import (
    finalize_count_session,
    get_balance,
    get_count_session,
    post_transaction,
    record_count,
    record_counts,
    start_count_session,
)


def test_finalize_reconciles_every_counted_item(make_item):
    paper = make_item(code='A4-PAPER', stock=100)
    toner = make_item(code='TONER-85A', name='Toner 85A', stock=4)
    pens = make_item(code='PEN-BLK', name='Ballpen black', stock=40)

    session = start_count_session('Inventory Committee', location='Supply Room A')
    record_count(session.id, paper, 97)
    record_count(session.id, toner, 4)
    record_count(session.id, pens, 45, notes='Box found behind shelf')

    finalized = finalize_count_session(session.id, 'auditor')

    assert finalized.status == 'completed'
    assert finalized.items_counted == 3
    assert finalized.discrepancies_found == 2
    assert finalized.completed_at is not None
    assert (get_balance(paper), get_balance(toner), get_balance(pens)) == (97, 4, 45)

    records = ReconciliationRecord.query.filter_by(count_session_id=session.id).order_by(ReconciliationRecord.item_id).all()
    assert [r.discrepancy for r in records] == [-3, 0, 5]
    adjustments = StockMovement.query.filter_by(reference=f'COUNT-{session.id}').all()
    assert len(adjustments) == 2


def test_recounting_an_item_replaces_the_line(make_item):
    paper = make_item(code='A4-PAPER', stock=10)
    session = start_count_session('Inventory Committee')

    record_count(session.id, paper, 7)
    record_count(session.id, paper, 9)

    assert [line.counted_quantity for line in get_count_session(session.id).lines] == [9]


def test_completed_session_cannot_be_changed_or_finalized_twice(make_item):
    paper = make_item(code='A4-PAPER', stock=10)
    session = start_count_session('Inventory Committee')
    record_count(session.id, paper, 8)
    finalize_count_session(session.id)

    with pytest.raises(ValidationError):
        record_count(session.id, paper, 5)
    with pytest.raises(ValidationError):
        finalize_count_session(session.id)
    assert get_balance(paper) == 8


def test_session_validation(make_item, today):
    from datetime import timedelta

    with pytest.raises(ValidationError):
        start_count_session('  ')
    with pytest.raises(ValidationError):
        start_count_session('Committee', today + timedelta(days=2))

    paper = make_item()
    session = start_count_session('Committee')
    with pytest.raises(ValidationError):
        finalize_count_session(session.id)
    with pytest.raises(ItemNotFoundError):
        record_count(session.id, 999, 1)
    with pytest.raises(ValidationError):
        record_count(session.id, paper, -2)
    with pytest.raises(CountSessionNotFoundError):
        get_count_session(31337)


def test_failed_line_leaves_every_item_untouched(make_item, days_ago):
    paper = make_item(code='A4-PAPER')
    toner = make_item(code='TONER-85A', name='Toner 85A', stock=6)

    post_transaction([{'item_id': paper, 'direction': 'received', 'quantity': 10}], 'PO-1', days_ago(10), 'clerk')
    post_transaction([{'item_id': paper, 'direction': 'issued', 'quantity': 9}], 'RIS-1', days_ago(1), 'clerk')

    session = start_count_session('Committee', days_ago(5))
    record_count(session.id, toner, 3)
    # Counting 2 on day -5 contradicts the 9 issued on day -1
    record_count(session.id, paper, 2)

    with pytest.raises(InsufficientBalanceError):
        finalize_count_session(session.id)

    assert get_count_session(session.id).status == 'in_progress'
    assert (get_balance(paper), get_balance(toner)) == (1, 6)
    assert ReconciliationRecord.query.count() == 0


def test_record_counts_saves_a_batch_or_nothing(make_item):
    paper = make_item(code='A4-PAPER', stock=10)
    toner = make_item(code='TONER-85A', name='Toner 85A', stock=4)
    session = start_count_session('Inventory Committee')

    with pytest.raises(ItemNotFoundError) as excinfo:
        record_counts(session.id, [{'item_id': paper, 'counted_quantity': 9}, {'item_id': 999, 'counted_quantity': 1}])
    assert excinfo.value.line == 2
    assert get_count_session(session.id).lines == []

    with pytest.raises(ValidationError) as excinfo:
        record_counts(session.id, [{'item_id': paper, 'counted_quantity': 9}, 'junk'])
    assert excinfo.value.line == 2
    assert get_count_session(session.id).lines == []

    lines = record_counts(session.id, [
        {'item_id': str(paper), 'counted_quantity': 9},
        {'item_id': toner, 'counted_quantity': '4', 'notes': 'Sealed boxes'},
    ])
    assert [(line.item_id, line.counted_quantity) for line in lines] == [(paper, 9), (toner, 4)]
    assert lines[1].notes == 'Sealed boxes'


def test_record_counts_needs_a_list_of_entries(make_item):
    session = start_count_session('Inventory Committee')

    for bad in ([], 'lots', {'item_id': 1}, None):
        with pytest.raises(ValidationError):
            record_counts(session.id, bad)

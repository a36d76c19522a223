import logging

import pytest

from stockledger.errors import ImmutableRecordError, InvariantViolation, ItemHaltedError, ItemNotFoundError
from stockledger.extensions import db
from stockledger.models import Item, StockMovement
from stockledger.services.ledger import (
    compute_balance,
    escalate_invariant_violation,
    get_balance,
    hold_item_locks,
    list_movements,
    post_transaction,
)
from stockledger.services.ledger._balance import minimum_balance_from
from stockledger.services.ledger._locks import get_lock_registry


def _post(item_id, direction, quantity, reference, effective_date=None):
    result = post_transaction(
        [{'item_id': item_id, 'direction': direction, 'quantity': quantity}],
        reference,
        effective_date,
        'tester',
    )
    assert result.success, result.rejection_reason
    return result


def _insert_raw(item_id, direction, quantity, effective_date, reference):
    # Bypasses the engine on purpose to simulate a corrupted ledger.
    db.session.add(StockMovement(
        item_id=item_id,
        direction=direction,
        quantity=quantity,
        effective_date=effective_date,
        reference=reference,
    ))
    db.session.commit()


def test_balance_is_signed_sum_of_movements(make_item, days_ago):
    item_id = make_item()
    _post(item_id, 'received', 100, 'PO-1', days_ago(10))
    _post(item_id, 'issued', 30, 'RIS-1', days_ago(5))
    _post(item_id, 'received', 20, 'PO-2', days_ago(1))

    assert compute_balance(item_id) == 90
    assert get_balance(item_id) == 90
    assert db.session.get(Item, item_id).on_hand_quantity == 90


def test_balance_as_of_replays_only_earlier_movements(make_item, days_ago):
    item_id = make_item()
    _post(item_id, 'received', 100, 'PO-1', days_ago(10))
    _post(item_id, 'issued', 30, 'RIS-1', days_ago(5))

    assert get_balance(item_id, days_ago(11)) == 0
    assert get_balance(item_id, days_ago(10)) == 100
    assert get_balance(item_id, days_ago(6)) == 100
    assert get_balance(item_id, days_ago(5).isoformat()) == 70


def test_get_balance_unknown_item(app_context):
    with pytest.raises(ItemNotFoundError):
        get_balance(12345)


def test_list_movements_orders_by_effective_date_with_inclusive_bounds(make_item, days_ago):
    item_id = make_item()
    _post(item_id, 'received', 10, 'PO-LATE', days_ago(1))
    _post(item_id, 'received', 10, 'PO-EARLY', days_ago(9))
    _post(item_id, 'issued', 5, 'RIS-MID', days_ago(5))

    assert [m.reference for m in list_movements(item_id)] == ['PO-EARLY', 'RIS-MID', 'PO-LATE']
    window = list_movements(item_id, days_ago(9), days_ago(5))
    assert [m.reference for m in window] == ['PO-EARLY', 'RIS-MID']
    # Restartable: a second call yields the same history
    assert [m.id for m in list_movements(item_id)] == [m.id for m in list_movements(item_id)]


def test_minimum_balance_from_looks_at_later_history(make_item, days_ago):
    item_id = make_item()
    _post(item_id, 'received', 50, 'PO-1', days_ago(10))
    _post(item_id, 'issued', 40, 'RIS-1', days_ago(2))

    assert minimum_balance_from(item_id, days_ago(10)) == 10
    assert minimum_balance_from(item_id, days_ago(1)) == 10
    assert minimum_balance_from(item_id, days_ago(20)) == 0


def test_negative_replay_raises_and_halts_item(make_item, today, caplog):
    item_id = make_item(stock=5)
    _insert_raw(item_id, 'issued', 8, today, 'ROGUE-1')

    with pytest.raises(InvariantViolation):
        compute_balance(item_id)

    with caplog.at_level(logging.CRITICAL, logger='stockledger'):
        with pytest.raises(InvariantViolation):
            get_balance(item_id)
    assert any(record.levelno == logging.CRITICAL for record in caplog.records)

    item = db.session.get(Item, item_id)
    assert item.ledger_halted is True
    # Cache is left alone; the violation is never auto-corrected
    assert item.on_hand_quantity == 5

    with pytest.raises(ItemHaltedError):
        post_transaction([{'item_id': item_id, 'direction': 'received', 'quantity': 1}], 'PO-9', None, 'tester')
    assert StockMovement.query.filter_by(item_id=item_id, reference='PO-9').count() == 0


def test_movements_cannot_be_edited_or_deleted(make_item):
    item_id = make_item(stock=10)
    movement = list_movements(item_id)[0]

    movement.quantity = 99
    with pytest.raises(ImmutableRecordError):
        db.session.commit()
    db.session.rollback()

    db.session.delete(db.session.get(StockMovement, movement.id))
    with pytest.raises(ImmutableRecordError):
        db.session.commit()
    db.session.rollback()

    assert compute_balance(item_id) == 10


def test_escalation_under_lock_discards_staged_rows_and_halts(make_item, today):
    item_id = make_item(stock=5)

    with hold_item_locks([item_id]) as items:
        item = items[item_id]
        # An uncommitted row from the aborted unit of work
        db.session.add(StockMovement(item_id=item_id, direction='received', quantity=3, effective_date=today, reference='STAGED-1'))
        db.session.flush()

        escalate_invariant_violation(item, InvariantViolation("replay went negative", item_id=item_id))

        assert get_lock_registry().lock_for(item_id).locked()
        assert db.session.get(Item, item_id).ledger_halted is True

    db.session.expire_all()
    assert StockMovement.query.filter_by(reference='STAGED-1').count() == 0
    item = db.session.get(Item, item_id)
    assert item.ledger_halted is True
    assert item.halted_reason == "replay went negative"
    assert not get_lock_registry().lock_for(item_id).locked()

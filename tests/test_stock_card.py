from decimal import Decimal

import pytest

from stockledger.errors import ItemNotFoundError
from stockledger.services.ledger import post_transaction, reconcile
from stockledger.services.stock_card import BEGINNING_BALANCE, build_stock_card


def _post(item_id, direction, quantity, reference, effective_date, **slip):
    result = post_transaction(
        [{'item_id': item_id, 'direction': direction, 'quantity': quantity}],
        reference,
        effective_date,
        'clerk',
        **slip,
    )
    assert result.success, result.rejection_reason


def test_stock_card_running_balance_and_value(make_item, days_ago):
    paper = make_item(code='A4-PAPER', unit_cost='220.00')
    _post(paper, 'received', 100, 'PO-1', days_ago(20))
    _post(paper, 'received', 50, 'PO-2', days_ago(10))
    _post(paper, 'issued', 10, 'RIS-1', days_ago(8), department='HR Department', custodian='M. Cruz')
    _post(paper, 'issued', 15, 'RIS-2', days_ago(3), department='Finance Department', purpose='Payroll forms')

    card = build_stock_card(paper)

    assert [row.reference for row in card.rows] == [BEGINNING_BALANCE, 'PO-1', 'PO-2', 'RIS-1', 'RIS-2']
    assert [row.balance for row in card.rows] == [0, 100, 150, 140, 125]
    assert [(row.quantity_in, row.quantity_out) for row in card.rows[1:]] == [(100, 0), (50, 0), (0, 10), (0, 15)]
    assert card.rows[-1].total_value == Decimal('27500.00')
    assert card.rows[3].entry_type == 'Issued'
    assert card.rows[3].remarks == 'To HR Department; Custodian: M. Cruz'
    assert card.rows[4].remarks == 'To Finance Department; Payroll forms'
    assert card.closing_balance == 125


def test_stock_card_window_starts_from_beginning_balance(make_item, days_ago):
    paper = make_item(code='A4-PAPER', unit_cost='10')
    _post(paper, 'received', 100, 'PO-1', days_ago(20))
    _post(paper, 'issued', 40, 'RIS-1', days_ago(10))
    _post(paper, 'issued', 5, 'RIS-2', days_ago(2))

    card = build_stock_card(paper, days_ago(10), days_ago(5))

    assert card.opening_balance == 100
    assert [row.reference for row in card.rows] == [BEGINNING_BALANCE, 'RIS-1']
    assert card.closing_balance == 60
    payload = card.to_dict()
    assert payload['rows'][0]['type'] == 'Opening'
    assert payload['closing_balance'] == 60


def test_stock_card_shows_adjustments(make_item):
    paper = make_item(code='A4-PAPER', stock=10)
    reconcile(paper, 7, None, 'auditor')

    card = build_stock_card(paper)

    assert card.rows[-1].entry_type == 'Adjustment'
    assert card.rows[-1].quantity_out == 3
    assert card.closing_balance == 7


def test_stock_card_with_no_history(make_item):
    paper = make_item()
    card = build_stock_card(paper)
    assert len(card.rows) == 1
    assert card.closing_balance == 0

    with pytest.raises(ItemNotFoundError):
        build_stock_card(777)

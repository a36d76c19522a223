import threading

from stockledger.errors import InsufficientBalanceError, LockTimeoutError
from stockledger.extensions import db
from stockledger.models import Item
from stockledger.services.ledger import get_balance, post_transaction
from stockledger.services.ledger._locks import get_lock_registry


def _run_in_threads(app, jobs):
    """Start every job at the same moment, each inside its own app context."""
    barrier = threading.Barrier(len(jobs))
    results = [None] * len(jobs)
    errors = []

    def worker(index, job):
        with app.app_context():
            barrier.wait()
            try:
                results[index] = job()
            except Exception as exc:  # surfaced by the assertion below
                errors.append(exc)

    threads = [threading.Thread(target=worker, args=(i, job)) for i, job in enumerate(jobs)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert not errors, errors
    return results


def test_concurrent_issuances_never_overdraw(app, make_item):
    paper = make_item(code='A4-PAPER', stock=10)

    results = _run_in_threads(app, [
        lambda: post_transaction([{'item_id': paper, 'direction': 'issued', 'quantity': 7}], 'RIS-A', None, 'clerk-a'),
        lambda: post_transaction([{'item_id': paper, 'direction': 'issued', 'quantity': 6}], 'RIS-B', None, 'clerk-b'),
    ])

    successes = [r for r in results if r.success]
    failures = [r for r in results if not r.success]
    assert len(successes) == 1
    assert len(failures) == 1
    assert isinstance(failures[0].error, InsufficientBalanceError)

    db.session.expire_all()
    final = get_balance(paper)
    assert final in (3, 4)
    assert db.session.get(Item, paper).on_hand_quantity == final


def test_many_small_issuances_add_up_exactly(app, make_item):
    pens = make_item(code='PEN-BLK', name='Ballpen black', stock=20)

    jobs = [
        (lambda n=n: post_transaction([{'item_id': pens, 'direction': 'issued', 'quantity': 3}], f'RIS-{n}', None, 'clerk'))
        for n in range(8)
    ]
    results = _run_in_threads(app, jobs)

    assert sum(1 for r in results if r.success) == 6
    db.session.expire_all()
    assert get_balance(pens) == 2


def test_overlapping_transactions_in_opposite_order_both_finish(app, make_item):
    paper = make_item(code='A4-PAPER', stock=50)
    toner = make_item(code='TONER-85A', name='Toner 85A', stock=50)

    results = _run_in_threads(app, [
        lambda: post_transaction(
            [{'item_id': paper, 'direction': 'issued', 'quantity': 5},
             {'item_id': toner, 'direction': 'issued', 'quantity': 5}],
            'RIS-X', None, 'clerk-x',
        ),
        lambda: post_transaction(
            [{'item_id': toner, 'direction': 'issued', 'quantity': 4},
             {'item_id': paper, 'direction': 'issued', 'quantity': 4}],
            'RIS-Y', None, 'clerk-y',
        ),
    ])

    assert all(r.success for r in results)
    db.session.expire_all()
    assert (get_balance(paper), get_balance(toner)) == (41, 41)


def test_lock_wait_is_bounded(app, make_item):
    paper = make_item(code='A4-PAPER', stock=10)
    app.config['LEDGER_LOCK_TIMEOUT'] = 0.1

    with get_lock_registry().hold([paper]):
        result = post_transaction([{'item_id': paper, 'direction': 'issued', 'quantity': 1}], 'RIS-T', None, 'clerk')

    assert isinstance(result.error, LockTimeoutError)
    assert result.error.recoverable is True
    assert get_balance(paper) == 10

import logging

from ...errors import InvariantViolation, ItemNotFoundError
from ...extensions import db
from ...models import Item
from .. import item_registry
from ._balance import lowest_running_balance, replay_balance
from ._engine import escalate_invariant_violation, finish_unit_of_work
from ._locks import hold_item_locks

logger = logging.getLogger(__name__)


def verify_item(item_id):
    """Validate that the cached on-hand quantity matches a full ledger replay"""
    item = db.session.get(Item, item_id)
    if not item:
        return False, "Item not found", 0, 0

    cached = item.on_hand_quantity or 0
    replayed = replay_balance(item_id)
    lowest = lowest_running_balance(item_id)

    if lowest < 0:
        error_msg = f"Ledger dips below zero: lowest running balance {lowest}, final {replayed}"
        logger.error(f"LEDGER NEGATIVE for item {item_id} ({item.code}): {error_msg}")
        return False, error_msg, cached, replayed

    if cached != replayed:
        logger.error(f"CACHE MISMATCH for item {item_id} ({item.code}):")
        logger.error(f"  Cached on hand: {cached}")
        logger.error(f"  Ledger replay: {replayed}")
        error_msg = f"Cache mismatch: cached={cached}, ledger={replayed}, diff={cached - replayed}"
        return False, error_msg, cached, replayed

    return True, None, cached, replayed


def verify_ledger(halt_negative=True):
    """Check every item; items whose history goes negative are halted."""
    report = []
    for item_id, in db.session.query(Item.id).order_by(Item.id).all():
        is_valid, error_msg, cached, replayed = verify_item(item_id)
        entry = {
            'item_id': item_id,
            'valid': is_valid,
            'error': error_msg,
            'cached': cached,
            'replayed': replayed,
            'halted': False,
        }
        if not is_valid and halt_negative and lowest_running_balance(item_id) < 0:
            entry['halted'] = _halt_negative_item(item_id, error_msg)
        report.append(entry)
    return report


def refresh_all_balances():
    """Rebuild every cached balance from the ledger; returns how many changed."""
    changed = 0
    for item_id, in db.session.query(Item.id).order_by(Item.id).all():
        with hold_item_locks([item_id]) as items:
            item = items[item_id]
            replayed = replay_balance(item_id)
            if replayed < 0:
                logger.critical(f"Refusing to cache negative balance {replayed} for item {item.code}")
                db.session.rollback()
                continue
            if item.on_hand_quantity != replayed:
                changed += 1
            item_registry.refresh_balance(item, replayed)
            finish_unit_of_work()
    return changed


def _halt_negative_item(item_id, reason):
    with hold_item_locks([item_id]) as items:
        item = items.get(item_id)
        if item is None:
            raise ItemNotFoundError(f"Item {item_id} not found.", item_id=item_id)
        if item.ledger_halted:
            return True
        escalate_invariant_violation(item, InvariantViolation(reason, item_id=item_id))
        return True

"""
Reconciliation - settle the ledger against a physical count.

The count wins: a mismatch is never discarded, it becomes an ``adjustment``
movement that brings the balance to exactly the counted quantity, and a
``ReconciliationRecord`` keeps both numbers for audit. Reconciliation is also
the only way back for an item halted by an invariant violation.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from typing import Any, Optional

from ...errors import ItemNotFoundError, ValidationError
from ...extensions import db
from ...models import AdjustmentEffect, Item, MovementDirection, ReconciliationRecord
from ...models.reconciliation import RESOLUTION_ACCEPTED, RESOLUTION_ADJUSTED
from ...utils.parsing import clean_string, safe_int
from .. import item_registry
from ._balance import replay_balance
from ._coordinator import resolve_effective_date
from ._engine import commit_movement, finish_unit_of_work, propose_movement
from ._locks import hold_item_locks

logger = logging.getLogger(__name__)


def reconcile(
    item_id: int,
    counted_quantity: Any,
    as_of: Any = None,
    actor: Optional[str] = None,
    *,
    reference: Optional[str] = None,
    notes: Optional[str] = None,
) -> ReconciliationRecord:
    """Compare a physical count with the ledger and post the difference."""
    counted = validate_count(counted_quantity)
    count_date = resolve_effective_date(as_of)
    parsed_id = safe_int(item_id)
    if parsed_id is None:
        raise ItemNotFoundError(f"Item {item_id!r} not found.")

    with hold_item_locks([parsed_id]) as items:
        item = items.get(parsed_id)
        if item is None:
            raise ItemNotFoundError(f"Item {parsed_id} not found.", item_id=parsed_id)

        record = reconcile_locked(
            item,
            counted,
            count_date,
            actor,
            reference=clean_string(reference) or adjustment_reference(item, count_date),
            notes=clean_string(notes),
        )
        finish_unit_of_work()
    return record


def validate_count(counted_quantity: Any, line: Optional[int] = None) -> int:
    counted = safe_int(counted_quantity)
    if counted is None or counted < 0:
        raise ValidationError(
            f"Counted quantity must be a whole number of at least zero, got {counted_quantity!r}.",
            line=line,
        )
    return counted


def adjustment_reference(item: Item, count_date: date) -> str:
    return f"RECON-{item.code}-{count_date:%Y%m%d}-{uuid.uuid4().hex[:6].upper()}"


def reconcile_locked(
    item: Item,
    counted: int,
    count_date: date,
    actor: Optional[str],
    *,
    reference: str,
    notes: Optional[str] = None,
    count_session_id: Optional[int] = None,
    line: Optional[int] = None,
) -> ReconciliationRecord:
    """Reconcile one item whose lock the caller already holds; does not commit."""
    expected = replay_balance(item.id, count_date)
    discrepancy = counted - expected

    movement = None
    if discrepancy != 0:
        effect = AdjustmentEffect.INCREASE if discrepancy > 0 else AdjustmentEffect.DECREASE
        proposal = propose_movement(
            item,
            MovementDirection.ADJUSTMENT,
            abs(discrepancy),
            effective_date=count_date,
            reference=reference,
            adjustment_effect=effect,
            notes=notes or f"Physical count {counted} vs ledger {expected}",
            created_by=actor,
            line=line,
            allow_halted=True,
            allow_inactive=True,
        )
        movement = commit_movement(proposal, item, strict=False)

    _settle_item(item)

    record = ReconciliationRecord(
        item_id=item.id,
        count_session_id=count_session_id,
        as_of_date=count_date,
        counted_quantity=counted,
        expected_quantity=expected,
        discrepancy=discrepancy,
        resolution=RESOLUTION_ADJUSTED if movement is not None else RESOLUTION_ACCEPTED,
        adjustment_movement_id=movement.id if movement is not None else None,
        notes=notes,
        created_by=actor,
    )
    db.session.add(record)
    db.session.flush()

    if discrepancy:
        logger.warning(
            "RECONCILE %s as of %s: counted %s, ledger %s, adjusted by %+d (movement %s)",
            item.code,
            count_date.isoformat(),
            counted,
            expected,
            discrepancy,
            movement.id,
        )
    else:
        logger.info("RECONCILE %s as of %s: count matches ledger (%s)", item.code, count_date.isoformat(), counted)
    return record


def _settle_item(item: Item) -> None:
    balance = replay_balance(item.id)
    if balance < 0:
        # Later movements still overdraw the counted quantity; stay halted.
        item_registry.halt_item(item, f"Ledger replays to {balance} after reconciliation.")
        logger.critical("Item %s still replays to %s after reconciliation", item.code, balance)
        return

    item_registry.refresh_balance(item, balance)
    if item.ledger_halted:
        logger.info("Item %s released from halt by reconciliation", item.code)
        item_registry.clear_halt(item)

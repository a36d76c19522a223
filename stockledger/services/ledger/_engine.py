"""
Ledger Engine - the single authority for appending stock movements.

``propose_movement`` validates without touching state; ``commit_movement``
appends an accepted proposal and refreshes the item's cached balance. Both
must only run while the caller holds the item's lock (see ``_locks``).
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ...errors import (
    DuplicateReferenceError,
    InsufficientBalanceError,
    InvariantViolation,
    ItemHaltedError,
    ItemNotFoundError,
    ValidationError,
)
from ...extensions import db
from ...models import AdjustmentEffect, Item, MovementDirection, StockMovement
from ...models.stock_movement import is_decrease
from ...utils.timezone_utils import TimezoneUtils
from .. import item_registry
from ._balance import compute_balance, minimum_balance_from, replay_balance
from ._types import Proposal

logger = logging.getLogger(__name__)


def propose_movement(
    item: Optional[Item],
    direction: MovementDirection,
    quantity: int,
    *,
    effective_date: date,
    reference: Optional[str],
    adjustment_effect: Optional[AdjustmentEffect] = None,
    custodian: Optional[str] = None,
    department: Optional[str] = None,
    purpose: Optional[str] = None,
    notes: Optional[str] = None,
    created_by: Optional[str] = None,
    staged_delta: int = 0,
    line: Optional[int] = None,
    allow_halted: bool = False,
    allow_inactive: bool = False,
) -> Proposal:
    """Check one movement against the ledger and return an accepted proposal.

    ``staged_delta`` is the net effect of earlier lines of the same transaction
    on this item; they are not committed yet but later lines must see them.
    Raises the rejection instead of returning it.
    """
    if item is None:
        raise ItemNotFoundError(f"Line {line}: item not found." if line else "Item not found.", line=line)

    direction = MovementDirection(direction)
    if direction is MovementDirection.ADJUSTMENT:
        if adjustment_effect is None:
            raise ValidationError("Adjustments must state whether they increase or decrease stock.", item_id=item.id, line=line)
        adjustment_effect = AdjustmentEffect(adjustment_effect)
    elif adjustment_effect is not None:
        raise ValidationError("Only adjustments carry an adjustment effect.", item_id=item.id, line=line)

    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
        raise ValidationError(f"Quantity must be a positive whole number, got {quantity!r}.", item_id=item.id, line=line)

    if item.ledger_halted and not allow_halted:
        raise ItemHaltedError(
            f"Item {item.code} is halted pending reconciliation: {item.halted_reason}",
            item_id=item.id,
            line=line,
        )
    if not item.is_active and not allow_inactive:
        raise ValidationError(f"Item {item.code} is deactivated.", item_id=item.id, line=line)

    if reference and _reference_used(item.id, direction, reference):
        logger.warning("Duplicate reference %s for item %s (%s)", reference, item.code, direction.value)
        raise DuplicateReferenceError(
            f"Reference '{reference}' was already posted as {direction.value} for item {item.code}.",
            item_id=item.id,
            line=line,
        )

    balance_before = _guarded_balance(item, allow_halted=allow_halted) + staged_delta

    # A halted item is being repaired by a count; its history is already known to dip.
    if is_decrease(direction, adjustment_effect) and not (allow_halted and item.ledger_halted):
        available = _guarded_minimum_from(item, effective_date, allow_halted=allow_halted) + staged_delta
        if available - quantity < 0:
            logger.warning(
                "Insufficient balance for item %s: requested %s, available %s",
                item.code,
                quantity,
                available,
            )
            raise InsufficientBalanceError(
                f"Cannot take {quantity} {item.unit} of {item.code}: only {max(available, 0)} available.",
                available=max(available, 0),
                requested=quantity,
                item_id=item.id,
                line=line,
            )

    return Proposal(
        item_id=item.id,
        direction=direction,
        quantity=quantity,
        effective_date=effective_date,
        reference=reference,
        adjustment_effect=adjustment_effect,
        custodian=custodian,
        department=department,
        purpose=purpose,
        notes=notes,
        created_by=created_by,
        balance_before=balance_before,
        line=line,
    )


def commit_movement(proposal: Proposal, item: Item, *, strict: bool = True) -> StockMovement:
    """Append the movement and refresh the registry's cached balance.

    Flushes but does not end the database transaction; callers commit once
    every line of their unit of work has been appended. Reconciliation of a
    halted item passes ``strict=False`` and settles the cache itself.
    """
    movement = StockMovement(
        item_id=proposal.item_id,
        direction=proposal.direction.value,
        adjustment_effect=proposal.adjustment_effect.value if proposal.adjustment_effect else None,
        quantity=proposal.quantity,
        effective_date=proposal.effective_date,
        reference=proposal.reference,
        custodian=proposal.custodian,
        department=proposal.department,
        purpose=proposal.purpose,
        notes=proposal.notes,
        created_by=proposal.created_by,
        created_at=TimezoneUtils.utc_now(),
    )
    db.session.add(movement)
    db.session.flush()

    if strict:
        try:
            balance = compute_balance(item.id)
        except InvariantViolation as exc:
            escalate_invariant_violation(item, exc)
            raise
        item_registry.refresh_balance(item, balance)
    logger.info(
        "LEDGER COMMIT: item=%s movement=%s %s %s ref=%s balance=%s",
        item.code,
        movement.id,
        proposal.direction.value,
        proposal.delta,
        proposal.reference,
        item.on_hand_quantity,
    )
    return movement


def commit_proposals(proposals: Iterable[Proposal], items: dict[int, Item]) -> list[StockMovement]:
    """Append every proposal and end the database transaction as one unit."""
    movements = [commit_movement(proposal, items[proposal.item_id]) for proposal in proposals]
    finish_unit_of_work()
    return movements


def finish_unit_of_work() -> None:
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        # Another process won the race for the same (item, direction, reference).
        raise DuplicateReferenceError(f"Reference already posted: {exc.orig}") from exc


def escalate_invariant_violation(item: Item, exc: InvariantViolation) -> None:
    """Halt the item and make the corruption visible; never auto-correct."""
    logger.critical("LEDGER INVARIANT VIOLATION on item %s: %s", item.code, exc.message)
    db.session.rollback()
    # The rollback ends the FOR UPDATE taken by hold_item_locks; retake it before writing the halt.
    fresh = db.session.execute(
        select(Item).where(Item.id == item.id).with_for_update()
    ).scalar_one_or_none()
    if fresh is not None and not fresh.ledger_halted:
        item_registry.halt_item(fresh, exc.message)
        db.session.commit()


def _reference_used(item_id: int, direction: MovementDirection, reference: str) -> bool:
    stmt = select(StockMovement.id).where(
        StockMovement.item_id == item_id,
        StockMovement.direction == direction.value,
        StockMovement.reference == reference,
    ).limit(1)
    return db.session.execute(stmt).first() is not None


def _guarded_balance(item: Item, *, allow_halted: bool) -> int:
    try:
        return compute_balance(item.id)
    except InvariantViolation as exc:
        if allow_halted:
            return replay_balance(item.id)
        escalate_invariant_violation(item, exc)
        raise


def _guarded_minimum_from(item: Item, effective_date: date, *, allow_halted: bool) -> int:
    lowest = minimum_balance_from(item.id, effective_date)
    if lowest < 0 and not allow_halted:
        exc = InvariantViolation(
            f"Ledger for item {item.id} dips to {lowest} on or after {effective_date.isoformat()}.",
            item_id=item.id,
        )
        escalate_invariant_violation(item, exc)
        raise exc
    return lowest

"""
Balance replay - the one formula that turns ledger history into quantities.

Movements are replayed in effective-date order, ties broken by creation
timestamp and then by movement id, so the same committed history always
produces the same running balances.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Iterator, Optional

from sqlalchemy import select

from ...errors import InvariantViolation
from ...extensions import db
from ...models import StockMovement, signed_delta

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerPoint:
    movement_id: int
    effective_date: date
    delta: int
    balance: int


def _ordering():
    return (
        StockMovement.effective_date.asc(),
        StockMovement.created_at.asc(),
        StockMovement.id.asc(),
    )


def movements_query(item_id: int, date_from: Optional[date] = None, date_to: Optional[date] = None):
    stmt = select(StockMovement).where(StockMovement.item_id == item_id)
    if date_from is not None:
        stmt = stmt.where(StockMovement.effective_date >= date_from)
    if date_to is not None:
        stmt = stmt.where(StockMovement.effective_date <= date_to)
    return stmt.order_by(*_ordering())


def list_movements(item_id: int, date_from: Optional[date] = None, date_to: Optional[date] = None) -> list[StockMovement]:
    """Movements for one item in ledger order; both date bounds are inclusive."""
    return list(db.session.execute(movements_query(item_id, date_from, date_to)).scalars())


def iter_points(item_id: int, as_of: Optional[date] = None) -> Iterator[LedgerPoint]:
    """Yield the running balance after each movement, oldest first."""
    stmt = select(
        StockMovement.id,
        StockMovement.effective_date,
        StockMovement.direction,
        StockMovement.quantity,
        StockMovement.adjustment_effect,
    ).where(StockMovement.item_id == item_id)
    if as_of is not None:
        stmt = stmt.where(StockMovement.effective_date <= as_of)

    balance = 0
    for row in db.session.execute(stmt.order_by(*_ordering())):
        delta = signed_delta(row.direction, row.quantity, row.adjustment_effect)
        balance += delta
        yield LedgerPoint(row.id, row.effective_date, delta, balance)


def replay_balance(item_id: int, as_of: Optional[date] = None) -> int:
    """Raw replay with no invariant check; reconciliation and verification use it."""
    balance = 0
    for point in iter_points(item_id, as_of):
        balance = point.balance
    return balance


def compute_balance(item_id: int, as_of: Optional[date] = None) -> int:
    """Balance of ``item_id`` after every movement effective on or before ``as_of``.

    ``as_of=None`` means all committed movements, which is "now" because
    future-dated postings are refused. A negative result is never floored:
    it means validation or serialization was bypassed, so it raises.
    """
    balance = replay_balance(item_id, as_of)
    if balance < 0:
        raise InvariantViolation(
            f"Ledger for item {item_id} replays to {balance} as of {as_of or 'now'}.",
            item_id=item_id,
        )
    return balance


def minimum_balance_from(item_id: int, effective_date: date) -> int:
    """Lowest running balance from ``effective_date`` onward.

    A new movement dated ``effective_date`` lands after every movement already
    effective that day, so the first point is the balance as of that date and
    every later point is included. A decrease of ``q`` keeps the whole history
    non-negative exactly when this minimum is at least ``q``.
    """
    opening = 0
    lowest = None
    for point in iter_points(item_id):
        if point.effective_date <= effective_date:
            opening = point.balance
            continue
        if lowest is None:
            lowest = opening
        lowest = min(lowest, point.balance)
    return opening if lowest is None else lowest


def lowest_running_balance(item_id: int) -> int:
    lowest = 0
    for point in iter_points(item_id):
        lowest = min(lowest, point.balance)
    return lowest

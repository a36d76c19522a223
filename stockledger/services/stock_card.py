"""Stock card: the per-item running ledger the supply officer prints and signs."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional

from ..models import MovementDirection, StockMovement
from . import item_registry
from .ledger import list_movements

BEGINNING_BALANCE = "Beginning Balance"

DIRECTION_LABELS = {
    MovementDirection.RECEIVED.value: "Received",
    MovementDirection.ISSUED.value: "Issued",
    MovementDirection.ADJUSTMENT.value: "Adjustment",
}


@dataclass
class StockCardRow:
    effective_date: Optional[date]
    reference: Optional[str]
    entry_type: str
    quantity_in: int
    quantity_out: int
    balance: int
    unit_cost: Decimal
    total_value: Decimal
    remarks: str
    movement_id: Optional[int] = None

    def to_dict(self):
        return {
            'movement_id': self.movement_id,
            'effective_date': self.effective_date.isoformat() if self.effective_date else None,
            'reference': self.reference,
            'type': self.entry_type,
            'quantity_in': self.quantity_in,
            'quantity_out': self.quantity_out,
            'balance': self.balance,
            'unit_cost': str(self.unit_cost),
            'total_value': str(self.total_value),
            'remarks': self.remarks,
        }


@dataclass
class StockCard:
    item_id: int
    item_code: str
    item_name: str
    unit: str
    date_from: Optional[date]
    date_to: Optional[date]
    rows: list[StockCardRow] = field(default_factory=list)

    @property
    def opening_balance(self) -> int:
        return self.rows[0].balance if self.rows else 0

    @property
    def closing_balance(self) -> int:
        return self.rows[-1].balance if self.rows else 0

    def to_dict(self):
        return {
            'item_id': self.item_id,
            'item_code': self.item_code,
            'item_name': self.item_name,
            'unit': self.unit,
            'date_from': self.date_from.isoformat() if self.date_from else None,
            'date_to': self.date_to.isoformat() if self.date_to else None,
            'opening_balance': self.opening_balance,
            'closing_balance': self.closing_balance,
            'rows': [row.to_dict() for row in self.rows],
        }


def build_stock_card(item_id: int, date_from: Optional[date] = None, date_to: Optional[date] = None) -> StockCard:
    """Running balance for ``item_id`` between two inclusive dates.

    The first row is always the beginning balance: everything effective before
    ``date_from`` (zero when there is no lower bound).
    """
    item = item_registry.get_item(item_id)
    unit_cost = item.unit_cost if item.unit_cost is not None else Decimal('0.00')

    card = StockCard(
        item_id=item.id,
        item_code=item.code,
        item_name=item.name,
        unit=item.unit,
        date_from=date_from,
        date_to=date_to,
    )

    balance = 0
    opening_added = False
    for movement in list_movements(item.id, None, date_to):
        if date_from is not None and movement.effective_date < date_from:
            balance += movement.signed_quantity
            continue
        if not opening_added:
            card.rows.append(_opening_row(date_from, balance, unit_cost))
            opening_added = True
        balance += movement.signed_quantity
        card.rows.append(_movement_row(movement, balance, unit_cost))

    if not opening_added:
        card.rows.append(_opening_row(date_from, balance, unit_cost))
    return card


def _opening_row(date_from, balance, unit_cost) -> StockCardRow:
    return StockCardRow(
        effective_date=date_from,
        reference=BEGINNING_BALANCE,
        entry_type="Opening",
        quantity_in=0,
        quantity_out=0,
        balance=balance,
        unit_cost=unit_cost,
        total_value=unit_cost * balance,
        remarks="Opening stock",
    )


def _movement_row(movement: StockMovement, balance: int, unit_cost) -> StockCardRow:
    delta = movement.signed_quantity
    return StockCardRow(
        movement_id=movement.id,
        effective_date=movement.effective_date,
        reference=movement.reference,
        entry_type=DIRECTION_LABELS.get(movement.direction, movement.direction),
        quantity_in=delta if delta > 0 else 0,
        quantity_out=-delta if delta < 0 else 0,
        balance=balance,
        unit_cost=unit_cost,
        total_value=unit_cost * balance,
        remarks=_remarks(movement),
    )


def _remarks(movement: StockMovement) -> str:
    parts = []
    if movement.department:
        parts.append(f"To {movement.department}")
    if movement.custodian:
        parts.append(f"Custodian: {movement.custodian}")
    if movement.purpose:
        parts.append(movement.purpose)
    if movement.notes:
        parts.append(movement.notes)
    return "; ".join(parts)

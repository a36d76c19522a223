"""Value types passed between the coordinator, the engine and callers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Mapping, Optional, Sequence

from ...errors import LedgerError, ValidationError
from ...models import AdjustmentEffect, MovementDirection, signed_delta
from ...utils.parsing import clean_string, safe_int


@dataclass(frozen=True)
class MovementLine:
    """One line of a receiving report or issuance slip."""

    item_id: int
    direction: MovementDirection
    quantity: int
    adjustment_effect: Optional[AdjustmentEffect] = None
    custodian: Optional[str] = None
    department: Optional[str] = None
    purpose: Optional[str] = None
    notes: Optional[str] = None

    @property
    def delta(self) -> int:
        return signed_delta(self.direction, self.quantity, self.adjustment_effect)


@dataclass(frozen=True)
class Proposal:
    """A validated, not yet committed movement."""

    item_id: int
    direction: MovementDirection
    quantity: int
    effective_date: date
    reference: Optional[str]
    adjustment_effect: Optional[AdjustmentEffect] = None
    custodian: Optional[str] = None
    department: Optional[str] = None
    purpose: Optional[str] = None
    notes: Optional[str] = None
    created_by: Optional[str] = None
    balance_before: int = 0
    line: Optional[int] = None

    @property
    def delta(self) -> int:
        return signed_delta(self.direction, self.quantity, self.adjustment_effect)

    @property
    def balance_after(self) -> int:
        return self.balance_before + self.delta


@dataclass
class TransactionResult:
    reference: Optional[str]
    movement_ids: list[int] = field(default_factory=list)
    error: Optional[LedgerError] = None

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def rejection_reason(self) -> Optional[str]:
        return self.error.message if self.error is not None else None

    @property
    def failed_line(self) -> Optional[int]:
        return self.error.line if self.error is not None else None

    def to_dict(self) -> dict:
        return {
            'success': self.success,
            'reference': self.reference,
            'movement_ids': list(self.movement_ids),
            'error': self.error.to_dict() if self.error is not None else None,
        }


def normalize_line(raw: Any, index: int) -> MovementLine:
    """Coerce a mapping, tuple or MovementLine into a MovementLine.

    ``index`` is the 1-based line number reported back on rejection.
    """
    if isinstance(raw, MovementLine):
        line = _build_line(
            raw.item_id,
            raw.direction,
            raw.quantity,
            raw.adjustment_effect,
            {
                "custodian": raw.custodian,
                "department": raw.department,
                "purpose": raw.purpose,
                "notes": raw.notes,
            },
            index,
        )
    elif isinstance(raw, Mapping):
        line = _line_from_mapping(raw, index)
    elif isinstance(raw, Sequence) and not isinstance(raw, (str, bytes)) and len(raw) == 3:
        item_id, direction, quantity = raw
        line = _build_line(item_id, direction, quantity, None, {}, index)
    else:
        raise ValidationError(f"Line {index} is not a recognizable movement line.", line=index)

    if line.direction is MovementDirection.ADJUSTMENT:
        raise ValidationError(
            "Adjustments are posted through reconciliation, not transactions.",
            item_id=line.item_id,
            line=index,
        )
    return line


def _line_from_mapping(raw: Mapping[str, Any], index: int) -> MovementLine:
    item_id = raw.get('item_id', raw.get('itemId'))
    direction = raw.get('direction', raw.get('movement_type'))
    return _build_line(item_id, direction, raw.get('quantity'), raw.get('adjustment_effect'), raw, index)


def _build_line(item_id, direction, quantity, adjustment_effect, extra, index) -> MovementLine:
    parsed_item_id = safe_int(item_id)
    if parsed_item_id is None:
        raise ValidationError(f"Line {index}: item id is required.", line=index)

    try:
        if isinstance(direction, MovementDirection):
            parsed_direction = direction
        else:
            parsed_direction = MovementDirection((clean_string(direction) or '').lower())
    except ValueError:
        raise ValidationError(
            f"Line {index}: direction must be one of {[d.value for d in MovementDirection]}.",
            item_id=parsed_item_id,
            line=index,
        ) from None

    parsed_quantity = safe_int(quantity)
    if parsed_quantity is None or parsed_quantity <= 0:
        raise ValidationError(
            f"Line {index}: quantity must be a positive whole number, got {quantity!r}.",
            item_id=parsed_item_id,
            line=index,
        )

    effect = None
    if adjustment_effect is not None:
        try:
            effect = AdjustmentEffect(adjustment_effect)
        except ValueError:
            raise ValidationError(f"Line {index}: unknown adjustment effect {adjustment_effect!r}.", line=index) from None

    return MovementLine(
        item_id=parsed_item_id,
        direction=parsed_direction,
        quantity=parsed_quantity,
        adjustment_effect=effect,
        custodian=clean_string(extra.get('custodian')),
        department=clean_string(extra.get('department')),
        purpose=clean_string(extra.get('purpose')),
        notes=clean_string(extra.get('notes')),
    )

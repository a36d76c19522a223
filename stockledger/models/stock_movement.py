from enum import Enum

from sqlalchemy import event

from ..errors import ImmutableRecordError
from ..extensions import db
from ..utils.timezone_utils import TimezoneUtils


class MovementDirection(str, Enum):
    RECEIVED = 'received'
    ISSUED = 'issued'
    ADJUSTMENT = 'adjustment'


class AdjustmentEffect(str, Enum):
    INCREASE = 'increase'
    DECREASE = 'decrease'


def signed_delta(direction, quantity, adjustment_effect=None):
    """Balance change contributed by one movement.

    ``direction`` and ``adjustment_effect`` together fix the sign; the stored
    quantity is always positive.
    """
    direction = MovementDirection(direction)
    if direction is MovementDirection.RECEIVED:
        return quantity
    if direction is MovementDirection.ISSUED:
        return -quantity
    if direction is MovementDirection.ADJUSTMENT:
        effect = AdjustmentEffect(adjustment_effect)
        return quantity if effect is AdjustmentEffect.INCREASE else -quantity
    raise ValueError(f"Unhandled movement direction: {direction}")


def is_decrease(direction, adjustment_effect=None):
    direction = MovementDirection(direction)
    if direction is MovementDirection.ADJUSTMENT:
        return AdjustmentEffect(adjustment_effect) is AdjustmentEffect.DECREASE
    return direction is MovementDirection.ISSUED


class StockMovement(db.Model):
    """Append-only ledger entry. Corrections are posted as new movements."""
    __tablename__ = 'stock_movement'

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, db.ForeignKey('item.id'), nullable=False, index=True)
    direction = db.Column(db.String(16), nullable=False)
    adjustment_effect = db.Column(db.String(16), nullable=True)
    quantity = db.Column(db.Integer, nullable=False)
    effective_date = db.Column(db.Date, nullable=False)
    reference = db.Column(db.String(64), nullable=True)

    custodian = db.Column(db.String(255), nullable=True)
    department = db.Column(db.String(255), nullable=True)
    purpose = db.Column(db.Text, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=TimezoneUtils.utc_now, nullable=False)
    created_by = db.Column(db.String(128), nullable=True)

    item = db.relationship('Item', backref=db.backref('movements', lazy='dynamic'))

    __table_args__ = (
        db.UniqueConstraint('item_id', 'direction', 'reference', name='uq_movement_item_direction_reference'),
        db.Index('ix_movement_item_effective', 'item_id', 'effective_date'),
        db.CheckConstraint('quantity > 0', name='ck_movement_quantity_positive'),
        db.CheckConstraint(
            "direction IN ('received', 'issued', 'adjustment')",
            name='ck_movement_direction',
        ),
        db.CheckConstraint(
            "(direction = 'adjustment' AND adjustment_effect IN ('increase', 'decrease')) "
            "OR (direction <> 'adjustment' AND adjustment_effect IS NULL)",
            name='ck_movement_adjustment_effect',
        ),
    )

    @property
    def signed_quantity(self):
        return signed_delta(self.direction, self.quantity, self.adjustment_effect)

    def to_dict(self):
        return {
            'id': self.id,
            'item_id': self.item_id,
            'direction': self.direction,
            'adjustment_effect': self.adjustment_effect,
            'quantity': self.quantity,
            'signed_quantity': self.signed_quantity,
            'effective_date': self.effective_date.isoformat() if self.effective_date else None,
            'reference': self.reference,
            'custodian': self.custodian,
            'department': self.department,
            'purpose': self.purpose,
            'notes': self.notes,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'created_by': self.created_by,
        }

    def __repr__(self):
        return f'<StockMovement {self.id} | Item {self.item_id} | {self.direction}: {self.signed_quantity}>'


@event.listens_for(StockMovement, "before_update")
def _forbid_movement_update(mapper, connection, target):
    raise ImmutableRecordError(
        f"Stock movement {target.id} is immutable; post an offsetting movement instead.",
        item_id=target.item_id,
    )


@event.listens_for(StockMovement, "before_delete")
def _forbid_movement_delete(mapper, connection, target):
    raise ImmutableRecordError(
        f"Stock movement {target.id} cannot be deleted from the ledger.",
        item_id=target.item_id,
    )

from decimal import Decimal

from ..extensions import db
from ..utils.timezone_utils import TimezoneUtils

STATUS_IN_STOCK = 'In Stock'
STATUS_LOW_STOCK = 'Low Stock'
STATUS_OUT_OF_STOCK = 'Out of Stock'
STOCK_STATUSES = (STATUS_IN_STOCK, STATUS_LOW_STOCK, STATUS_OUT_OF_STOCK)


def stock_status(on_hand_quantity, reorder_level):
    """Derive the shelf status from the cached balance; never stored."""
    quantity = on_hand_quantity or 0
    if quantity <= 0:
        return STATUS_OUT_OF_STOCK
    if quantity <= (reorder_level or 0):
        return STATUS_LOW_STOCK
    return STATUS_IN_STOCK


class Item(db.Model):
    """Supply item held by the office (paper, toner, cleaning materials...)"""
    __tablename__ = 'item'

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), nullable=False, unique=True, index=True)
    name = db.Column(db.String(255), nullable=False, index=True)
    unit = db.Column(db.String(32), nullable=False, default='piece')
    unit_cost = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal('0.00'))
    reorder_level = db.Column(db.Integer, nullable=False, default=0)
    category = db.Column(db.String(128), nullable=True, index=True)
    location = db.Column(db.String(128), nullable=True)

    # Projection of the movement ledger; written only through ItemRegistry.refresh_balance.
    on_hand_quantity = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    ledger_halted = db.Column(db.Boolean, nullable=False, default=False)
    halted_reason = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.String(128), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=TimezoneUtils.utc_now, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=TimezoneUtils.utc_now, onupdate=TimezoneUtils.utc_now)

    __table_args__ = (
        db.CheckConstraint('reorder_level >= 0', name='ck_item_reorder_level_non_negative'),
        db.Index('ix_item_is_active', 'is_active'),
    )

    @property
    def status(self):
        return stock_status(self.on_hand_quantity, self.reorder_level)

    @property
    def total_value(self):
        return (self.unit_cost or Decimal('0')) * (self.on_hand_quantity or 0)

    def to_dict(self):
        return {
            'id': self.id,
            'code': self.code,
            'name': self.name,
            'unit': self.unit,
            'unit_cost': str(self.unit_cost if self.unit_cost is not None else Decimal('0.00')),
            'reorder_level': self.reorder_level,
            'category': self.category,
            'location': self.location,
            'on_hand_quantity': self.on_hand_quantity,
            'status': self.status,
            'total_value': str(self.total_value),
            'is_active': bool(self.is_active),
            'ledger_halted': bool(self.ledger_halted),
            'halted_reason': self.halted_reason,
        }

    def __repr__(self):
        return f'<Item {self.code} on_hand={self.on_hand_quantity}>'

from sqlalchemy import event

from ..errors import ImmutableRecordError
from ..extensions import db
from ..utils.timezone_utils import TimezoneUtils

RESOLUTION_ADJUSTED = 'adjusted'
RESOLUTION_ACCEPTED = 'accepted_as_is'

SESSION_IN_PROGRESS = 'in_progress'
SESSION_COMPLETED = 'completed'


class ReconciliationRecord(db.Model):
    """Outcome of comparing a physical count with the ledger-derived balance."""
    __tablename__ = 'reconciliation_record'

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, db.ForeignKey('item.id'), nullable=False, index=True)
    count_session_id = db.Column(db.Integer, db.ForeignKey('count_session.id'), nullable=True, index=True)
    as_of_date = db.Column(db.Date, nullable=False)
    counted_quantity = db.Column(db.Integer, nullable=False)
    expected_quantity = db.Column(db.Integer, nullable=False)
    discrepancy = db.Column(db.Integer, nullable=False)
    resolution = db.Column(db.String(32), nullable=False)
    adjustment_movement_id = db.Column(db.Integer, db.ForeignKey('stock_movement.id'), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.String(128), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=TimezoneUtils.utc_now, nullable=False)

    item = db.relationship('Item')
    adjustment_movement = db.relationship('StockMovement')

    __table_args__ = (
        db.CheckConstraint('counted_quantity >= 0', name='ck_reconciliation_counted_non_negative'),
        db.CheckConstraint(
            "(resolution = 'adjusted' AND adjustment_movement_id IS NOT NULL) "
            "OR (resolution = 'accepted_as_is' AND adjustment_movement_id IS NULL)",
            name='ck_reconciliation_resolution',
        ),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'item_id': self.item_id,
            'count_session_id': self.count_session_id,
            'as_of_date': self.as_of_date.isoformat(),
            'counted_quantity': self.counted_quantity,
            'expected_quantity': self.expected_quantity,
            'discrepancy': self.discrepancy,
            'resolution': self.resolution,
            'adjustment_movement_id': self.adjustment_movement_id,
            'notes': self.notes,
            'created_by': self.created_by,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


@event.listens_for(ReconciliationRecord, "before_update")
def _forbid_record_update(mapper, connection, target):
    raise ImmutableRecordError(
        f"Reconciliation record {target.id} is immutable once committed.",
        item_id=target.item_id,
    )


class CountSession(db.Model):
    """A physical count walk: many items counted by one team on one date."""
    __tablename__ = 'count_session'

    id = db.Column(db.Integer, primary_key=True)
    count_date = db.Column(db.Date, nullable=False)
    counted_by = db.Column(db.String(255), nullable=False)
    location = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(16), nullable=False, default=SESSION_IN_PROGRESS)
    items_counted = db.Column(db.Integer, nullable=False, default=0)
    discrepancies_found = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), default=TimezoneUtils.utc_now, nullable=False)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    lines = db.relationship(
        'CountSessionLine',
        backref='session',
        order_by='CountSessionLine.item_id',
        cascade='all, delete-orphan',
    )
    records = db.relationship('ReconciliationRecord', backref='count_session', order_by='ReconciliationRecord.item_id')

    def to_dict(self, include_lines=True):
        payload = {
            'id': self.id,
            'count_date': self.count_date.isoformat(),
            'counted_by': self.counted_by,
            'location': self.location,
            'notes': self.notes,
            'status': self.status,
            'items_counted': self.items_counted,
            'discrepancies_found': self.discrepancies_found,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
        }
        if include_lines:
            payload['lines'] = [line.to_dict() for line in self.lines]
            payload['records'] = [record.to_dict() for record in self.records]
        return payload


class CountSessionLine(db.Model):
    __tablename__ = 'count_session_line'

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey('count_session.id'), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey('item.id'), nullable=False)
    counted_quantity = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.Text, nullable=True)

    item = db.relationship('Item')

    __table_args__ = (
        db.UniqueConstraint('session_id', 'item_id', name='uq_count_line_session_item'),
        db.CheckConstraint('counted_quantity >= 0', name='ck_count_line_non_negative'),
    )

    def to_dict(self):
        return {
            'item_id': self.item_id,
            'counted_quantity': self.counted_quantity,
            'notes': self.notes,
        }

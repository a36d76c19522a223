"""0001 ledger schema

Revision ID: 0001_ledger_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001_ledger_schema'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'item',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('unit', sa.String(length=32), nullable=False),
        sa.Column('unit_cost', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('reorder_level', sa.Integer(), nullable=False),
        sa.Column('category', sa.String(length=128), nullable=True),
        sa.Column('location', sa.String(length=128), nullable=True),
        sa.Column('on_hand_quantity', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('ledger_halted', sa.Boolean(), nullable=False),
        sa.Column('halted_reason', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(length=128), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('reorder_level >= 0', name='ck_item_reorder_level_non_negative'),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('item', schema=None) as batch_op:
        batch_op.create_index('ix_item_code', ['code'], unique=True)
        batch_op.create_index('ix_item_name', ['name'], unique=False)
        batch_op.create_index('ix_item_category', ['category'], unique=False)
        batch_op.create_index('ix_item_is_active', ['is_active'], unique=False)

    op.create_table(
        'stock_movement',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=False),
        sa.Column('direction', sa.String(length=16), nullable=False),
        sa.Column('adjustment_effect', sa.String(length=16), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('effective_date', sa.Date(), nullable=False),
        sa.Column('reference', sa.String(length=64), nullable=True),
        sa.Column('custodian', sa.String(length=255), nullable=True),
        sa.Column('department', sa.String(length=255), nullable=True),
        sa.Column('purpose', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_by', sa.String(length=128), nullable=True),
        sa.CheckConstraint('quantity > 0', name='ck_movement_quantity_positive'),
        sa.CheckConstraint(
            "direction IN ('received', 'issued', 'adjustment')",
            name='ck_movement_direction',
        ),
        sa.CheckConstraint(
            "(direction = 'adjustment' AND adjustment_effect IN ('increase', 'decrease')) "
            "OR (direction <> 'adjustment' AND adjustment_effect IS NULL)",
            name='ck_movement_adjustment_effect',
        ),
        sa.ForeignKeyConstraint(['item_id'], ['item.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('item_id', 'direction', 'reference', name='uq_movement_item_direction_reference'),
    )
    with op.batch_alter_table('stock_movement', schema=None) as batch_op:
        batch_op.create_index('ix_stock_movement_item_id', ['item_id'], unique=False)
        batch_op.create_index('ix_movement_item_effective', ['item_id', 'effective_date'], unique=False)

    op.create_table(
        'count_session',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('count_date', sa.Date(), nullable=False),
        sa.Column('counted_by', sa.String(length=255), nullable=False),
        sa.Column('location', sa.String(length=128), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('items_counted', sa.Integer(), nullable=False),
        sa.Column('discrepancies_found', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'count_session_line',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('session_id', sa.Integer(), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=False),
        sa.Column('counted_quantity', sa.Integer(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.CheckConstraint('counted_quantity >= 0', name='ck_count_line_non_negative'),
        sa.ForeignKeyConstraint(['item_id'], ['item.id']),
        sa.ForeignKeyConstraint(['session_id'], ['count_session.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('session_id', 'item_id', name='uq_count_line_session_item'),
    )
    with op.batch_alter_table('count_session_line', schema=None) as batch_op:
        batch_op.create_index('ix_count_session_line_session_id', ['session_id'], unique=False)

    op.create_table(
        'reconciliation_record',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=False),
        sa.Column('count_session_id', sa.Integer(), nullable=True),
        sa.Column('as_of_date', sa.Date(), nullable=False),
        sa.Column('counted_quantity', sa.Integer(), nullable=False),
        sa.Column('expected_quantity', sa.Integer(), nullable=False),
        sa.Column('discrepancy', sa.Integer(), nullable=False),
        sa.Column('resolution', sa.String(length=32), nullable=False),
        sa.Column('adjustment_movement_id', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(length=128), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('counted_quantity >= 0', name='ck_reconciliation_counted_non_negative'),
        sa.CheckConstraint(
            "(resolution = 'adjusted' AND adjustment_movement_id IS NOT NULL) "
            "OR (resolution = 'accepted_as_is' AND adjustment_movement_id IS NULL)",
            name='ck_reconciliation_resolution',
        ),
        sa.ForeignKeyConstraint(['adjustment_movement_id'], ['stock_movement.id']),
        sa.ForeignKeyConstraint(['count_session_id'], ['count_session.id']),
        sa.ForeignKeyConstraint(['item_id'], ['item.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('reconciliation_record', schema=None) as batch_op:
        batch_op.create_index('ix_reconciliation_record_item_id', ['item_id'], unique=False)
        batch_op.create_index('ix_reconciliation_record_count_session_id', ['count_session_id'], unique=False)


def downgrade():
    with op.batch_alter_table('reconciliation_record', schema=None) as batch_op:
        batch_op.drop_index('ix_reconciliation_record_count_session_id')
        batch_op.drop_index('ix_reconciliation_record_item_id')
    op.drop_table('reconciliation_record')

    with op.batch_alter_table('count_session_line', schema=None) as batch_op:
        batch_op.drop_index('ix_count_session_line_session_id')
    op.drop_table('count_session_line')
    op.drop_table('count_session')

    with op.batch_alter_table('stock_movement', schema=None) as batch_op:
        batch_op.drop_index('ix_movement_item_effective')
        batch_op.drop_index('ix_stock_movement_item_id')
    op.drop_table('stock_movement')

    with op.batch_alter_table('item', schema=None) as batch_op:
        batch_op.drop_index('ix_item_is_active')
        batch_op.drop_index('ix_item_category')
        batch_op.drop_index('ix_item_name')
        batch_op.drop_index('ix_item_code')
    op.drop_table('item')

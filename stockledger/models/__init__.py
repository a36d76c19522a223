"""Models package - imports all models for the application"""
from ..extensions import db
from .item import Item, stock_status, STOCK_STATUSES
from .stock_movement import StockMovement, MovementDirection, AdjustmentEffect, signed_delta
from .reconciliation import ReconciliationRecord, CountSession, CountSessionLine

__all__ = [
    'db',
    'Item',
    'stock_status',
    'STOCK_STATUSES',
    'StockMovement',
    'MovementDirection',
    'AdjustmentEffect',
    'signed_delta',
    'ReconciliationRecord',
    'CountSession',
    'CountSessionLine',
]

"""
Inventory Ledger Service - Canonical Entry Point

This package is the single source of truth for stock quantities. Every change
to an item's balance is a movement appended here, either through
post_transaction (receiving reports, issuance slips) or reconcile (physical
counts). Balances are always derived from the movements.
"""

from datetime import date
from typing import Any, Optional

from ...errors import InvariantViolation, ValidationError
from ...utils.parsing import parse_date
from .. import item_registry
from ._balance import LedgerPoint, compute_balance, iter_points, list_movements, replay_balance
from ._coordinator import post_transaction, resolve_effective_date, validate_transaction
from ._count_sessions import (
    finalize_count_session,
    get_count_session,
    record_count,
    record_counts,
    start_count_session,
)
from ._engine import commit_movement, escalate_invariant_violation, propose_movement
from ._locks import hold_item_locks
from ._reconciliation import reconcile
from ._types import MovementLine, Proposal, TransactionResult
from ._validation import refresh_all_balances, verify_item, verify_ledger

# Public API - expose the canonical functions needed by blueprints and commands
__all__ = [
    'LedgerPoint',
    'MovementLine',
    'Proposal',
    'TransactionResult',
    'commit_movement',
    'compute_balance',
    'finalize_count_session',
    'get_balance',
    'get_count_session',
    'hold_item_locks',
    'iter_points',
    'list_movements',
    'post_transaction',
    'propose_movement',
    'reconcile',
    'record_count',
    'record_counts',
    'refresh_all_balances',
    'replay_balance',
    'resolve_effective_date',
    'start_count_session',
    'validate_transaction',
    'verify_item',
    'verify_ledger',
]


def get_balance(item_id: int, as_of: Any = None) -> int:
    """Ledger-derived balance of an existing item; never negative."""
    item = item_registry.get_item(item_id)
    cutoff: Optional[date] = None
    if as_of not in (None, ''):
        cutoff = parse_date(as_of)
        if cutoff is None:
            raise ValidationError(f"as_of {as_of!r} is not a valid YYYY-MM-DD date.", item_id=item_id)
    try:
        return compute_balance(item.id, cutoff)
    except InvariantViolation as exc:
        escalate_invariant_violation(item, exc)
        raise

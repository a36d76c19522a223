"""
Transaction Coordinator - atomic multi-line posting.

A receiving report with five lines or an issuance slip with three lines is
indivisible: every line is validated while all of the transaction's item
locks are held, and only when all of them pass are the movements appended
and committed in one database transaction.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date, timedelta
from typing import Any, Iterable, Optional

from flask import current_app, has_app_context

from ...errors import InvariantViolation, LedgerError, ValidationError
from ...utils.parsing import clean_string, parse_date
from ...utils.timezone_utils import TimezoneUtils
from ._engine import commit_proposals, propose_movement
from ._locks import hold_item_locks
from ._types import MovementLine, TransactionResult, normalize_line

logger = logging.getLogger(__name__)

MAX_REFERENCE_LENGTH = 64


def post_transaction(
    lines: Iterable[Any],
    reference: str,
    effective_date: Any = None,
    actor: Optional[str] = None,
    *,
    custodian: Optional[str] = None,
    department: Optional[str] = None,
    purpose: Optional[str] = None,
    notes: Optional[str] = None,
) -> TransactionResult:
    """Post every line under one reference, or none of them.

    ``custodian``, ``department``, ``purpose`` and ``notes`` are slip-level
    defaults; a line's own values win. Recoverable rejections come back in
    the result; an ``InvariantViolation`` is raised.
    """
    cleaned_reference = clean_string(reference)
    try:
        normalized, posting_date = validate_transaction(lines, cleaned_reference, effective_date)
    except ValidationError as exc:
        logger.warning("Transaction %s rejected before locking: %s", cleaned_reference, exc.message)
        return TransactionResult(reference=cleaned_reference, error=exc)

    item_ids = {line.item_id for line in normalized}
    logger.info(
        "POST TRANSACTION: ref=%s lines=%s items=%s actor=%s",
        cleaned_reference,
        len(normalized),
        sorted(item_ids),
        actor,
    )

    try:
        with hold_item_locks(item_ids) as items:
            staged: dict[int, int] = defaultdict(int)
            proposals = []
            for index, line in enumerate(normalized, start=1):
                proposal = propose_movement(
                    items.get(line.item_id),
                    line.direction,
                    line.quantity,
                    effective_date=posting_date,
                    reference=cleaned_reference,
                    custodian=line.custodian or clean_string(custodian),
                    department=line.department or clean_string(department),
                    purpose=line.purpose or clean_string(purpose),
                    notes=line.notes or clean_string(notes),
                    created_by=actor,
                    staged_delta=staged[line.item_id],
                    line=index,
                )
                staged[line.item_id] += proposal.delta
                proposals.append(proposal)

            movements = commit_proposals(proposals, items)
    except InvariantViolation:
        logger.exception("Transaction %s aborted by a ledger invariant violation", cleaned_reference)
        raise
    except LedgerError as exc:
        logger.warning(
            "Transaction %s rejected at line %s: %s",
            cleaned_reference,
            exc.line,
            exc.message,
        )
        return TransactionResult(reference=cleaned_reference, error=exc)

    return TransactionResult(reference=cleaned_reference, movement_ids=[m.id for m in movements])


def validate_transaction(lines: Iterable[Any], reference: Optional[str], effective_date: Any):
    """Structural checks that need no lock: shape, reference, quantities, date."""
    if not reference:
        raise ValidationError("A reference number (PO, DR or RIS) is required.")
    if len(reference) > MAX_REFERENCE_LENGTH:
        raise ValidationError(f"Reference must be at most {MAX_REFERENCE_LENGTH} characters.")

    raw_lines = list(lines or [])
    if not raw_lines:
        raise ValidationError("A transaction needs at least one line.")

    normalized: list[MovementLine] = [normalize_line(raw, index) for index, raw in enumerate(raw_lines, start=1)]

    seen: dict[tuple[int, str], int] = {}
    for index, line in enumerate(normalized, start=1):
        key = (line.item_id, line.direction.value)
        if key in seen:
            raise ValidationError(
                f"Line {index} repeats item {line.item_id} ({line.direction.value}) from line {seen[key]}; "
                "combine them into one line.",
                item_id=line.item_id,
                line=index,
            )
        seen[key] = index

    return normalized, resolve_effective_date(effective_date)


def resolve_effective_date(value: Any) -> date:
    today = TimezoneUtils.office_today(_config('LEDGER_TIMEZONE', 'UTC'))
    if value in (None, ''):
        return today

    parsed = parse_date(value)
    if parsed is None:
        raise ValidationError(f"Effective date {value!r} is not a valid YYYY-MM-DD date.")
    if parsed > today:
        raise ValidationError(f"Effective date {parsed.isoformat()} is in the future.")

    window = int(_config('LEDGER_ALLOW_BACKDATED_DAYS', 365))
    if window >= 0 and parsed < today - timedelta(days=window):
        raise ValidationError(
            f"Effective date {parsed.isoformat()} is more than {window} days in the past."
        )
    return parsed


def _config(key: str, default):
    if has_app_context():
        return current_app.config.get(key, default)
    return default

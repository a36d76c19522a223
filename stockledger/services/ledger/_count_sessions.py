"""Physical count sessions: collect counts for many items, then reconcile them together."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Sequence

from ...errors import CountSessionNotFoundError, ItemNotFoundError, ValidationError
from ...extensions import db
from ...models import CountSession, CountSessionLine, Item
from ...models.reconciliation import SESSION_COMPLETED, SESSION_IN_PROGRESS
from ...utils.parsing import clean_string, safe_int
from ...utils.timezone_utils import TimezoneUtils
from ._coordinator import resolve_effective_date
from ._engine import finish_unit_of_work
from ._locks import hold_item_locks
from ._reconciliation import reconcile_locked, validate_count

logger = logging.getLogger(__name__)


def start_count_session(
    counted_by: str,
    count_date: Any = None,
    *,
    location: Optional[str] = None,
    notes: Optional[str] = None,
) -> CountSession:
    counter = clean_string(counted_by)
    if not counter:
        raise ValidationError("A count session needs the name of whoever counted.")

    session = CountSession(
        count_date=resolve_effective_date(count_date),
        counted_by=counter,
        location=clean_string(location),
        notes=clean_string(notes),
        status=SESSION_IN_PROGRESS,
    )
    db.session.add(session)
    db.session.commit()
    logger.info("Count session %s started by %s for %s", session.id, counter, session.count_date.isoformat())
    return session


def get_count_session(session_id: int) -> CountSession:
    session = db.session.get(CountSession, session_id) if session_id is not None else None
    if session is None:
        raise CountSessionNotFoundError(f"Count session {session_id} not found.")
    return session


def record_count(session_id: int, item_id: Any, counted_quantity: Any, notes: Optional[str] = None) -> CountSessionLine:
    """Record (or re-record) one item's counted quantity in an open session."""
    lines = record_counts(
        session_id,
        [{'item_id': item_id, 'counted_quantity': counted_quantity, 'notes': notes}],
    )
    return lines[0]


def record_counts(session_id: int, entries: Sequence[Any]) -> list[CountSessionLine]:
    """Record a batch of counts; every entry is checked before any is saved."""
    session = get_count_session(session_id)
    _require_open(session)

    if isinstance(entries, (str, bytes, Mapping)) or not isinstance(entries, Sequence) or not entries:
        raise ValidationError("Counts must be a non-empty list of {item_id, counted_quantity} entries.")

    checked = [_check_count_entry(entry, index) for index, entry in enumerate(entries, start=1)]

    lines = []
    for item, counted, notes in checked:
        line = CountSessionLine.query.filter_by(session_id=session.id, item_id=item.id).first()
        if line is None:
            line = CountSessionLine(session_id=session.id, item_id=item.id, counted_quantity=counted)
            db.session.add(line)
        else:
            line.counted_quantity = counted
        line.notes = notes
        lines.append(line)
    db.session.commit()
    logger.info("Count session %s: recorded %s count(s)", session.id, len(lines))
    return lines


def _check_count_entry(entry: Any, index: int):
    if not isinstance(entry, Mapping):
        raise ValidationError(f"Line {index} is not a count entry.", line=index)

    counted = validate_count(entry.get('counted_quantity'), line=index)
    item_id = safe_int(entry.get('item_id'))
    item = db.session.get(Item, item_id) if item_id is not None else None
    if item is None:
        raise ItemNotFoundError(f"Line {index}: item {entry.get('item_id')!r} not found.", item_id=item_id, line=index)
    return item, counted, clean_string(entry.get('notes'))


def finalize_count_session(session_id: int, actor: Optional[str] = None) -> CountSession:
    """Reconcile every counted item in one unit of work, holding all of their locks."""
    session = get_count_session(session_id)
    _require_open(session)
    item_ids = [line.item_id for line in session.lines]
    if not item_ids:
        raise ValidationError(f"Count session {session_id} has no counted items.")

    with hold_item_locks(item_ids) as items:
        # Re-read under the locks; another finalize may have won.
        session = get_count_session(session_id)
        _require_open(session)

        discrepancies = 0
        for index, line in enumerate(session.lines, start=1):
            item = items.get(line.item_id)
            if item is None:
                raise ItemNotFoundError(f"Item {line.item_id} not found.", item_id=line.item_id, line=index)
            record = reconcile_locked(
                item,
                line.counted_quantity,
                session.count_date,
                actor or session.counted_by,
                reference=f"COUNT-{session.id}",
                notes=line.notes,
                count_session_id=session.id,
                line=index,
            )
            if record.discrepancy:
                discrepancies += 1

        session.items_counted = len(session.lines)
        session.discrepancies_found = discrepancies
        session.status = SESSION_COMPLETED
        session.completed_at = TimezoneUtils.utc_now()
        finish_unit_of_work()

    logger.info(
        "Count session %s finalized: %s items, %s discrepancies",
        session.id,
        session.items_counted,
        session.discrepancies_found,
    )
    return session


def _require_open(session: CountSession) -> None:
    if session.status != SESSION_IN_PROGRESS:
        raise ValidationError(f"Count session {session.id} is already {session.status}.")

"""
Item Registry - identity of supply items and their cached on-hand projection.

Descriptive attributes (name, unit, cost, reorder level, category, location)
are maintained here. The cached ``on_hand_quantity`` and the halt flag are
owned by the ledger engine: ``refresh_balance``, ``halt_item`` and
``clear_halt`` are only called from ``stockledger.services.ledger`` while the
item lock is held.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Mapping, Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from ..errors import DuplicateItemCodeError, ItemNotFoundError, ValidationError
from ..extensions import db
from ..models import Item, STOCK_STATUSES
from ..models.item import STATUS_IN_STOCK, STATUS_LOW_STOCK, STATUS_OUT_OF_STOCK
from ..utils.parsing import clean_string, safe_decimal, safe_int

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ('name', 'unit', 'unit_cost', 'reorder_level', 'category', 'location')


def register_item(
    code: str,
    name: str,
    unit: str = 'piece',
    unit_cost: Any = 0,
    reorder_level: Any = 0,
    category: str | None = None,
    location: str | None = None,
    created_by: str | None = None,
) -> int:
    """Create a new item with a zero balance and return its id."""
    attributes = _normalize_attributes(
        {
            'name': name,
            'unit': unit,
            'unit_cost': unit_cost,
            'reorder_level': reorder_level,
            'category': category,
            'location': location,
        }
    )
    normalized_code = clean_string(code)
    if not normalized_code:
        raise ValidationError("Item code is required.")
    normalized_code = normalized_code.upper()

    if find_by_code(normalized_code) is not None:
        raise DuplicateItemCodeError(f"Item code '{normalized_code}' is already registered.")

    item = Item(code=normalized_code, on_hand_quantity=0, created_by=created_by, **attributes)
    db.session.add(item)
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise DuplicateItemCodeError(f"Item code '{normalized_code}' is already registered.") from exc

    logger.info("Registered item %s (%s) id=%s", item.code, item.name, item.id)
    return item.id


def get_item(item_id: int) -> Item:
    item = db.session.get(Item, item_id) if item_id is not None else None
    if item is None:
        raise ItemNotFoundError(f"Item {item_id} not found.", item_id=item_id)
    return item


def find_by_code(code: str | None) -> Optional[Item]:
    normalized = clean_string(code)
    if not normalized:
        return None
    return Item.query.filter(func.upper(Item.code) == normalized.upper()).first()


def search_items(
    query: str | None = None,
    *,
    category: str | None = None,
    status: str | None = None,
    include_inactive: bool = False,
) -> list[Item]:
    """Filter items by code/name substring, category and derived stock status."""
    q = Item.query
    if not include_inactive:
        q = q.filter(Item.is_active.is_(True))

    term = clean_string(query)
    if term:
        like = f"%{term.lower()}%"
        q = q.filter(or_(func.lower(Item.code).like(like), func.lower(Item.name).like(like)))

    category = clean_string(category)
    if category:
        q = q.filter(func.lower(Item.category) == category.lower())

    status = clean_string(status)
    if status:
        if status not in STOCK_STATUSES:
            raise ValidationError(f"Unknown stock status '{status}'. Expected one of {list(STOCK_STATUSES)}.")
        # Status is derived, so the filter mirrors stock_status() in SQL.
        if status == STATUS_OUT_OF_STOCK:
            q = q.filter(Item.on_hand_quantity <= 0)
        elif status == STATUS_LOW_STOCK:
            q = q.filter(Item.on_hand_quantity > 0, Item.on_hand_quantity <= Item.reorder_level)
        elif status == STATUS_IN_STOCK:
            q = q.filter(Item.on_hand_quantity > Item.reorder_level, Item.on_hand_quantity > 0)

    return q.order_by(Item.code.asc()).all()


def update_item_details(item_id: int, changes: Mapping[str, Any], updated_by: str | None = None) -> Item:
    """Edit descriptive attributes. Quantities only move through the ledger."""
    forbidden = {'on_hand_quantity', 'quantity', 'ledger_halted', 'code', 'id'} & set(changes)
    if forbidden:
        raise ValidationError(
            f"Fields {sorted(forbidden)} cannot be edited directly; post a transaction or reconciliation instead.",
            item_id=item_id,
        )
    unknown = set(changes) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown item fields: {sorted(unknown)}", item_id=item_id)

    item = get_item(item_id)
    merged = {field: getattr(item, field) for field in EDITABLE_FIELDS}
    merged.update(changes)
    for field, value in _normalize_attributes(merged).items():
        setattr(item, field, value)
    db.session.commit()
    logger.info("Item %s details updated by %s: %s", item.code, updated_by or 'system', sorted(changes))
    return item


def deactivate_item(item_id: int) -> Item:
    """Soft-deactivate; the item and its history stay in place."""
    item = get_item(item_id)
    item.is_active = False
    db.session.commit()
    logger.info("Item %s deactivated with %s on hand", item.code, item.on_hand_quantity)
    return item


def reactivate_item(item_id: int) -> Item:
    item = get_item(item_id)
    item.is_active = True
    db.session.commit()
    return item


def refresh_balance(item: Item, balance: int) -> None:
    """Rewrite the cached balance with a value computed by the ledger engine."""
    if item.on_hand_quantity != balance:
        logger.debug("Item %s cached balance %s -> %s", item.code, item.on_hand_quantity, balance)
    item.on_hand_quantity = balance


def halt_item(item: Item, reason: str) -> None:
    item.ledger_halted = True
    item.halted_reason = reason


def clear_halt(item: Item) -> None:
    item.ledger_halted = False
    item.halted_reason = None


def _normalize_attributes(raw: Mapping[str, Any]) -> dict:
    name = clean_string(raw.get('name'))
    if not name:
        raise ValidationError("Item name is required.")

    unit = clean_string(raw.get('unit')) or 'piece'

    unit_cost = raw.get('unit_cost')
    cost = unit_cost if isinstance(unit_cost, Decimal) else safe_decimal(unit_cost if unit_cost is not None else 0)
    if cost is None or cost < 0:
        raise ValidationError(f"Unit cost must be a non-negative amount, got {unit_cost!r}.")

    reorder_raw = raw.get('reorder_level')
    reorder_level = safe_int(reorder_raw if reorder_raw is not None else 0)
    if reorder_level is None or reorder_level < 0:
        raise ValidationError(f"Reorder level must be a non-negative whole number, got {reorder_raw!r}.")

    return {
        'name': name,
        'unit': unit,
        'unit_cost': cost.quantize(Decimal('0.01')),
        'reorder_level': reorder_level,
        'category': clean_string(raw.get('category')),
        'location': clean_string(raw.get('location')),
    }

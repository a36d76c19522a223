from __future__ import annotations

import logging
from typing import Any, Mapping, MutableMapping, Optional, Sequence

from ..errors import ItemNotFoundError, LedgerError, ValidationError
from ..models import MovementDirection
from ..utils.parsing import clean_string, safe_int
from . import item_registry
from .ledger import TransactionResult, post_transaction

logger = logging.getLogger(__name__)

REQUEST_APPROVED = "approved"
REQUEST_STATUSES = {"pending", "approved", "rejected", "fulfilled"}


class StockIssuanceService:
    """Turns receiving reports, issuance slips and department requests into ledger transactions."""

    def __init__(self, *, actor: str | None = None):
        self.actor = clean_string(actor)

    def receive_stock(
        self,
        lines: Sequence[Mapping[str, Any]] | None,
        reference: str,
        *,
        effective_date: Any = None,
        supplier: str | None = None,
        notes: str | None = None,
    ) -> TransactionResult:
        """Post a multi-line receipt under one PO/DR reference."""
        supplier = clean_string(supplier)
        return self._post(
            lines,
            MovementDirection.RECEIVED,
            reference,
            effective_date=effective_date,
            purpose=f"Supplier: {supplier}" if supplier else None,
            notes=notes,
        )

    def issue_stock(
        self,
        lines: Sequence[Mapping[str, Any]] | None,
        reference: str,
        *,
        custodian: str | None = None,
        department: str | None = None,
        purpose: str | None = None,
        effective_date: Any = None,
        notes: str | None = None,
    ) -> TransactionResult:
        """Post a multi-line issuance (RIS) to one custodian and department."""
        return self._post(
            lines,
            MovementDirection.ISSUED,
            reference,
            effective_date=effective_date,
            custodian=custodian,
            department=department,
            purpose=purpose,
            notes=notes,
        )

    def fulfil_department_request(self, request_data: Mapping[str, Any], *, effective_date: Any = None) -> TransactionResult:
        """Issue everything on an approved department request; the request number is the reference."""
        request_number = clean_string(request_data.get("request_number"))
        status = (clean_string(request_data.get("status")) or "").lower()
        try:
            if not request_number:
                raise ValidationError("Department request has no request number.")
            if status not in REQUEST_STATUSES:
                raise ValidationError(f"Department request {request_number} has unknown status '{status}'.")
            if status != REQUEST_APPROVED:
                raise ValidationError(f"Department request {request_number} is {status}; only approved requests can be fulfilled.")
        except ValidationError as exc:
            logger.warning("Request fulfilment refused: %s", exc.message)
            return TransactionResult(reference=request_number, error=exc)

        requested_by = clean_string(request_data.get("requested_by"))
        result = self.issue_stock(
            request_data.get("items") or request_data.get("lines"),
            request_number,
            custodian=requested_by,
            department=request_data.get("department"),
            effective_date=effective_date if effective_date is not None else request_data.get("effective_date"),
            notes=request_data.get("remarks"),
        )
        if result.success:
            logger.info("Department request %s fulfilled with %s movement(s)", request_number, len(result.movement_ids))
        return result

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _post(self, lines, direction: MovementDirection, reference, *, effective_date=None, **defaults) -> TransactionResult:
        try:
            normalized = [self._normalize_line(entry, direction, idx) for idx, entry in enumerate(lines or [], start=1)]
        except LedgerError as exc:
            logger.warning("%s slip %s refused: %s", direction.value, reference, exc.message)
            return TransactionResult(reference=clean_string(reference), error=exc)

        return post_transaction(normalized, reference, effective_date, self.actor, **defaults)

    def _normalize_line(self, raw: Mapping[str, Any], direction: MovementDirection, index: int) -> MutableMapping[str, Any]:
        if not isinstance(raw, Mapping):
            raise ValidationError(f"Line {index} is not a recognizable movement line.", line=index)
        return {
            "item_id": self._resolve_item_id(raw, index),
            "direction": direction.value,
            "quantity": raw.get("quantity"),
            "custodian": raw.get("custodian"),
            "department": raw.get("department"),
            "purpose": raw.get("purpose"),
            "notes": raw.get("notes"),
        }

    def _resolve_item_id(self, raw: Mapping[str, Any], index: int) -> Optional[int]:
        item_id = safe_int(raw.get("item_id"))
        if item_id is not None:
            return item_id

        code = clean_string(raw.get("item_code") or raw.get("code"))
        if not code:
            raise ValidationError(f"Line {index}: item id or item code is required.", line=index)
        item = item_registry.find_by_code(code)
        if item is None:
            raise ItemNotFoundError(f"Line {index}: item code '{code}' is not registered.", line=index)
        return item.id

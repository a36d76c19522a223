"""Error taxonomy for the inventory ledger.

Every rejection the ledger can produce is a ``LedgerError``. The recoverable
ones (bad input, not enough stock, reused reference, lock contention) are
reported back to the caller so the transaction can be corrected and
resubmitted. ``InvariantViolation`` is different: it means the ledger itself
replayed to an impossible state and the affected item is halted until a
physical count reconciles it.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for ledger rejections."""

    code = "ledger_error"
    recoverable = True

    def __init__(self, message: str, *, item_id: int | None = None, line: int | None = None):
        super().__init__(message)
        self.message = message
        self.item_id = item_id
        self.line = line

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "item_id": self.item_id,
            "line": self.line,
        }


class ValidationError(LedgerError):
    """Malformed request: caught before any lock is taken."""

    code = "validation_error"


class DuplicateItemCodeError(ValidationError):
    code = "duplicate_item_code"


class RecordNotFoundError(ValidationError):
    code = "not_found"


class ItemNotFoundError(RecordNotFoundError):
    code = "item_not_found"


class CountSessionNotFoundError(RecordNotFoundError):
    code = "count_session_not_found"


class InsufficientBalanceError(LedgerError):
    code = "insufficient_balance"

    def __init__(self, message: str, *, available: int = 0, requested: int = 0, **kwargs):
        super().__init__(message, **kwargs)
        self.available = available
        self.requested = requested

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload.update({"available": self.available, "requested": self.requested})
        return payload


class DuplicateReferenceError(LedgerError):
    code = "duplicate_reference"


class LockTimeoutError(LedgerError):
    code = "lock_timeout"


class InvariantViolation(LedgerError):
    """The ledger replayed to a negative balance; operations on the item stop."""

    code = "invariant_violation"
    recoverable = False


class ItemHaltedError(InvariantViolation):
    code = "item_halted"


class ImmutableRecordError(InvariantViolation):
    """Raised when something tries to rewrite or delete ledger history."""

    code = "immutable_record"

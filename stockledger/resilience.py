"""Global DB rollback and JSON error handlers for ledger rejections."""

import logging

from sqlalchemy.exc import DBAPIError, OperationalError

from .errors import (
    DuplicateReferenceError,
    InsufficientBalanceError,
    InvariantViolation,
    LedgerError,
    LockTimeoutError,
    RecordNotFoundError,
    ValidationError,
)
from .extensions import db
from .utils.api_responses import APIResponse

logger = logging.getLogger(__name__)

# Most specific first; the first isinstance match wins.
STATUS_BY_ERROR = (
    (RecordNotFoundError, 404),
    (ValidationError, 422),
    (InsufficientBalanceError, 409),
    (DuplicateReferenceError, 409),
    (LockTimeoutError, 503),
    (InvariantViolation, 423),
)


def status_for(error: LedgerError) -> int:
    for error_type, status in STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status
    return 400


def ledger_error_response(error: LedgerError):
    return APIResponse.error(
        message=error.message,
        errors=error.to_dict(),
        status_code=status_for(error),
    )


def install_resilience_handlers(app):
    """Install global DB rollback and ledger error handlers."""

    @app.teardown_request
    def _rollback_on_error(exc):
        if exc is not None:
            db.session.rollback()

    @app.errorhandler(LedgerError)
    def _ledger_error_handler(err: LedgerError):
        if err.recoverable:
            logger.info("Request rejected (%s): %s", err.code, err.message)
        else:
            logger.error("Request refused by ledger invariant (%s): %s", err.code, err.message)
        return ledger_error_response(err)

    @app.errorhandler(OperationalError)
    @app.errorhandler(DBAPIError)
    def _db_error_handler(e):
        logger.error("Database unavailable: %s", e)
        db.session.rollback()
        return APIResponse.error(
            message="Service temporarily unavailable. Please try again shortly.",
            status_code=503,
        )

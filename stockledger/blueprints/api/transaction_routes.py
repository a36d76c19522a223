import logging

from flask import Blueprint

from ...errors import ValidationError
from ...resilience import status_for
from ...services.issuance_service import StockIssuanceService
from ...services.ledger import TransactionResult, post_transaction
from ...utils.api_responses import APIResponse
from ._request import current_actor

logger = logging.getLogger(__name__)

transaction_api_bp = Blueprint('transaction_api', __name__)


def _result_response(result: TransactionResult, success_message: str):
    if result.success:
        return APIResponse.success(result.to_dict(), message=success_message, status_code=201)
    return APIResponse.error(
        message=result.rejection_reason,
        errors=result.to_dict(),
        status_code=status_for(result.error),
    )


@transaction_api_bp.route('/transactions', methods=['POST'])
def create_transaction():
    """Post a receiving report or issuance slip; all lines or none"""
    data = APIResponse.handle_request_content()
    lines = data.get('lines')
    if lines is not None and not isinstance(lines, list):
        raise ValidationError("'lines' must be a list of movement lines.")

    result = post_transaction(
        lines or [],
        data.get('reference'),
        data.get('effective_date'),
        current_actor(data),
        custodian=data.get('custodian'),
        department=data.get('department'),
        purpose=data.get('purpose'),
        notes=data.get('notes'),
    )
    return _result_response(result, f"{len(result.movement_ids)} line(s) posted under {result.reference}")


@transaction_api_bp.route('/requests/fulfil', methods=['POST'])
def fulfil_request():
    """Issue the lines of an approved department request"""
    data = APIResponse.handle_request_content()
    service = StockIssuanceService(actor=current_actor(data))
    result = service.fulfil_department_request(data)
    return _result_response(result, f"Request {result.reference} fulfilled")

from flask import Blueprint

from ...services.ledger import (
    finalize_count_session,
    get_count_session,
    reconcile,
    record_counts,
    start_count_session,
)
from ...utils.api_responses import APIResponse
from ._request import current_actor

reconciliation_api_bp = Blueprint('reconciliation_api', __name__)


@reconciliation_api_bp.route('/items/<int:item_id>/reconcile', methods=['POST'])
def reconcile_item(item_id):
    """Settle one item against a physical count"""
    data = APIResponse.handle_request_content()
    record = reconcile(
        item_id,
        data.get('counted_quantity'),
        data.get('as_of'),
        current_actor(data),
        reference=data.get('reference'),
        notes=data.get('notes'),
    )
    return APIResponse.success(record.to_dict(), message='Item reconciled', status_code=201)


@reconciliation_api_bp.route('/count-sessions', methods=['POST'])
def create_count_session():
    data = APIResponse.handle_request_content()
    session = start_count_session(
        data.get('counted_by') or current_actor(data),
        data.get('count_date'),
        location=data.get('location'),
        notes=data.get('notes'),
    )
    return APIResponse.success(session.to_dict(), message='Count session started', status_code=201)


@reconciliation_api_bp.route('/count-sessions/<int:session_id>', methods=['GET'])
def show_count_session(session_id):
    return APIResponse.success(get_count_session(session_id).to_dict())


@reconciliation_api_bp.route('/count-sessions/<int:session_id>/lines', methods=['POST'])
def add_count_lines(session_id):
    """Record one count, or several under a 'lines' list"""
    data = APIResponse.handle_request_content()
    entries = data.get('lines') if 'lines' in data else [data]
    record_counts(session_id, entries)
    return APIResponse.success(get_count_session(session_id).to_dict(), message='Counts recorded')


@reconciliation_api_bp.route('/count-sessions/<int:session_id>/finalize', methods=['POST'])
def finalize_session(session_id):
    data = APIResponse.handle_request_content()
    session = finalize_count_session(session_id, current_actor(data))
    return APIResponse.success(session.to_dict(), message='Count session completed')

import logging

from flask import Blueprint, request

from ...services import item_registry
from ...services.ledger import get_balance, list_movements
from ...services.stock_card import build_stock_card
from ...utils.api_responses import APIResponse
from ._request import bool_arg, current_actor, date_arg

logger = logging.getLogger(__name__)

item_api_bp = Blueprint('item_api', __name__)


@item_api_bp.route('/items', methods=['POST'])
def create_item():
    """Register a supply item with a zero balance"""
    data = APIResponse.handle_request_content()
    item_id = item_registry.register_item(
        code=data.get('code'),
        name=data.get('name'),
        unit=data.get('unit') or 'piece',
        unit_cost=data.get('unit_cost', 0),
        reorder_level=data.get('reorder_level', 0),
        category=data.get('category'),
        location=data.get('location'),
        created_by=current_actor(data),
    )
    item = item_registry.get_item(item_id)
    return APIResponse.success(item.to_dict(), message='Item registered', status_code=201)


@item_api_bp.route('/items', methods=['GET'])
def list_items():
    items = item_registry.search_items(
        request.args.get('q'),
        category=request.args.get('category'),
        status=request.args.get('status'),
        include_inactive=bool_arg('include_inactive'),
    )
    return APIResponse.success([item.to_dict() for item in items])


@item_api_bp.route('/items/<int:item_id>', methods=['GET'])
def get_item(item_id):
    return APIResponse.success(item_registry.get_item(item_id).to_dict())


@item_api_bp.route('/items/<int:item_id>', methods=['PATCH'])
def update_item(item_id):
    """Edit descriptive attributes; quantities are refused"""
    data = dict(APIResponse.handle_request_content())
    actor = current_actor(data)
    data.pop('actor', None)
    item = item_registry.update_item_details(item_id, data, updated_by=actor)
    return APIResponse.success(item.to_dict(), message='Item updated')


@item_api_bp.route('/items/<int:item_id>/deactivate', methods=['POST'])
def deactivate_item(item_id):
    item = item_registry.deactivate_item(item_id)
    return APIResponse.success(item.to_dict(), message='Item deactivated')


@item_api_bp.route('/items/<int:item_id>/reactivate', methods=['POST'])
def reactivate_item(item_id):
    item = item_registry.reactivate_item(item_id)
    return APIResponse.success(item.to_dict(), message='Item reactivated')


@item_api_bp.route('/items/<int:item_id>/balance', methods=['GET'])
def item_balance(item_id):
    as_of = date_arg('as_of')
    balance = get_balance(item_id, as_of)
    return APIResponse.success({
        'item_id': item_id,
        'as_of': as_of.isoformat() if as_of else None,
        'balance': balance,
    })


@item_api_bp.route('/items/<int:item_id>/movements', methods=['GET'])
def item_movements(item_id):
    """Ledger entries for one item, oldest first; from/to are inclusive"""
    item = item_registry.get_item(item_id)
    movements = list_movements(item.id, date_arg('from'), date_arg('to'))
    return APIResponse.success([movement.to_dict() for movement in movements])


@item_api_bp.route('/items/<int:item_id>/stock-card', methods=['GET'])
def item_stock_card(item_id):
    card = build_stock_card(item_id, date_arg('from'), date_arg('to'))
    return APIResponse.success(card.to_dict())

from flask import Blueprint

api_bp = Blueprint('api', __name__, url_prefix='/api')

# Register sub-blueprints
from .item_routes import item_api_bp  # noqa: E402
from .transaction_routes import transaction_api_bp  # noqa: E402
from .reconciliation_routes import reconciliation_api_bp  # noqa: E402

api_bp.register_blueprint(item_api_bp)
api_bp.register_blueprint(transaction_api_bp)
api_bp.register_blueprint(reconciliation_api_bp)

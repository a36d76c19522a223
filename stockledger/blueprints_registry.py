import logging
from importlib import import_module

logger = logging.getLogger(__name__)

# (import path, url prefix override, description)
BLUEPRINTS = (
    ('stockledger.blueprints.api.api_bp', None, 'Ledger API'),
)


def register_blueprints(app):
    """Register all blueprints with the Flask app."""
    registered = []
    for import_path, url_prefix, description in BLUEPRINTS:
        module_path, bp_name = import_path.rsplit('.', 1)
        blueprint = getattr(import_module(module_path), bp_name)
        if url_prefix:
            app.register_blueprint(blueprint, url_prefix=url_prefix)
        else:
            app.register_blueprint(blueprint)
        registered.append(description)

    logger.info("Registered blueprints: %s", ", ".join(registered))

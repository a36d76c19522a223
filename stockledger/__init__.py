import logging
import os
from typing import Any

from flask import Flask
from sqlalchemy.pool import StaticPool

from .blueprints_registry import register_blueprints
from .config import ENV_DIAGNOSTICS
from .extensions import db, migrate
from .logging_config import configure_logging

logger = logging.getLogger(__name__)


def create_app(config: dict[str, Any] | None = None) -> Flask:
    app = Flask(__name__)
    os.makedirs(app.instance_path, exist_ok=True)

    _load_base_config(app, config)
    _configure_sqlite_engine_options(app)

    db.init_app(app)
    migrate.init_app(app, db)

    register_blueprints(app)
    from . import models  # noqa: F401  # ensure models registered for Alembic

    configure_logging(app)

    from .resilience import install_resilience_handlers

    install_resilience_handlers(app)

    from .management import register_commands

    register_commands(app)
    _run_optional_create_all(app)

    return app


def _load_base_config(app: Flask, config: dict[str, Any] | None) -> None:
    app.config.from_object("stockledger.config.Config")
    if config:
        app.config.update(config)
    app.config["ENV_DIAGNOSTICS"] = ENV_DIAGNOSTICS
    for warning in ENV_DIAGNOSTICS.get("warnings", ()):
        logger.warning("Environment configuration warning: %s", warning)

    if config and "DATABASE_URL" in config:
        app.config["SQLALCHEMY_DATABASE_URI"] = config["DATABASE_URL"]

    if not app.config.get("SQLALCHEMY_DATABASE_URI"):
        raise RuntimeError("DATABASE_URL must be set outside development and testing.")


def _configure_sqlite_engine_options(app):
    """Configure SQLite engine options for testing/memory databases"""
    uri = app.config.get("SQLALCHEMY_DATABASE_URI", "")
    if uri.startswith("sqlite"):
        opts = dict(app.config.get("SQLALCHEMY_ENGINE_OPTIONS", {}))
        # Remove pool args that SQLite doesn't accept
        opts.pop("pool_size", None)
        opts.pop("max_overflow", None)
        opts.pop("pool_timeout", None)
        opts["connect_args"] = {"check_same_thread": False}
        if uri == "sqlite:///:memory:":
            opts["poolclass"] = StaticPool
        app.config["SQLALCHEMY_ENGINE_OPTIONS"] = opts


def _run_optional_create_all(app: Flask) -> None:
    value = os.environ.get("SQLALCHEMY_CREATE_ALL")
    if value is None or value.strip().lower() not in {"1", "true", "yes", "on"}:
        logger.info("db.create_all() not enabled; Alembic migrations are the source of truth")
        return

    logger.info("Local dev: creating tables via db.create_all() (SQLALCHEMY_CREATE_ALL)")
    with app.app_context():
        db.create_all()
        logger.info("Database tables created/verified")

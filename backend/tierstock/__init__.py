# backend/tierstock/__init__.py
import logging

from flask import Flask, jsonify

from .config import Config
from .errors import TierStockError
from .extensions import db, migrate, register_adapters


def _configure_logging(app: Flask) -> None:
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    logging.getLogger("tierstock").setLevel(level)
    if not logging.getLogger().handlers:
        logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    _configure_logging(app)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # External services; tests register fakes through test_config or register_adapters
    from .adapters import NinjaVanCourier, StoreHubPos
    register_adapters(
        app,
        courier=app.config.get("COURIER_ADAPTER") or NinjaVanCourier.from_config(app.config),
        pos=app.config.get("POS_ADAPTER") or StoreHubPos.from_config(app.config),
    )

    # Register blueprints
    from .routes.system import system_bp
    from .routes.accounts import accounts_bp
    from .routes.inventory import inventory_bp
    from .routes.requests import requests_bp
    from .routes.orders import orders_bp
    from .routes.imports import imports_bp
    from .routes.rewards import rewards_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(accounts_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(requests_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(imports_bp)
    app.register_blueprint(rewards_bp)

    @app.errorhandler(TierStockError)
    def handle_domain_error(exc: TierStockError):
        return jsonify(exc.to_dict()), exc.status_code

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app

# backend/stockline/__init__.py
import logging

from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(config_object: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_object:
        app.config.update(config_object)

    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))
    logging.getLogger("stockline").setLevel(app.logger.level)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.company import company_bp
    from .routes.products import products_bp
    from .routes.locations import warehouses_bp, outlets_bp
    from .routes.shipments import shipments_bp
    from .routes.sales import sales_bp, transactions_bp
    from .routes.layaways import layaways_bp
    from .routes.reports import reports_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(company_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(warehouses_bp)
    app.register_blueprint(outlets_bp)
    app.register_blueprint(shipments_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(transactions_bp)
    app.register_blueprint(layaways_bp)
    app.register_blueprint(reports_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app

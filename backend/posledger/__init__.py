# backend/posledger/__init__.py
from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.inventory import inventory_bp
    from .routes.sales import sales_bp, sale_returns_bp
    from .routes.purchases import purchases_bp
    from .routes.suppliers import suppliers_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(sale_returns_bp)
    app.register_blueprint(purchases_bp)
    app.register_blueprint(suppliers_bp)

    from .routes.deps import release_ledger
    app.teardown_request(release_ledger)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app

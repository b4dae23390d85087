# backend/cascos/__init__.py
from flask import Flask, request
from sqlalchemy.exc import OperationalError

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
    from .routes.customers import customers_bp
    from .routes.loans import loans_bp
    from .routes.stock import stock_bp
    from .routes.archive import archive_bp
    from .routes.notifications import notifications_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(loans_bp)
    app.register_blueprint(stock_bp)
    app.register_blueprint(archive_bp)
    app.register_blueprint(notifications_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in app.config.get("CORS_ORIGINS", set()):
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    if app.config.get("SEED_STOCK_ON_STARTUP"):
        _seed_stock(app)

    return app


def _seed_stock(app: Flask) -> None:
    from .services.stock_service import seed_stock_items

    with app.app_context():
        try:
            seed_stock_items()
        except OperationalError:
            # Fresh database without tables; `flask system init` or `flask db upgrade` creates them
            db.session.rollback()
            app.logger.warning("Stock table not found; skipping stock seeding until the schema exists")

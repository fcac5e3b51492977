# backend/app/__init__.py
from flask import Flask, request

from .config import Config
from .extensions import db, migrate



def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    from .immutability import register_immutability_listeners
    register_immutability_listeners()

    # Register blueprints
    from .routes.system import system_bp
    from .routes.stock_movements import stock_movements_bp, stock_levels_bp
    from .routes.invoices import invoices_bp
    from .routes.inventory_sessions import inventory_sessions_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(stock_movements_bp)
    app.register_blueprint(stock_levels_bp)
    app.register_blueprint(invoices_bp)
    app.register_blueprint(inventory_sessions_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = app.config.get("CORS_ALLOWED_ORIGINS", ())
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "X-User-Id, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app

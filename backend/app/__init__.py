# backend/app/__init__.py
import logging

from flask import Flask, request

from .config import Config
from .extensions import db, migrate, COLLABORATORS_KEY


def _register_collaborators(app: Flask) -> None:
    """
    Install the identity, permission, notification and document collaborators.

    A config value of None selects the built-in default.
    """
    from .services.document_service import NullDocumentGenerator
    from .services.identity_service import HeaderIdentityResolver
    from .services.notification_service import DatabaseNotificationEmitter
    from .services.permission_service import RolePermissionProvider

    app.extensions[COLLABORATORS_KEY] = {
        "identity": app.config.get("IDENTITY_RESOLVER") or HeaderIdentityResolver(),
        "permissions": app.config.get("PERMISSION_PROVIDER") or RolePermissionProvider(),
        "notifications": app.config.get("NOTIFICATION_EMITTER") or DatabaseNotificationEmitter(),
        "documents": app.config.get("DOCUMENT_GENERATOR") or NullDocumentGenerator(),
    }


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(getattr(logging, str(app.config["LOG_LEVEL"]).upper(), logging.INFO))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    _register_collaborators(app)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.requests import requests_bp
    from .routes.inventory import inventory_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(requests_bp)
    app.register_blueprint(inventory_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = (
                "Content-Type, X-Actor-Id, X-Tenant-Id, X-Role, X-Requesting-Service-Id"
            )
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app

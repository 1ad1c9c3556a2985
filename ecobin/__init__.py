# ecobin/__init__.py
from __future__ import annotations

import logging

from flask import Flask, jsonify

from .settings import Config
from .extensions import db, migrate, login_manager, limiter


def create_app(config_object=Config) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config_object)

    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    # ======================
    # Initialize Extensions
    # ======================
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    limiter.init_app(app)

    # ======================
    # Import Models (CRITICAL)
    # ======================
    from . import models  # noqa: F401

    # ======================
    # Register Blueprints
    # ======================
    from .routes import main
    from .auth import auth
    from .bin_requests import bin_requests_bp
    from .deliveries import deliveries_bp
    from .pickups import pickups_bp

    app.register_blueprint(main)
    app.register_blueprint(auth)
    app.register_blueprint(bin_requests_bp)
    app.register_blueprint(deliveries_bp)
    app.register_blueprint(pickups_bp)

    # ======================
    # CLI
    # ======================
    from .commands import register_commands

    register_commands(app)

    # ======================
    # Workflow errors
    # ======================
    from .errors import WorkflowError

    @app.errorhandler(WorkflowError)
    def workflow_error(e: WorkflowError):
        db.session.rollback()
        if e.http_status >= 500:
            app.logger.error("%s: %s", e.code, e.message)
        return jsonify(e.to_dict()), e.http_status

    # ======================
    # Rate limit error handler
    # ======================
    @app.errorhandler(429)
    def ratelimit_handler(e):
        return jsonify({"success": False, "message": "Too many requests. Please try again later.",
                        "code": "rate_limited"}), 429

    # ======================
    # Forbidden handler
    # ======================
    @app.errorhandler(403)
    def forbidden(e):
        return jsonify({"success": False, "message": "You do not have access to this resource.",
                        "code": "forbidden"}), 403

    # ======================
    # Not found handler
    # ======================
    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"success": False, "message": "Not found", "code": "not_found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"success": False, "message": "Method not allowed", "code": "method_not_allowed"}), 405

    return app

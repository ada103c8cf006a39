"""
Access Service - Flask application
Checkpoint token validation, guard shifts and manual overrides.
"""

import logging
import os
from datetime import datetime, timezone

from dotenv import load_dotenv
from flask import Flask, jsonify
from flasgger import Swagger
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from access_service.errors import AccessError, StoreUnavailable, handle_access_error
from access_service.extensions import db, jwt
from access_service.models import Record  # noqa: F401  (registers the table)
from access_service.services import build_core

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def env_flag(name, default):
    return os.environ.get(name, default).lower() in ("1", "true", "yes")


def database_uri():
    if os.environ.get("DATABASE_URL"):
        return os.environ["DATABASE_URL"]
    db_user = os.environ.get("DB_USER", "access_svc_user")
    db_pass = os.environ.get("DB_PASS", "password")
    db_host = os.environ.get("DB_HOST", "access-db")
    db_name = os.environ.get("DB_NAME", "access_db")
    return f"postgresql://{db_user}:{db_pass}@{db_host}/{db_name}"


def register_error_handlers(app):
    app.register_error_handler(AccessError, handle_access_error)

    @app.errorhandler(SQLAlchemyError)
    def handle_store_error(error):
        db.session.rollback()
        logger.exception("Unhandled store error")
        return handle_access_error(StoreUnavailable("Record store unavailable"))

    # Guard-claim failures share the service's error shape
    @jwt.unauthorized_loader
    def missing_claim(reason):
        return jsonify({"success": False, "error_code": "UNAUTHORIZED", "message": reason}), 401

    @jwt.invalid_token_loader
    def invalid_claim(reason):
        return jsonify({"success": False, "error_code": "UNAUTHORIZED", "message": reason}), 401

    @jwt.expired_token_loader
    def expired_claim(jwt_header, jwt_payload):
        return jsonify({"success": False, "error_code": "UNAUTHORIZED", "message": "Guard claim expired"}), 401


def create_app(test_config=None):
    load_dotenv()
    app = Flask(__name__)

    # Configuration
    app.config.from_mapping(
        SQLALCHEMY_DATABASE_URI=database_uri(),
        SQLALCHEMY_TRACK_MODIFICATIONS=False,
        JWT_SECRET_KEY=os.environ.get("JWT_SECRET", "dev-secret-change-me"),
        GUARD_CLAIM_TTL_HOURS=float(os.environ.get("GUARD_CLAIM_TTL_HOURS", "8")),
        TOKEN_POLICY=os.environ.get("TOKEN_POLICY", "single_use"),
        DEFAULT_SESSION_ID=os.environ.get("DEFAULT_SESSION_ID", "default"),
        HISTORY_DEFAULT_LIMIT=int(os.environ.get("HISTORY_DEFAULT_LIMIT", "50")),
        HISTORY_MAX_LIMIT=int(os.environ.get("HISTORY_MAX_LIMIT", "500")),
        STORE_MAX_RETRIES=int(os.environ.get("STORE_MAX_RETRIES", "25")),
        ADMIN_SECRET=os.environ.get("ADMIN_SECRET"),
        AUTO_CREATE_TABLES=env_flag("AUTO_CREATE_TABLES", "true"),
        LOG_LEVEL=os.environ.get("LOG_LEVEL", "INFO"),
    )
    if test_config:
        app.config.update(test_config)

    logging.basicConfig(level=app.config["LOG_LEVEL"], format=LOG_FORMAT)

    # Initialize Extensions
    db.init_app(app)
    jwt.init_app(app)
    app.extensions["access"] = build_core(db, app.config)
    register_error_handlers(app)

    Swagger(app, template={
        "info": {"title": "Access Service", "version": "1.0.0"},
        "securityDefinitions": {
            "Bearer": {"type": "apiKey", "name": "Authorization", "in": "header"},
        },
    })

    # Register Blueprints
    from access_service.routes.validation import validation_bp
    app.register_blueprint(validation_bp)

    from access_service.routes.auth import auth_bp
    app.register_blueprint(auth_bp, url_prefix="/api/auth")

    from access_service.routes.shifts import shifts_bp
    app.register_blueprint(shifts_bp, url_prefix="/shifts")

    from access_service.routes.overrides import overrides_bp
    app.register_blueprint(overrides_bp)

    from access_service.routes.admin import admin_bp
    app.register_blueprint(admin_bp)

    @app.route("/health")
    def health():
        try:
            db.session.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            db.session.rollback()
            return jsonify({"service": "access-service", "status": "unhealthy", "error": str(e)}), 503
        return jsonify({
            "service": "access-service",
            "status": "healthy",
            "token_policy": app.config["TOKEN_POLICY"],
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }), 200

    if app.config["AUTO_CREATE_TABLES"]:
        with app.app_context():
            db.create_all()

    return app


def main():
    app = create_app()
    try:
        app.run(host="0.0.0.0", port=int(os.environ.get("PORT", "5004")), threaded=True)
    finally:
        with app.app_context():
            db.engine.dispose()


if __name__ == "__main__":
    main()

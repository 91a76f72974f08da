import logging
import os

from flask import Flask, current_app, jsonify, request
from flask_caching import Cache
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from config import config

logger = logging.getLogger(__name__)

db = SQLAlchemy()
cache = Cache()


def get_real_ip():
    """
    Client IP for rate limiting. Cron callers usually sit behind a proxy,
    so the leftmost X-Forwarded-For entry wins, then X-Real-IP.
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.headers.get("X-Real-IP") or get_remote_address()


limiter = Limiter(
    key_func=get_real_ip,
    default_limits=["10000 per day", "1000 per hour"],
)

# Status code -> message for JSON error responses
ERROR_MESSAGES = {
    400: "Bad request",
    401: "Unauthorized",
    404: "Resource not found",
    405: "Method not allowed",
    429: "Too many requests",
    500: "Internal server error",
}


def create_app(config_name=None):
    app = Flask(__name__)

    config_name = config_name or os.environ.get("FLASK_CONFIG", "default")
    app.config.from_object(config[config_name]())

    db.init_app(app)
    cache.init_app(app)
    limiter.init_app(app)

    # Run statistics belong to this app instance, not to the module
    from app.services.run_stats import RunStats

    app.extensions["run_stats"] = RunStats()

    from app.routes.api import bp as api_bp
    from app.routes.cron import bp as cron_bp

    app.register_blueprint(cron_bp, url_prefix="/api/cron")
    app.register_blueprint(api_bp, url_prefix="/api")

    register_error_handlers(app)

    from app.utils.logging_config import setup_logging

    setup_logging(app)
    show_config_warnings(app, config_name)

    with app.app_context():
        db.create_all()

    if not app.config.get("TESTING", False):
        from app.services.scheduler_service import scheduler_service

        scheduler_service.init_app(app)

    return app


def get_run_stats():
    """Return the RunStats instance owned by the current app"""
    return current_app.extensions["run_stats"]


def describe_database(uri):
    """Database URI with the password masked, for log output"""
    try:
        return make_url(uri).render_as_string(hide_password=True)
    except ArgumentError:
        return "unparseable database URI"


def show_config_warnings(app, config_name):
    """Log configuration warnings and status"""
    logger.info(f"PL Predictor starting with '{config_name}' configuration")
    logger.info(
        f"Using database {describe_database(app.config.get('SQLALCHEMY_DATABASE_URI', ''))}"
    )

    if config_name == "production" and app.config.get("DEBUG"):
        logger.warning("DEBUG mode is enabled in production!")

    if not app.config.get("FOOTBALL_DATA_API_KEY"):
        logger.warning(
            "FOOTBALL_DATA_API_KEY is not set - match sync will report configuration errors"
        )

    if not app.config.get("CRON_SECRET"):
        logger.warning("CRON_SECRET is not set - trigger endpoints accept any caller")


def register_error_handlers(app):
    """JSON error responses plus security headers on every response"""

    @app.after_request
    def add_security_headers(response):
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        if not app.config.get("DEBUG"):
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response

    def make_handler(status_code, message):
        def handle(error):
            if status_code >= 500:
                db.session.rollback()
                logger.error(f"{status_code} on {request.method} {request.path}: {error}")
            elif status_code != 404:
                logger.warning(
                    f"{status_code} on {request.method} {request.path}: {error}"
                )
            return jsonify({"success": False, "error": message}), status_code

        return handle

    for status_code, message in ERROR_MESSAGES.items():
        app.register_error_handler(status_code, make_handler(status_code, message))


from app import models  # noqa: F401, E402 - imported for model registration

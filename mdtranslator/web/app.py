"""Flask application configuration and blueprint registration."""

from __future__ import annotations

from flask import Flask, jsonify

from mdtranslator.exceptions import PersistenceError, TranslationError
from mdtranslator.logger import get_logger

from .routes.translation import translation_bp
from .routes.settings import settings_bp

logger = get_logger(__name__)


def build_app() -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)

    # Ensure JSON responses keep Unicode data.
    app.json.ensure_ascii = False

    register_blueprints(app)
    register_default_routes(app)
    register_error_handlers(app)

    return app


def register_blueprints(app: Flask) -> None:
    """Register Flask blueprints."""
    app.register_blueprint(translation_bp, url_prefix="/api")
    app.register_blueprint(settings_bp, url_prefix="/api/settings")


def register_default_routes(app: Flask) -> None:
    """Register default health route."""

    @app.get("/health")
    def health_check():
        logger.debug("Health check requested")
        return jsonify({"status": "ok"})


def register_error_handlers(app: Flask) -> None:
    """Return JSON for errors that escape the route handlers."""

    @app.errorhandler(404)
    def page_not_found(e):
        return jsonify({"error": "Not found", "code": "not_found"}), 404

    @app.errorhandler(PersistenceError)
    def persistence_failed(e):
        logger.error("Storage failure: %s", e)
        return jsonify({"error": str(e), "code": e.code}), 503

    @app.errorhandler(TranslationError)
    def translation_error(e):
        logger.warning("Translation error: %s", e)
        return jsonify({"error": str(e), "code": e.code or "translation_error"}), 400

    @app.errorhandler(500)
    def internal_error(e):
        logger.exception("Internal server error: %s", e)
        return jsonify({"error": "Internal server error", "code": "internal_error"}), 500

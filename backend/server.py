"""
Flask application entry point for the rxflow backend.

Registers the session and subscription API blueprints.
"""

import logging

from flask import Flask

from rxflow.api.subscriptions import bp as subscriptions_bp
from rxflow.config import config
from rxflow.db.postgres import close_db_session
from rxflow.db.store import set_document_store
from rxflow.routes.auth import bp as auth_bp
from rxflow.services.dashboard import reset_dashboard_feed

logger = logging.getLogger("rxflow")


def configure_logging(level: str = None):
    """Set up root logging from LOG_LEVEL."""
    logging.basicConfig(
        level=(level or config.LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_app(init_database: bool = False, store=None):
    """Create and configure Flask app.

    Passing `store` replaces the configured subscription store.
    """
    app = Flask(__name__)

    # Load config
    app.config["SECRET_KEY"] = config.SECRET_KEY
    app.config["DEBUG"] = config.DEBUG

    if store is not None:
        set_document_store(store)
        reset_dashboard_feed()

    # Enable CORS for the dashboard client
    @app.after_request
    def after_request(response):
        response.headers.add("Access-Control-Allow-Origin", "*")
        response.headers.add("Access-Control-Allow-Headers", "Content-Type,Authorization,If-Match")
        response.headers.add("Access-Control-Allow-Methods", "GET,PUT,POST,DELETE,OPTIONS")
        return response

    # Clean up database session at the end of each request
    @app.teardown_appcontext
    def shutdown_session(exception=None):
        close_db_session(exception)

    # Register blueprints
    app.register_blueprint(auth_bp)           # /api/v1/auth/*
    app.register_blueprint(subscriptions_bp)  # /api/v1/subscriptions/*

    # Health check endpoint
    @app.route("/health")
    def health():
        return {
            "status": "ok",
            "store_backend": config.STORE_BACKEND,
            "firestore_enabled": config.ENABLE_FIRESTORE,
        }

    # Initialize database tables if requested (development only)
    if init_database:
        with app.app_context():
            from rxflow.db.postgres import init_db
            init_db()
            logger.info("Database tables initialized")

    return app


if __name__ == "__main__":
    configure_logging()
    app = create_app(init_database=config.STORE_BACKEND == "sql")
    logger.info("Starting server on port %s", config.PORT)
    logger.info("Store backend: %s", config.STORE_BACKEND)
    logger.info("Debug mode: %s", config.DEBUG)
    logger.info("Routes:")
    logger.info("  - /api/v1/auth/* (Anonymous sessions)")
    logger.info("  - /api/v1/subscriptions/* (Subscriptions, fulfillments, log)")
    logger.info("  - /health (Health check)")
    app.run(debug=config.DEBUG, port=config.PORT)

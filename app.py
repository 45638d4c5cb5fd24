import logging
import os
import sys

from dotenv import load_dotenv
from flask import Flask, jsonify, request
from flask_wtf.csrf import CSRFError, CSRFProtect

from utils.db_conn import DatabaseConnection

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

csrf = CSRFProtect()


def create_app(test_config=None) -> Flask:
    """Build the exam score service.

    test_config overrides the environment-derived settings; tests pass an
    in-memory SQLite SQLALCHEMY_DATABASE_URI here.
    """
    load_dotenv()
    app = Flask(__name__)
    app.config["SECRET_KEY"] = os.getenv(
        "SECRET_KEY", "dev-secret-key-change-in-production"
    )
    # JSON clients read the token from /api/exam-score/csrf-token and send it back as a header
    app.config["WTF_CSRF_TIME_LIMIT"] = None
    if test_config:
        app.config.update(test_config)

    DatabaseConnection(app)
    csrf.init_app(app)

    from blueprints.template_routes import template_bp
    from blueprints.score_routes import score_bp

    app.register_blueprint(template_bp)
    app.register_blueprint(score_bp)

    @app.errorhandler(CSRFError)
    def handle_csrf_error(e):
        logger.warning(f"CSRF check failed for {request.method} {request.path}: {e.description}")
        return jsonify({"error": "csrf_failed", "message": e.description}), 400

    # API: GET "/welcome"
    # Used by: health checks and the store client's connectivity test
    @app.route("/welcome", methods=["GET"])
    def welcome():
        logger.info(f"Request received: {request.method} {request.path}")
        return jsonify({"message": "Exam score template service is running"})

    return app


def run_startup_checks_or_exit(app: Flask):
    """Check the database and create missing tables, exiting the process on failure."""
    from utils.db_conn import init_database_with_app

    logger.info("Running startup checks...")
    if init_database_with_app(app):
        logger.info("All systems green. Starting server...")
        return
    logger.error("Startup checks failed. Aborting launch.")
    sys.exit(1)


if __name__ == "__main__":
    application = create_app()
    run_startup_checks_or_exit(application)
    application.run(
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "5000")),
        debug=os.getenv("FLASK_DEBUG", "false").lower() == "true",
    )

import os
import logging
import time
from typing import Optional
from flask import Flask
from dotenv import load_dotenv

from models import db

# Configure logging for database operations
logger = logging.getLogger(__name__)


def build_database_uri() -> str:
    """Assemble the SQLAlchemy URI from ENVIRONMENT and the matching *_DB_* variables."""
    explicit = os.getenv("DATABASE_URL")
    if explicit:
        return explicit

    environment = os.getenv("ENVIRONMENT", "local").lower()
    logger.info(f"Database environment: {environment}")

    if environment == "local":
        db_host = os.getenv("LOCAL_DB_HOST", "localhost")
        db_port = os.getenv("LOCAL_DB_PORT", "3306")
        db_user = os.getenv("LOCAL_DB_USER", "root")
        db_password = os.getenv("LOCAL_DB_PASSWORD", "")
        db_name = os.getenv("LOCAL_DB_NAME", "school_exam_scores")
    elif environment == "production" or environment == "online":
        db_host = os.getenv("ONLINE_DB_HOST")
        db_port = os.getenv("ONLINE_DB_PORT", "3306")
        db_user = os.getenv("ONLINE_DB_USER")
        db_password = os.getenv("ONLINE_DB_PASSWORD")
        db_name = os.getenv("ONLINE_DB_NAME")
    else:
        raise ValueError(
            f"Invalid ENVIRONMENT value: {environment}. Must be 'local' or 'production'/'online'"
        )

    return f"mysql+pymysql://{db_user}:{db_password}@{db_host}:{db_port}/{db_name}"


class DatabaseConnection:
    """Handles database configuration, initialization, and management."""

    def __init__(self, app: Optional[Flask] = None):
        self.app = app
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask):
        """Configure SQLAlchemy on the Flask app.

        An SQLALCHEMY_DATABASE_URI already present in app.config wins over the
        environment, which is how tests point the app at SQLite.
        """
        self.app = app
        load_dotenv()
        logger.info("Environment variables loaded from .env file")

        db_uri = app.config.get("SQLALCHEMY_DATABASE_URI") or build_database_uri()
        app.config["SQLALCHEMY_DATABASE_URI"] = db_uri
        app.config.setdefault("SQLALCHEMY_TRACK_MODIFICATIONS", False)

        if db_uri.startswith("mysql"):
            # Connection pool settings to handle connection timeouts
            app.config.setdefault(
                "SQLALCHEMY_ENGINE_OPTIONS",
                {
                    "pool_size": 10,
                    "max_overflow": 20,
                    "pool_recycle": 3600,
                    "pool_pre_ping": True,
                    "pool_timeout": 30,
                    "connect_args": {
                        "connect_timeout": 10,
                        "read_timeout": 10,
                        "write_timeout": 10,
                    },
                },
            )

        password = db_uri.split(":", 2)[-1].split("@", 1)[0] if "@" in db_uri else ""
        logger.info(
            f"Database URI configured: {db_uri.replace(password, '***') if password else db_uri}"
        )

        if "sqlalchemy" not in app.extensions:
            db.init_app(app)
            logger.info("Database initialized with Flask app")
        else:
            logger.info(
                "Database already initialized with Flask app - skipping re-initialization"
            )

    def test_connection(self, max_retries: int = 3) -> bool:
        """Test database connection with retry mechanism."""
        if self.app is None:
            logger.error("Database connection not initialized with Flask app")
            return False

        retry_delay = 1
        for attempt in range(max_retries):
            try:
                logger.info(
                    f"Testing database connection... (attempt {attempt + 1}/{max_retries})"
                )
                with self.app.app_context():
                    with db.engine.connect() as connection:
                        connection.execute(db.text("SELECT 1"))
                logger.info("Database connection successful")
                return True
            except Exception as e:
                logger.warning(
                    f"Database connection failed (attempt {attempt + 1}): {str(e)}"
                )
                if attempt < max_retries - 1:
                    time.sleep(retry_delay)
                    retry_delay *= 2  # Exponential backoff
                else:
                    logger.error(
                        f"Database connection failed after {max_retries} attempts: {str(e)}"
                    )
        return False

    def create_tables(self) -> bool:
        """Create all database tables."""
        if self.app is None:
            logger.error("Database connection not initialized with Flask app")
            return False
        try:
            logger.info("Creating database tables...")
            with self.app.app_context():
                db.create_all()
            logger.info("Database tables created successfully")
            return True
        except Exception as e:
            logger.error(f"Database table creation failed: {str(e)}")
            return False

    def init_database(self) -> bool:
        """Check connectivity, then create tables if they don't exist."""
        logger.info("Starting database initialization...")

        if not self.test_connection():
            return False

        return self.create_tables()


# Global database connection instance
db_conn = DatabaseConnection()


def init_database_with_app(app: Flask) -> bool:
    """Initialize database with Flask app and return success status."""
    global db_conn
    db_conn = DatabaseConnection(app)
    return db_conn.init_database()

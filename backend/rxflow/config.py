"""
Application configuration loaded from environment variables.

Supports switching the subscription store between an in-process memory
store, PostgreSQL (or sqlite) via SQLAlchemy, and Firestore.
DATABASE_MODE selects local or cloud settings for both databases.
"""

import logging
import os
from pathlib import Path
from dotenv import load_dotenv

# Load .env file from backend directory
backend_dir = Path(__file__).parent.parent
load_dotenv(backend_dir / ".env")

logger = logging.getLogger(__name__)


class Config:
    """Application configuration."""

    # Flask settings
    DEBUG = os.getenv("FLASK_DEBUG", "0") == "1"
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")
    PORT = int(os.getenv("PORT", "5001"))
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Subscription store: "memory", "sql" or "firestore"
    STORE_BACKEND = os.getenv("STORE_BACKEND", "memory")
    SUBSCRIPTIONS_COLLECTION = os.getenv("SUBSCRIPTIONS_COLLECTION", "subscriptions")

    # Environment mode: "local" or "cloud"
    # Controls both PostgreSQL and Firestore database selection
    DATABASE_MODE = os.getenv("DATABASE_MODE", "local")

    # Full SQLAlchemy URL; wins over the POSTGRES_* settings when set
    DATABASE_URL = os.getenv("DATABASE_URL", "")

    # PostgreSQL - Local
    POSTGRES_HOST_LOCAL = os.getenv("POSTGRES_HOST_LOCAL", "localhost")
    POSTGRES_PORT_LOCAL = os.getenv("POSTGRES_PORT_LOCAL", "5432")
    POSTGRES_DB_LOCAL = os.getenv("POSTGRES_DB_LOCAL", "rxflow")
    POSTGRES_USER_LOCAL = os.getenv("POSTGRES_USER_LOCAL", "postgres")
    POSTGRES_PASSWORD_LOCAL = os.getenv("POSTGRES_PASSWORD_LOCAL", "")

    # PostgreSQL - Cloud (GCP Cloud SQL)
    POSTGRES_HOST_CLOUD = os.getenv("POSTGRES_HOST_CLOUD", "")
    POSTGRES_PORT_CLOUD = os.getenv("POSTGRES_PORT_CLOUD", "5432")
    POSTGRES_DB_CLOUD = os.getenv("POSTGRES_DB_CLOUD", "rxflow")
    POSTGRES_USER_CLOUD = os.getenv("POSTGRES_USER_CLOUD", "postgres")
    POSTGRES_PASSWORD_CLOUD = os.getenv("POSTGRES_PASSWORD_CLOUD", "")

    # Firestore / GCP
    GCP_CREDENTIALS_PATH = os.getenv("GCP_CREDENTIALS_PATH", "./gcp-credentials.json")
    GCP_PROJECT_ID = os.getenv("GCP_PROJECT_ID", "")
    FIRESTORE_DATABASE_LOCAL = os.getenv("FIRESTORE_DATABASE_LOCAL", "rxflow-dev")
    FIRESTORE_DATABASE_CLOUD = os.getenv("FIRESTORE_DATABASE_CLOUD", "(default)")
    ENABLE_FIRESTORE = os.getenv("ENABLE_FIRESTORE", "false").lower() == "true"

    # Anonymous session tokens
    JWT_SECRET = os.getenv("JWT_SECRET", "rxflow-secret-key-change-in-production")
    ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "720"))

    @classmethod
    def get_database_url(cls) -> str:
        """Build the SQLAlchemy URL, honoring DATABASE_URL, else DATABASE_MODE."""
        if cls.DATABASE_URL:
            return cls.DATABASE_URL

        if cls.DATABASE_MODE == "cloud":
            host = cls.POSTGRES_HOST_CLOUD
            port = cls.POSTGRES_PORT_CLOUD
            db = cls.POSTGRES_DB_CLOUD
            user = cls.POSTGRES_USER_CLOUD
            password = cls.POSTGRES_PASSWORD_CLOUD
            mode_label = "CLOUD"
        else:
            host = cls.POSTGRES_HOST_LOCAL
            port = cls.POSTGRES_PORT_LOCAL
            db = cls.POSTGRES_DB_LOCAL
            user = cls.POSTGRES_USER_LOCAL
            password = cls.POSTGRES_PASSWORD_LOCAL
            mode_label = "LOCAL"

        if password:
            url = f"postgresql://{user}:{password}@{host}:{port}/{db}"
        else:
            url = f"postgresql://{user}@{host}:{port}/{db}"

        logger.info("PostgreSQL: %s (%s)", mode_label, host)
        return url

    @classmethod
    def get_firestore_database(cls) -> str:
        """Get Firestore database ID based on DATABASE_MODE."""
        if cls.DATABASE_MODE == "cloud":
            db = cls.FIRESTORE_DATABASE_CLOUD
            mode_label = "CLOUD"
        else:
            db = cls.FIRESTORE_DATABASE_LOCAL
            mode_label = "LOCAL"

        logger.info("Firestore: %s (%s)", mode_label, db)
        return db


# Singleton instance
config = Config()

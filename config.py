"""Configuration module for the LiveStage Flask application."""
import os
import tempfile
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Base configuration class."""

    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('FLASK_DEBUG', '1') == '1'
    ENV = os.getenv('FLASK_ENV', 'development')

    SESSION_COOKIE_SECURE = os.getenv('SESSION_COOKIE_SECURE', 'false').lower() == 'true'
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = os.getenv('SESSION_COOKIE_SAMESITE', 'Lax')

    # Database - Support multiple environment variable naming conventions
    # Priority: DATABASE_URL > DB_* > POSTGRES_*
    DATABASE_URL = os.getenv('DATABASE_URL')

    if not DATABASE_URL:
        DB_HOST = os.getenv('DB_HOST') or os.getenv('POSTGRES_HOST', 'localhost')
        DB_PORT = os.getenv('DB_PORT') or os.getenv('POSTGRES_PORT', '5432')
        DB_NAME = os.getenv('DB_NAME') or os.getenv('POSTGRES_DB', 'livestage')
        DB_USER = os.getenv('DB_USER') or os.getenv('POSTGRES_USER', 'livestage')
        DB_PASSWORD = os.getenv('DB_PASSWORD') or os.getenv('POSTGRES_PASSWORD', 'livestage')

        DATABASE_URL = (
            f"postgresql+psycopg://{DB_USER}:{DB_PASSWORD}"
            f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
        )

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', 'false').lower() == 'true'

    # Redis Pub/Sub (live state fan-out)
    REDIS_URL = os.getenv('REDIS_URL', 'redis://redis:6379/0')
    PUBSUB_ENABLED = os.getenv('PUBSUB_ENABLED', 'true').lower() == 'true'
    PUBSUB_CHANNEL_PREFIX = os.getenv('PUBSUB_CHANNEL_PREFIX', 'livestage')

    # Live views
    SSE_HEARTBEAT_SECONDS = int(os.getenv('SSE_HEARTBEAT_SECONDS', '15'))
    SSE_POLL_TIMEOUT = float(os.getenv('SSE_POLL_TIMEOUT', '1.0'))

    # Public share links (90 days)
    SHARE_TOKEN_MAX_AGE = int(os.getenv('SHARE_TOKEN_MAX_AGE', str(90 * 24 * 60 * 60)))

    # Product set listing
    PRODUCT_SETS_PER_PAGE = int(os.getenv('PRODUCT_SETS_PER_PAGE', '20'))

    # Error tracking
    SENTRY_DSN = os.getenv('SENTRY_DSN')


class TestConfig(Config):
    """Configuration used by the test suite."""

    TESTING = True
    DEBUG = False
    ENV = 'testing'
    WTF_CSRF_ENABLED = False

    SQLALCHEMY_DATABASE_URI = os.getenv(
        'TEST_DATABASE_URL',
        'sqlite:///' + os.path.join(tempfile.gettempdir(), 'livestage_test.db')
    )
    SQLALCHEMY_ECHO = False

    # Tests inject a fakeredis client into the pub/sub service
    PUBSUB_ENABLED = False
    SSE_POLL_TIMEOUT = 0.05

import os
import tempfile
from pathlib import Path

class Config:
    """Base configuration - shared across all environments"""

    # Security
    SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-secret-key')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    BASE_DIR = os.path.dirname(os.path.abspath(__file__))
    LOGS_DIR = os.environ.get('REPAIRSHOP_LOGS_DIR', os.path.join(BASE_DIR, 'logs'))

    # Display timezone for invoice dates and monthly reports
    DISPLAY_TIMEZONE = os.environ.get('DISPLAY_TIMEZONE', 'Asia/Singapore')

    # Invoice defaults
    DEFAULT_TAX_NAME = os.environ.get('DEFAULT_TAX_NAME', 'VAT')
    DEFAULT_TAX_RATE = os.environ.get('DEFAULT_TAX_RATE', '15')
    INVOICE_DUE_DAYS = int(os.environ.get('INVOICE_DUE_DAYS', 30))
    INVOICE_TERMS = os.environ.get('INVOICE_TERMS', 'Payment due within 30 days.')

    # Job card numbers
    JOB_CARD_MAX_ATTEMPTS = int(os.environ.get('JOB_CARD_MAX_ATTEMPTS', 5))

    # CORS / rate limiting
    CORS_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            'CORS_ORIGINS', 'http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173'
        ).split(',')
        if origin.strip()
    ]
    RATELIMIT_DEFAULT = os.environ.get('RATELIMIT_DEFAULT', '1000 per day;500 per hour')
    RATELIMIT_STORAGE_URI = os.environ.get('RATELIMIT_STORAGE_URI', 'memory://')


class DevConfig(Config):
    """Development configuration"""
    DEBUG = True
    FLASK_HOST = '0.0.0.0'
    FLASK_PORT = 5000

    # Development database - SQLite file in the storage folder
    STORAGE_PATH = str(Path(__file__).resolve().parents[1] / "repairshop-storage" / "database")
    DB_PATH = os.path.join(STORAGE_PATH, 'repairshop.db')
    SQLALCHEMY_DATABASE_URI = os.environ.get('SQLALCHEMY_DATABASE_URI', f"sqlite:///{DB_PATH}")


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    FLASK_HOST = '::'
    FLASK_PORT = int(os.environ.get('PORT', 5000))

    # Production database - MUST be set via environment
    SQLALCHEMY_DATABASE_URI = os.environ.get('SQLALCHEMY_DATABASE_URI')


class TestConfig(Config):
    """Test configuration - in-memory database, no rate limits"""
    TESTING = True
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    RATELIMIT_ENABLED = False
    DISPLAY_TIMEZONE = 'UTC'
    LOGS_DIR = os.path.join(tempfile.gettempdir(), 'repairshop-test-logs')


CONFIGS = {
    'development': DevConfig,
    'production': ProductionConfig,
    'testing': TestConfig,
}


def get_config(name=None):
    """Resolve a config class from a name or the REPAIRSHOP_ENV variable."""
    name = name or os.environ.get('REPAIRSHOP_ENV', 'development')
    return CONFIGS.get(name, DevConfig)

"""
Configuration Module for the Calendar Enhanced Application

This module defines configuration classes for different environments:
- DevelopmentConfig: Local development with SQLite
- ProductionConfig: Production deployment with PostgreSQL
- TestingConfig: Automated testing configuration
"""

import os
import sys
from pathlib import Path


def _env_bool(name, default):
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {'1', 'true', 'yes', 'on'}


class Config:
    """Base configuration with common settings"""

    # Secret key for session management and CSRF protection.
    # DO NOT provide an insecure default here.
    # - In development, we load from .env (see wsgi.py) or you can set it explicitly.
    # - In production, the app factory enforces presence.
    SECRET_KEY = os.environ.get('SECRET_KEY')

    # Database configuration
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }

    # Settings persistence: 'database' (Setting table) or 'memory' (per process).
    SETTINGS_BACKEND = os.environ.get('SETTINGS_BACKEND', 'database')

    # Category icons are stored as paths relative to the static folder
    # (or absolute URLs). Size variants live under static/uploads/variants.
    CALENDAR_BUNDLED_DEFAULT_IMAGE = 'images/default-fallback.svg'

    # "Today" for the countdown subline is computed in this zone.
    CALENDAR_TIMEZONE = os.environ.get('CALENDAR_TIMEZONE', 'UTC')

    # Resolved snapshots are cached per worker; admin saves invalidate the
    # local cache immediately, other workers catch up after this many seconds.
    CALENDAR_SNAPSHOT_TTL_SECONDS = int(os.environ.get('CALENDAR_SNAPSHOT_TTL_SECONDS', 30))

    # Date-badge styling applied by the DOM fallback (server pass and browser).
    CALENDAR_BORDER_WIDTH = os.environ.get('CALENDAR_BORDER_WIDTH', '3px')
    CALENDAR_BACKGROUND_OPACITY = float(os.environ.get('CALENDAR_BACKGROUND_OPACITY', 0.15))

    # Browser runtime console logging.
    CALENDAR_CLIENT_DEBUG = _env_bool('CALENDAR_CLIENT_DEBUG', False)

    # Re-run the DOM fallback over outgoing HTML responses that contain
    # calendar markup (for fragments rendered without the hooks).
    CALENDAR_SERVER_DOM_PASS = _env_bool('CALENDAR_SERVER_DOM_PASS', False)

    # Admin configuration (HTTP basic auth on /admin).
    # ADMIN_PASSWORD may be a werkzeug password hash or a plain value.
    ADMIN_USERNAME = os.environ.get('ADMIN_USERNAME', 'admin')
    ADMIN_PASSWORD = os.environ.get('ADMIN_PASSWORD')

    SITE_NAME = os.environ.get('SITE_NAME', 'Calendar Enhanced')

    # Security headers
    SESSION_COOKIE_SECURE = False
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'


class DevelopmentConfig(Config):
    """Development environment configuration"""

    DEBUG = True
    TESTING = False
    CALENDAR_CLIENT_DEBUG = _env_bool('CALENDAR_CLIENT_DEBUG', True)

    # IMPORTANT (Windows): SQLAlchemy sqlite URLs must use forward slashes.
    _project_root = Path(__file__).resolve().parent.parent
    _default_db_path = (_project_root / 'calendar_enhanced.db').resolve()

    _env_db_url = os.environ.get('DATABASE_URL')
    if _env_db_url and _env_db_url.strip().startswith('sqlite:'):
        _env_db_url = _env_db_url.replace('\\', '/')

    SQLALCHEMY_DATABASE_URI = _env_db_url or f"sqlite:///{_default_db_path.as_posix()}"


class ProductionConfig(Config):
    """Production environment configuration"""

    DEBUG = False
    TESTING = False

    @property
    def SQLALCHEMY_DATABASE_URI(self):
        """
        Production database URI.

        Must be a property so the environment is read when the config object
        is instantiated, not when this module is imported.
        """
        db_uri = os.environ.get('DATABASE_URL')

        if not db_uri:
            print('❌ FATAL: DATABASE_URL not set in environment', file=sys.stderr)
            return None

        # Fix postgres:// -> postgresql:// (Render/Heroku compatibility)
        if db_uri.startswith('postgres://'):
            db_uri = 'postgresql://' + db_uri[len('postgres://'):]
            print('✓ Fixed DATABASE_URL prefix: postgres:// -> postgresql://', file=sys.stderr)

        return db_uri

    SESSION_COOKIE_SECURE = True


class TestingConfig(Config):
    """Testing environment configuration"""

    TESTING = True
    DEBUG = True

    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'

    # Disable CSRF for testing
    WTF_CSRF_ENABLED = False

    SECRET_KEY = 'test-secret-key'
    ADMIN_USERNAME = 'admin'
    ADMIN_PASSWORD = 'secret'
    CALENDAR_TIMEZONE = 'Europe/Berlin'


# Configuration dictionary for easy access
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}

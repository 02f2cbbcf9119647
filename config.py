"""
Application configuration.
This module defines the configuration settings for the Flask application: database connection, secret key,
upload storage and the commission defaults. It uses environment variables for sensitive information and
defaults for development. In production, make sure to set the appropriate environment variables and secure
the secret key.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent


class Config:
    """Base configuration shared by all environments."""

    # IMPORTANT: change this in production
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-change-me-please")

    # Database: SQLite for development (simple file in project folder)
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        f"sqlite:///{BASE_DIR / 'commissions.db'}"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # CSRF protection for mutating requests (token via /auth/csrf-token)
    WTF_CSRF_ENABLED = True

    # Uploaded documents and payout receipts
    UPLOAD_FOLDER = os.environ.get("UPLOAD_FOLDER", str(BASE_DIR / "uploads"))
    MAX_UPLOAD_BYTES = int(os.environ.get("MAX_UPLOAD_BYTES", 10 * 1024 * 1024))
    # Request bodies carry at most one document plus form fields
    MAX_CONTENT_LENGTH = MAX_UPLOAD_BYTES + 1024 * 1024

    # Rate given to salespeople created without an explicit one
    DEFAULT_COMMISSION_RATE = os.environ.get("DEFAULT_COMMISSION_RATE", "0.03")

    INVITE_TTL_DAYS = int(os.environ.get("INVITE_TTL_DAYS", 7))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    APP_NAME = "Commission Payouts"


class TestingConfig(Config):
    """Configuration used by the test-suite. Paths are overridden per test run."""

    TESTING = True
    WTF_CSRF_ENABLED = False
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    LOG_LEVEL = "DEBUG"

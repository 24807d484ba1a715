from __future__ import annotations

from pathlib import Path
import os

from dotenv import load_dotenv

load_dotenv()

# Repository root
REPO_ROOT = Path(__file__).resolve().parent.parent
# Default database location
DB_FILE = REPO_ROOT / "ladder.db"


class BaseConfig:
    """Base settings shared across environments."""

    DB_USER = os.getenv("DB_USER", "ladder_user")
    DB_PASSWORD = os.getenv("DB_PASSWORD", "")
    DB_HOST = os.getenv("DB_HOST", "localhost")
    DB_NAME: str | None = None


class ProductionConfig(BaseConfig):
    DB_NAME = "ladder_prod"


class TrialConfig(BaseConfig):
    DB_NAME = "ladder_trial"


class DevelopmentConfig(BaseConfig):
    # development uses the sqlite file at ``DB_FILE``
    DB_NAME = None


_CONFIGS = {
    "production": ProductionConfig,
    "trial": TrialConfig,
    "development": DevelopmentConfig,
}

# Current active configuration determined by the ``APP_ENV`` environment
# variable. Defaults to development.
APP_ENV = os.getenv("APP_ENV", "development")
ActiveConfig = _CONFIGS.get(APP_ENV, DevelopmentConfig)


def get_database_url() -> str:
    """Return the configured database connection string.

    An empty string selects the sqlite database at ``DB_FILE``.
    """
    url = os.getenv("DATABASE_URL")
    if url:
        return url
    if not ActiveConfig.DB_NAME:
        return ""
    return (
        f"postgresql://{ActiveConfig.DB_USER}:{ActiveConfig.DB_PASSWORD}"
        f"@{ActiveConfig.DB_HOST}/{ActiveConfig.DB_NAME}"
    )


def get_redis_url() -> str | None:
    """Return the Redis connection string if set."""
    return os.getenv("REDIS_URL")


def get_cache_ttl() -> int:
    """Return the cache TTL in seconds."""
    return int(os.getenv("CACHE_TTL", "300"))


def get_sendgrid_api_key() -> str:
    """Return the SendGrid API key used for outgoing email."""
    return os.getenv("SENDGRID_API_KEY", "")


def get_mail_from() -> str:
    return os.getenv(
        "MAIL_FROM", "Vancouver Pickleball Smash <admin@vancouvertennisclash.com>"
    )


def get_league_admin_email() -> str:
    """Return the address that receives league staff notifications."""
    return os.getenv("LEAGUE_ADMIN_EMAIL", "")


def get_dashboard_url() -> str:
    return os.getenv("DASHBOARD_URL", "https://vancouverpickleballsmash.com/dashboard")


__all__ = [
    "DB_FILE",
    "get_database_url",
    "get_redis_url",
    "get_cache_ttl",
    "get_sendgrid_api_key",
    "get_mail_from",
    "get_league_admin_email",
    "get_dashboard_url",
]

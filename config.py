"""Configuration management for the Order Desk bot"""

import os
import logging
from typing import List

logger = logging.getLogger(__name__)


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"⚠️ Invalid integer for {name}={raw!r} - using default {default}")
        return default


def _bool_env(name: str, default: bool = False) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


class Config:
    """Application configuration"""

    # Environment detection: ENVIRONMENT takes priority, anything else is development
    ENVIRONMENT = os.getenv("ENVIRONMENT", "").lower().strip()
    IS_PRODUCTION = ENVIRONMENT == "production"
    CURRENT_ENVIRONMENT = "production" if IS_PRODUCTION else "development"

    # Bot Token Configuration
    # Priority: ADMIN_BOT_TOKEN (operator bot) > TELEGRAM_BOT_TOKEN > generic fallback
    ADMIN_BOT_TOKEN = os.getenv("ADMIN_BOT_TOKEN")
    TELEGRAM_BOT_TOKEN = os.getenv("TELEGRAM_BOT_TOKEN")
    GENERIC_BOT_TOKEN = os.getenv("BOT_TOKEN")
    BOT_TOKEN = ADMIN_BOT_TOKEN or TELEGRAM_BOT_TOKEN or GENERIC_BOT_TOKEN

    # The single operator chat that receives notifications and may issue commands
    ADMIN_CHAT_ID = os.getenv("ADMIN_CHAT_ID", "").strip() or None

    # Database configuration
    # Development falls back to a local SQLite file so the desk runs without PostgreSQL
    DATABASE_URL = os.getenv("DATABASE_URL") or "sqlite:///./order_desk.db"
    DATABASE_SOURCE = "PostgreSQL" if DATABASE_URL.startswith("postgres") else "SQLite"
    DB_POOL_SIZE = _int_env("DB_POOL_SIZE", 5)
    DB_MAX_OVERFLOW = _int_env("DB_MAX_OVERFLOW", 10)
    # Bounded store timeout (seconds) passed to the driver as its command timeout
    DB_COMMAND_TIMEOUT = _int_env("DB_COMMAND_TIMEOUT", 15)

    # Admin JSON API token (X-Admin-Token header); the admin API is disabled when unset
    ADMIN_API_TOKEN = os.getenv("ADMIN_API_TOKEN", "").strip() or None

    # Order protocol settings
    ORDER_NUMBER_MAX_ATTEMPTS = _int_env("ORDER_NUMBER_MAX_ATTEMPTS", 10)
    RECENT_ORDERS_MAX = _int_env("RECENT_ORDERS_MAX", 50)
    SEARCH_RESULTS_LIMIT = _int_env("SEARCH_RESULTS_LIMIT", 20)
    REQUIRE_TRANSACTION_ID = _bool_env("REQUIRE_TRANSACTION_ID", True)

    # Display timezone for transcripts and notifications
    TIMEZONE = os.getenv("TIMEZONE", "Europe/Istanbul")

    # Webhook / HTTP server
    USE_WEBHOOK = _bool_env("USE_WEBHOOK", False)
    WEBHOOK_HOST = os.getenv("WEBHOOK_HOST", "0.0.0.0")
    WEBHOOK_PORT = _int_env("WEBHOOK_PORT", 8000)
    WEBHOOK_URL = os.getenv("WEBHOOK_URL", "").strip() or None

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    @staticmethod
    def log_environment_config():
        """Log current environment configuration for debugging"""
        logger.info(f"🔧 Order Desk Configuration:")
        logger.info(f"   Environment: {Config.CURRENT_ENVIRONMENT.upper()}")
        logger.info(f"   Bot Token: {'configured' if Config.BOT_TOKEN else 'MISSING'}")
        logger.info(f"   Operator Chat: {'configured' if Config.ADMIN_CHAT_ID else 'MISSING'}")
        logger.info(f"   Database: {Config.DATABASE_SOURCE}")
        logger.info(f"   Admin API: {'enabled' if Config.ADMIN_API_TOKEN else 'disabled'}")
        logger.info(f"   Mode: {'webhook' if Config.USE_WEBHOOK else 'polling'}")

    @staticmethod
    def validate() -> List[str]:
        """Return a list of configuration problems (empty when the bot can start)"""
        problems = []
        if not Config.BOT_TOKEN:
            problems.append("ADMIN_BOT_TOKEN (or TELEGRAM_BOT_TOKEN / BOT_TOKEN) is not set")
        if not Config.ADMIN_CHAT_ID:
            problems.append("ADMIN_CHAT_ID is not set")
        if Config.USE_WEBHOOK and not Config.WEBHOOK_URL:
            problems.append("USE_WEBHOOK is enabled but WEBHOOK_URL is not set")
        if Config.IS_PRODUCTION and Config.DATABASE_SOURCE == "SQLite":
            problems.append("Production environment is running on the SQLite fallback database")
        for problem in problems:
            logger.error(f"❌ CONFIG: {problem}")
        return problems

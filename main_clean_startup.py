#!/usr/bin/env python3
"""
Clean Deterministic Startup - Order Desk

Sequence:
- Load environment and validate configuration
- Create database tables
- Build the Telegram application and the order desk services
- Register the operator handlers
- Run in polling mode, or serve the FastAPI app (customer API, admin API,
  Telegram webhook) with uvicorn in webhook mode
"""

import logging
import asyncio
import sys
from typing import Optional
from dotenv import load_dotenv

# Config reads the environment at import time
load_dotenv()

import uvicorn
from telegram import Update
from telegram.ext import Application

from config import Config
from database import create_tables, test_connection, dispose_engine
from handlers.operator_bot import register_operator_handlers
from services.order_desk import OrderDeskServices, build_services

# Setup logging
logging.basicConfig(
    level=getattr(logging, Config.LOG_LEVEL, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
# Polling and HTTP client chatter
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("telegram").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


class CleanStartupManager:
    """
    Clean startup manager with deterministic sequence.
    Owns the Telegram application and the order desk services.
    """

    def __init__(self):
        self.application: Optional[Application] = None
        self.services: Optional[OrderDeskServices] = None
        self.startup_complete = False
        self.startup_errors = []

    async def initialize_database(self) -> bool:
        """Initialize database with clean error handling."""
        try:
            logger.info("🗄️ Initializing database...")

            if not await test_connection():
                raise Exception("Database connection test failed")

            if not await create_tables():
                raise Exception("Table creation failed")

            logger.info("✅ Database initialization complete")
            return True
        except Exception as e:
            logger.error(f"❌ Database initialization failed: {e}")
            self.startup_errors.append(f"Database: {e}")
            return False

    async def create_application(self) -> bool:
        """Create Telegram application with clean configuration."""
        try:
            logger.info("🤖 Creating Telegram application...")

            if not Config.BOT_TOKEN:
                raise ValueError("BOT_TOKEN not configured")

            builder = Application.builder().token(Config.BOT_TOKEN)
            if Config.USE_WEBHOOK:
                # Updates arrive through webhook_server.py
                builder = builder.updater(None)
            self.application = builder.build()

            logger.info("✅ Telegram application created")
            return True

        except Exception as e:
            logger.error(f"❌ Application creation failed: {e}")
            self.startup_errors.append(f"Application: {e}")
            return False

    async def initialize_services(self) -> bool:
        """Wire store, lifecycle, notifications and the operator protocol."""
        try:
            logger.info("⚙️ Initializing order desk services...")
            self.services = build_services(bot=self.application.bot)
            logger.info(
                f"✅ Services initialized (notifications {'enabled' if self.services.notifications.enabled else 'disabled'})"
            )
            return True
        except Exception as e:
            logger.error(f"❌ Service initialization failed: {e}")
            self.startup_errors.append(f"Services: {e}")
            return False

    async def register_handlers(self) -> bool:
        """Register the operator protocol handlers."""
        try:
            logger.info("📋 Registering handlers...")

            if not self.application or not self.services:
                raise ValueError("Application not initialized")

            register_operator_handlers(self.application, self.services.protocol)
            return True

        except Exception as e:
            logger.error(f"❌ Handler registration failed: {e}")
            self.startup_errors.append(f"Handlers: {e}")
            return False

    async def start_application(self) -> bool:
        """Start the application in the configured mode."""
        try:
            if not self.application:
                raise ValueError("Application not initialized")

            await self.application.initialize()
            await self.application.start()

            if Config.USE_WEBHOOK:
                logger.info("🔗 Starting in webhook mode...")
                webhook_url = f"{Config.WEBHOOK_URL.rstrip('/')}/webhook"
                await self.application.bot.set_webhook(url=webhook_url, allowed_updates=Update.ALL_TYPES)
                logger.info(f"✅ Webhook set to {webhook_url}")
            else:
                logger.info("📡 Starting in polling mode...")
                await self.application.bot.delete_webhook()
                await self.application.updater.start_polling(allowed_updates=Update.ALL_TYPES)
                logger.info("✅ Application started in polling mode")

            self.startup_complete = True
            return True

        except Exception as e:
            logger.error(f"❌ Application start failed: {e}")
            self.startup_errors.append(f"Application start: {e}")
            return False

    async def startup_sequence(self) -> bool:
        """Execute clean startup sequence."""
        logger.info("🚀 Starting Order Desk bot with clean startup sequence...")
        Config.log_environment_config()
        for problem in Config.validate():
            self.startup_errors.append(f"Config: {problem}")

        startup_steps = [
            ("Database", self.initialize_database),
            ("Application", self.create_application),
            ("Services", self.initialize_services),
            ("Handlers", self.register_handlers),
            ("Start", self.start_application),
        ]

        for step_name, step_func in startup_steps:
            logger.info(f"▶️ Executing step: {step_name}")
            success = await step_func()

            if not success:
                # Every step is required: without handlers the operator chat would be dead
                logger.error(f"🚨 Step '{step_name}' failed - cannot continue startup")
                return False

        if self.startup_errors:
            logger.warning(f"⚠️ Startup completed with {len(self.startup_errors)} warnings:")
            for error in self.startup_errors:
                logger.warning(f"  - {error}")
        else:
            logger.info("✅ Clean startup sequence completed successfully")

        return self.startup_complete

    async def serve_webhook(self) -> None:
        """Serve the FastAPI app with the bot attached until uvicorn exits."""
        from webhook_server import create_app, set_bot_application

        app = create_app(self.services)
        await set_bot_application(self.application)
        server = uvicorn.Server(uvicorn.Config(
            app,
            host=Config.WEBHOOK_HOST,
            port=Config.WEBHOOK_PORT,
            log_level=Config.LOG_LEVEL.lower(),
        ))
        logger.info(f"🌐 Serving on {Config.WEBHOOK_HOST}:{Config.WEBHOOK_PORT}")
        await server.serve()

    async def shutdown(self) -> None:
        if self.services:
            await self.services.notifications.drain()
        if self.application:
            if self.application.updater and self.application.updater.running:
                await self.application.updater.stop()
            if self.application.running:
                await self.application.stop()
            await self.application.shutdown()
        await dispose_engine()
        logger.info("👋 Order Desk bot stopped")


async def main_clean():
    """Main function with clean startup."""
    startup_manager = CleanStartupManager()
    try:
        success = await startup_manager.startup_sequence()

        if not success:
            logger.error("❌ Startup failed - exiting")
            sys.exit(1)

        logger.info("🎉 Order Desk bot startup complete!")

        if Config.USE_WEBHOOK:
            await startup_manager.serve_webhook()
        else:
            logger.info("📡 Running in polling mode - keeping alive...")
            await asyncio.Event().wait()
    finally:
        await startup_manager.shutdown()


if __name__ == "__main__":
    try:
        asyncio.run(main_clean())
    except KeyboardInterrupt:
        logger.info("👋 Bot stopped by user")
    except Exception as e:
        logger.error(f"❌ Fatal error: {e}")
        sys.exit(1)

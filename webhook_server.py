"""
FastAPI Webhook Server for the Order Desk
Serves the customer order API, the admin dashboard API, health checks and the Telegram webhook
"""
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import asyncio
import logging
import time
import orjson
from typing import Optional
from telegram import Update

from database import create_tables
from routes.admin_orders import router as admin_orders_router
from routes.customer_orders import router as customer_orders_router
from services.order_desk import OrderDeskServices, build_services

logger = logging.getLogger(__name__)

# Global application reference with startup state tracking
_bot_application = None
_startup_complete = False
_startup_timestamp = None
_update_tasks: set = set()


async def set_bot_application(application):
    """Set the bot application instance for webhook processing"""
    global _bot_application, _startup_complete, _startup_timestamp

    _bot_application = application
    _startup_complete = True
    _startup_timestamp = time.time()
    logger.info("✅ Bot application set - webhook updates will be processed")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables and wire services unless the caller already provided them"""
    if getattr(app.state, "services", None) is None:
        logger.info("🔧 No services supplied - building order desk services without a bot")
        if not await create_tables():
            logger.error("❌ Table creation failed - requests will fail until the database is reachable")
        app.state.services = build_services()

    yield

    services: Optional[OrderDeskServices] = getattr(app.state, "services", None)
    if services is not None:
        # Let in-flight operator notifications finish before shutdown
        await services.notifications.drain()
    logger.info("🔄 Webhook server shutting down...")


def create_app(services: Optional[OrderDeskServices] = None) -> FastAPI:
    app = FastAPI(
        title="Order Desk",
        description="Customer order API, admin API and Telegram webhook",
        lifespan=lifespan,
    )
    app.state.services = services
    app.include_router(customer_orders_router)
    app.include_router(admin_orders_router)

    @app.get("/health")
    async def health_check():
        """Liveness plus bot readiness; the HTTP API works without the bot"""
        uptime = time.time() - _startup_timestamp if _startup_timestamp else 0
        return {
            "status": "healthy",
            "service": "order-desk",
            "bot_ready": _startup_complete and _bot_application is not None,
            "uptime_seconds": round(uptime, 2),
        }

    @app.post("/webhook")
    async def webhook(request: Request):
        """Telegram webhook: validate, acknowledge immediately, process in the background"""
        if not _bot_application:
            logger.error("❌ Bot application not initialized")
            return JSONResponse(content={"error": "Bot not initialized"}, status_code=503)

        body = await request.body()
        if not body:
            logger.warning("⚠️ Empty webhook body received")
            return JSONResponse(content={"error": "Empty body"}, status_code=400)
        try:
            data = orjson.loads(body)
        except orjson.JSONDecodeError as e:
            logger.error(f"❌ JSON decode error: {e}")
            return JSONResponse(content={"error": "Invalid JSON"}, status_code=400)

        if not isinstance(data, dict) or "update_id" not in data:
            logger.error("❌ Invalid webhook data structure")
            return JSONResponse(content={"error": "Invalid webhook data"}, status_code=400)

        update = Update.de_json(data, _bot_application.bot)
        if not update:
            logger.error("❌ Failed to create Update object")
            return JSONResponse(content={"error": "Invalid update format"}, status_code=400)

        task = asyncio.create_task(_process_update_background(update))
        _update_tasks.add(task)
        task.add_done_callback(_update_tasks.discard)
        return {"ok": True}

    return app


async def _process_update_background(update: Update) -> None:
    try:
        if _bot_application is None:
            logger.error("❌ BACKGROUND_ERROR: Bot application not ready")
            return
        await _bot_application.process_update(update)
    except Exception as e:
        logger.error(f"❌ BACKGROUND_ERROR: Failed to process update {update.update_id}: {e}")


app = create_app()

"""Wiring of the order desk services (store -> allocator -> lifecycle -> gateway -> protocol)"""

import logging
from dataclasses import dataclass
from typing import Optional
from sqlalchemy.ext.asyncio import async_sessionmaker
from telegram import Bot

from config import Config
from handlers.operator_protocol import OperatorProtocol
from services.checkout_service import CustomerCheckoutFlow
from services.order_lifecycle import OrderLifecycleService
from services.order_notifications import NotificationGateway, NotificationChannel, TelegramNotificationChannel
from services.order_number_allocator import OrderNumberAllocator
from services.order_store import OrderStore
from services.reply_intent import ReplyIntentStore

logger = logging.getLogger(__name__)


@dataclass
class OrderDeskServices:
    store: OrderStore
    lifecycle: OrderLifecycleService
    notifications: NotificationGateway
    checkout: CustomerCheckoutFlow
    protocol: OperatorProtocol


def build_services(
    session_factory: Optional[async_sessionmaker] = None,
    bot: Optional[Bot] = None,
    channel: Optional[NotificationChannel] = None,
    operator_chat_id=None,
) -> OrderDeskServices:
    operator_chat_id = operator_chat_id if operator_chat_id is not None else Config.ADMIN_CHAT_ID

    if channel is None and bot is not None and operator_chat_id:
        channel = TelegramNotificationChannel(bot, operator_chat_id)
    if channel is None:
        logger.warning("⚠️ No operator notification channel - notifications will only be logged")

    store = OrderStore(session_factory)
    lifecycle = OrderLifecycleService(store, OrderNumberAllocator(store))
    notifications = NotificationGateway(channel)
    return OrderDeskServices(
        store=store,
        lifecycle=lifecycle,
        notifications=notifications,
        checkout=CustomerCheckoutFlow(lifecycle, notifications),
        protocol=OperatorProtocol(lifecycle, operator_chat_id, ReplyIntentStore()),
    )

"""
Operator Notification Gateway

Pushes new-order and new-customer-message alerts to the single operator chat.
Notifications are advisory: the order is already committed when they run, so
every failure is caught and logged here and never reaches the caller. Failed
pushes are not retried.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Set
from telegram import Bot, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.constants import ParseMode
from telegram.error import TelegramError

from models import Order
from utils.order_formatting import (
    ButtonRows,
    render_new_order_notification,
    render_new_message_notification,
    new_order_buttons,
    new_message_buttons,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationOutcome:
    """Result of a best-effort push; callers are free to ignore it"""

    delivered: bool
    error: Optional[str] = None

    @classmethod
    def ok(cls) -> "NotificationOutcome":
        return cls(delivered=True)

    @classmethod
    def failed(cls, error: str) -> "NotificationOutcome":
        return cls(delivered=False, error=error)


class NotificationChannel:
    """Transport for operator notifications"""

    async def send(self, text: str, parse_mode: Optional[str] = None, buttons: Optional[ButtonRows] = None) -> None:
        raise NotImplementedError


def build_keyboard(buttons: Optional[ButtonRows]) -> Optional[InlineKeyboardMarkup]:
    if not buttons:
        return None
    return InlineKeyboardMarkup([
        [InlineKeyboardButton(label, callback_data=payload) for label, payload in row]
        for row in buttons
    ])


class TelegramNotificationChannel(NotificationChannel):
    """Sends to the operator chat through the bot API"""

    def __init__(self, bot: Bot, chat_id):
        self.bot = bot
        self.chat_id = chat_id

    async def send(self, text: str, parse_mode: Optional[str] = None, buttons: Optional[ButtonRows] = None) -> None:
        await self.bot.send_message(
            chat_id=self.chat_id,
            text=text,
            parse_mode=parse_mode,
            reply_markup=build_keyboard(buttons),
        )


class NotificationGateway:
    """Best-effort side channel to the operator"""

    def __init__(self, channel: Optional[NotificationChannel] = None):
        self.channel = channel
        self._pending: Set[asyncio.Task] = set()

    @property
    def enabled(self) -> bool:
        return self.channel is not None

    async def _deliver(self, kind: str, order_number: str, render: Callable[[], tuple]) -> NotificationOutcome:
        if self.channel is None:
            logger.warning(f"⚠️ NOTIFY_SKIPPED: {kind} for {order_number} - no operator channel configured")
            return NotificationOutcome.failed("channel not configured")
        try:
            text, buttons = render()
            await self.channel.send(text, parse_mode=ParseMode.HTML, buttons=buttons)
        except TelegramError as e:
            logger.error(f"❌ NOTIFY_TELEGRAM_ERROR: {kind} for {order_number}: {e}")
            return NotificationOutcome.failed(str(e))
        except Exception as e:
            logger.error(f"❌ NOTIFY_FAILED: {kind} for {order_number}: {type(e).__name__}: {e}")
            return NotificationOutcome.failed(str(e))
        logger.info(f"✅ NOTIFY_SENT: {kind} for {order_number}")
        return NotificationOutcome.ok()

    async def notify_new_order(self, order: Order) -> NotificationOutcome:
        return await self._deliver(
            "new_order",
            getattr(order, "order_number", "?"),
            lambda: (render_new_order_notification(order), new_order_buttons(order.order_number)),
        )

    async def notify_new_customer_message(self, order: Order, message_text: str) -> NotificationOutcome:
        return await self._deliver(
            "new_customer_message",
            getattr(order, "order_number", "?"),
            lambda: (render_new_message_notification(order, message_text), new_message_buttons(order.order_number)),
        )

    # ------------------------------------------------------------------
    # Fire-and-forget dispatch
    # ------------------------------------------------------------------

    def _spawn(self, coroutine) -> asyncio.Task:
        task = asyncio.create_task(coroutine)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    def dispatch_new_order(self, order: Order) -> asyncio.Task:
        """Schedule notify_new_order without making the caller wait"""
        return self._spawn(self.notify_new_order(order))

    def dispatch_new_customer_message(self, order: Order, message_text: str) -> asyncio.Task:
        return self._spawn(self.notify_new_customer_message(order, message_text))

    async def drain(self) -> None:
        """Wait for in-flight notifications (shutdown and tests)"""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

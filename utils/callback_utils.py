"""
Utility functions for answering callback queries and sending bot messages safely
"""

import logging
from typing import Optional
from telegram.error import TelegramError

logger = logging.getLogger(__name__)


async def safe_answer_callback_query(query, text: Optional[str] = None, show_alert: bool = False) -> bool:
    """
    Answer a callback query, removing the loading spinner on the button.

    Failures (expired query, network) are logged and swallowed: the button
    action itself has already been processed.
    """
    if not query:
        return False

    user_id = query.from_user.id if getattr(query, "from_user", None) else 0
    try:
        if text:
            await query.answer(text, show_alert=show_alert)
        else:
            await query.answer()
        return True
    except TelegramError as answer_error:
        error_msg = str(answer_error)
        if "too old" in error_msg.lower() or "timeout" in error_msg.lower() or "expired" in error_msg.lower():
            logger.warning(f"Callback timeout for user {user_id}: {error_msg}")
        else:
            logger.debug(f"Callback answer failed (non-critical): {answer_error}")
        return False


async def safe_send_message(bot, chat_id, text: str, parse_mode: Optional[str] = None, reply_markup=None) -> bool:
    """Send a message, logging instead of raising on Telegram errors"""
    if not text:
        return False
    try:
        await bot.send_message(chat_id=chat_id, text=text, parse_mode=parse_mode, reply_markup=reply_markup)
        return True
    except TelegramError as e:
        logger.error(f"❌ SEND_FAILED: chat {chat_id}: {e}")
        return False

"""
Operator Bot - python-telegram-bot glue for the operator protocol

Routes callback queries and every text message of the operator chat into
OperatorProtocol and delivers the replies it produces.
"""

import logging
from telegram import Update
from telegram.ext import Application, ContextTypes, CallbackQueryHandler, MessageHandler, filters

from handlers.operator_protocol import OperatorProtocol
from utils.callback_utils import safe_answer_callback_query, safe_send_message
from utils.exception_handler import safe_telegram_handler

logger = logging.getLogger(__name__)

PROTOCOL_KEY = "operator_protocol"


def get_protocol(context: ContextTypes.DEFAULT_TYPE) -> OperatorProtocol:
    return context.bot_data[PROTOCOL_KEY]


@safe_telegram_handler
async def handle_operator_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Inline button presses (confirm / cancel / archive / view / reply_init)"""
    query = update.callback_query
    if not query:
        return

    chat_id = query.message.chat.id if query.message else None
    logger.info(f"🔘 Button pressed in chat {chat_id}: {query.data}")

    reply = await get_protocol(context).handle_callback(chat_id, query.data)
    if reply is None:
        # Unauthorized: acknowledge without effect
        await safe_answer_callback_query(query)
        return

    await safe_answer_callback_query(query, reply.callback_answer, show_alert=reply.show_alert)
    if reply.text and chat_id is not None:
        await safe_send_message(context.bot, chat_id, reply.text, parse_mode=reply.parse_mode)


@safe_telegram_handler
async def handle_operator_text(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Commands and free text from the operator chat"""
    message = update.effective_message
    chat = update.effective_chat
    if not message or not chat or message.text is None:
        return

    reply = await get_protocol(context).handle_text(chat.id, message.text)
    if reply is None or not reply.text:
        return
    await safe_send_message(context.bot, chat.id, reply.text, parse_mode=reply.parse_mode)


async def handle_error(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    logger.error(f"❌ Operator bot error: {context.error}", exc_info=context.error)


def register_operator_handlers(application: Application, protocol: OperatorProtocol) -> None:
    """Attach the operator protocol to the bot application"""
    application.bot_data[PROTOCOL_KEY] = protocol
    application.add_handler(CallbackQueryHandler(handle_operator_callback))
    # filters.TEXT includes slash commands; the protocol does its own command parsing
    application.add_handler(MessageHandler(filters.TEXT, handle_operator_text))
    application.add_error_handler(handle_error)
    logger.info("✅ Operator handlers registered")

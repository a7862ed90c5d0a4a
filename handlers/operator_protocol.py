"""
Operator Protocol

Stateful front end over the order lifecycle for the single operator chat.
Input arrives on two channels: inline button callbacks and text messages
(slash commands or free text). The only in-memory state is the reply intent:
after a "Reply" button the next non-command text message becomes an operator
reply on that order.

Dispatch rules for text:
1. A recognised command always runs, even while a reply is armed; the armed
   reply stays in place.
2. Any other slash-prefixed text is "unrecognised" and leaves the intent alone.
3. Plain text with an armed intent is sent as the reply. The intent is consumed
   before the send is attempted, so an empty or failed reply does not re-arm it.
4. Plain text without an intent is "unrecognised".

Chats other than the operator's get no reply and cause no state change.
"""

import logging
from dataclasses import dataclass
from typing import Optional
from telegram.constants import ParseMode

from config import Config
from handlers.operator_commands import (
    OperatorAction,
    ParsedCommand,
    parse_command,
    parse_callback,
    is_command_text,
)
from models import MessageSender, OrderStatus
from services.order_lifecycle import OrderLifecycleService
from services.order_store import OrderFilter, OrderSort
from services.reply_intent import ReplyIntentStore
from utils.exception_handler import (
    OrderDeskError,
    NotFoundError,
    ValidationError,
    AuthorizationError,
    GENERIC_ERROR_MESSAGE,
    user_message_for,
)
from utils.order_formatting import (
    HELP_TEXT,
    escape,
    render_order_detail,
    render_order_list,
    status_label,
)

logger = logging.getLogger(__name__)

UNRECOGNIZED_TEXT = "Unrecognised command or message. Type /yardim for help."


@dataclass(frozen=True)
class OperatorReply:
    """What the bot should send back; text may be None for a bare callback answer"""

    text: Optional[str] = None
    parse_mode: Optional[str] = ParseMode.HTML
    callback_answer: Optional[str] = None
    show_alert: bool = False


def _code(order_number: str) -> str:
    return f"<code>{escape(order_number)}</code>"


class OperatorProtocol:
    """Parses operator input and drives OrderLifecycleService accordingly"""

    def __init__(
        self,
        lifecycle: OrderLifecycleService,
        operator_chat_id,
        reply_intents: Optional[ReplyIntentStore] = None,
        search_limit: Optional[int] = None,
    ):
        self.lifecycle = lifecycle
        self.operator_chat_id = str(operator_chat_id).strip() if operator_chat_id is not None else None
        self.reply_intents = reply_intents or ReplyIntentStore()
        self.search_limit = search_limit or Config.SEARCH_RESULTS_LIMIT

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    def is_operator(self, chat_id) -> bool:
        return self.operator_chat_id is not None and str(chat_id) == self.operator_chat_id

    def authorize(self, chat_id) -> None:
        if not self.is_operator(chat_id):
            raise AuthorizationError(chat_id)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def handle_callback(self, chat_id, data: Optional[str]) -> Optional[OperatorReply]:
        """Handle an inline button press; None means acknowledge silently"""
        try:
            self.authorize(chat_id)
        except AuthorizationError:
            logger.warning(f"🚫 UNAUTHORIZED_CALLBACK: chat {chat_id} pressed {data!r}")
            return None

        try:
            request = parse_callback(data)
        except ValidationError:
            logger.warning(f"⚠️ CALLBACK_WITHOUT_ORDER: {data!r}")
            return OperatorReply(callback_answer="Error: order number not found.", show_alert=True)

        logger.info(f"🔘 CALLBACK: {request.raw_action} for {request.order_number}")
        action = request.action
        if action is None:
            logger.warning(f"⚠️ UNKNOWN_CALLBACK_ACTION: {request.raw_action!r}")
            return OperatorReply(text="Unknown action button.")

        if action == OperatorAction.CONFIRM:
            return await self._transition(request.order_number, OrderStatus.COMPLETED)
        if action == OperatorAction.CANCEL:
            return await self._transition(request.order_number, OrderStatus.CANCELLED)
        if action == OperatorAction.ARCHIVE:
            return await self._set_archived(request.order_number, True)
        if action == OperatorAction.VIEW:
            return await self._view(request.order_number)
        return await self._arm_reply(chat_id, request.order_number)

    async def handle_text(self, chat_id, text: Optional[str]) -> Optional[OperatorReply]:
        """Handle a text message (command or free text); None means ignore"""
        if not self.is_operator(chat_id):
            logger.debug(f"Ignoring text from non-operator chat {chat_id}")
            return None
        if text is None:
            return None

        command = parse_command(text)
        if command is not None:
            return await self.execute(chat_id, command)

        if is_command_text(text):
            return OperatorReply(text=UNRECOGNIZED_TEXT, parse_mode=None)

        order_number = await self.reply_intents.consume(chat_id)
        if order_number is None:
            return OperatorReply(text=UNRECOGNIZED_TEXT, parse_mode=None)
        return await self._reply_from_intent(order_number, text)

    async def execute(self, chat_id, command: ParsedCommand) -> OperatorReply:
        """Run one parsed command"""
        if not command.is_valid:
            return OperatorReply(text=command.usage_error, parse_mode=None)

        action = command.action
        logger.info(f"⌨️ COMMAND: {action.value} {command.order_number or ''}".rstrip())

        if action == OperatorAction.HELP:
            return OperatorReply(text=HELP_TEXT)
        if action == OperatorAction.VIEW:
            return await self._view(command.order_number)
        if action == OperatorAction.CONFIRM:
            return await self._transition(command.order_number, OrderStatus.COMPLETED)
        if action == OperatorAction.CANCEL:
            return await self._transition(command.order_number, OrderStatus.CANCELLED)
        if action == OperatorAction.ARCHIVE:
            return await self._set_archived(command.order_number, True)
        if action == OperatorAction.UNARCHIVE:
            return await self._set_archived(command.order_number, False)
        if action == OperatorAction.DELETE_ARCHIVED:
            return await self._delete_archived(command.order_number)
        if action in (OperatorAction.REPLY, OperatorAction.SEND_MESSAGE):
            return await self._send_operator_message(command.order_number, command.text, action)
        if action == OperatorAction.CANCEL_REPLY:
            return await self._cancel_reply(chat_id)
        if action == OperatorAction.LIST_PENDING:
            return await self._list(
                "Pending Orders",
                OrderFilter(status=OrderStatus.PENDING, archived=False),
                OrderSort.RECENT,
                "No pending orders.",
            )
        if action == OperatorAction.LIST_UNREAD:
            return await self._list(
                "Orders With Unread Messages",
                OrderFilter(archived=False, unread_only=True),
                OrderSort.UNREAD_FIRST,
                "No unread customer messages.",
            )
        if action == OperatorAction.LIST_RECENT:
            return await self._list(
                f"Last {command.count} Orders",
                OrderFilter(limit=command.count),
                OrderSort.RECENT,
                "No orders yet.",
            )
        if action == OperatorAction.SEARCH:
            return await self._list(
                f"Search: {command.text}",
                OrderFilter(search=command.text, limit=self.search_limit),
                OrderSort.RECENT,
                "No matching orders.",
            )
        # REPLY_INIT only arrives from buttons
        return OperatorReply(text=UNRECOGNIZED_TEXT, parse_mode=None)

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def _failure(self, error: Exception, context: str) -> OperatorReply:
        if isinstance(error, OrderDeskError):
            logger.info(f"⚠️ {context}: {error.kind}")
            return OperatorReply(text=escape(user_message_for(error)))
        logger.exception(f"❌ {context}: unexpected error")
        return OperatorReply(text=GENERIC_ERROR_MESSAGE, parse_mode=None)

    async def _view(self, order_number: str) -> OperatorReply:
        try:
            order = await self.lifecycle.require(order_number)
        except Exception as e:
            return self._failure(e, f"VIEW {order_number}")
        return OperatorReply(text=render_order_detail(order))

    async def _transition(self, order_number: str, status: OrderStatus) -> OperatorReply:
        try:
            order = await self.lifecycle.transition_status(order_number, status)
        except Exception as e:
            return self._failure(e, f"STATUS {order_number}")
        icon = {"Completed": "✅", "Cancelled": "❌"}.get(order.status, "⏳")
        return OperatorReply(
            text=f"{icon} Order {_code(order.order_number)} status updated to <b>{status_label(order.status)}</b>."
        )

    async def _set_archived(self, order_number: str, archived: bool) -> OperatorReply:
        try:
            order = await self.lifecycle.set_archived(order_number, archived)
        except Exception as e:
            return self._failure(e, f"ARCHIVE {order_number}")
        if order.is_archived:
            return OperatorReply(text=f"📁 Order {_code(order.order_number)} archived.")
        return OperatorReply(text=f"📄 Order {_code(order.order_number)} removed from the archive.")

    async def _delete_archived(self, order_number: str) -> OperatorReply:
        try:
            order = await self.lifecycle.delete_archived(order_number)
        except NotFoundError:
            return OperatorReply(text=f"❌ Order {_code(order_number)} was not found or is not archived.")
        except Exception as e:
            return self._failure(e, f"DELETE {order_number}")
        return OperatorReply(text=f"🗑️ Archived order {_code(order.order_number)} permanently deleted.")

    async def _send_operator_message(self, order_number: str, text: str, action: OperatorAction) -> OperatorReply:
        try:
            order = await self.lifecycle.append_message(order_number, MessageSender.OPERATOR, text)
        except Exception as e:
            return self._failure(e, f"MESSAGE {order_number}")
        label = "reply" if action == OperatorAction.REPLY else "message"
        return OperatorReply(text=f"✅ Your {label} to {_code(order.order_number)} was sent.")

    async def _arm_reply(self, chat_id, order_number: str) -> OperatorReply:
        await self.reply_intents.arm(chat_id, order_number)
        return OperatorReply(
            text=(
                f"💬 You are replying to order {_code(order_number)}.\n"
                "Send your message now. Type /yanitiptal to cancel."
            )
        )

    async def _cancel_reply(self, chat_id) -> OperatorReply:
        if await self.reply_intents.clear(chat_id):
            return OperatorReply(text="Reply cancelled.", parse_mode=None)
        return OperatorReply(text="There is no pending reply to cancel.", parse_mode=None)

    async def _reply_from_intent(self, order_number: str, text: str) -> OperatorReply:
        body = (text or "").strip()
        if not body:
            return OperatorReply(text="Reply cannot be empty. Cancelled.", parse_mode=None)
        try:
            order = await self.lifecycle.append_message(order_number, MessageSender.OPERATOR, body)
        except NotFoundError:
            return OperatorReply(text=f"❌ Order {_code(order_number)} not found for reply. Cancelled.")
        except Exception as e:
            return self._failure(e, f"REPLY {order_number}")
        return OperatorReply(text=f"✅ Your reply to {_code(order.order_number)} was sent.")

    async def _list(self, title: str, order_filter: OrderFilter, sort: OrderSort, empty_text: str) -> OperatorReply:
        try:
            orders = await self.lifecycle.list(order_filter, sort)
        except Exception as e:
            return self._failure(e, f"LIST {title}")
        return OperatorReply(text=render_order_list(title, orders, empty_text))

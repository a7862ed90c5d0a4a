"""
HTML renderings of orders for the operator chat

Everything here produces Telegram HTML (parse_mode='HTML'); customer-supplied
text is always escaped.
"""

import html
import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from config import Config
from models import Order, OrderMessage, OrderStatus, MessageSender

logger = logging.getLogger(__name__)

TELEGRAM_MESSAGE_LIMIT = 4096
MESSAGE_SEPARATOR = "\n--------------------\n"

ButtonRows = List[List[Tuple[str, str]]]

STATUS_LABELS = {
    OrderStatus.PENDING.value: "⏳ Pending",
    OrderStatus.COMPLETED.value: "✅ Payment Confirmed",
    OrderStatus.CANCELLED.value: "❌ Cancelled",
}

HELP_TEXT = """<b>Operator Bot Commands</b>

<b>Order actions:</b>
<code>/goruntule &lt;OrderNo&gt;</code> - view order and messages
<code>/onayla &lt;OrderNo&gt;</code> - confirm payment
<code>/iptal &lt;OrderNo&gt;</code> - cancel order
<code>/arsivle &lt;OrderNo&gt;</code> - archive
<code>/arsivdenkaldir &lt;OrderNo&gt;</code> - unarchive
<code>/arsivlisil &lt;OrderNo&gt;</code> - delete an archived order

<b>Messaging:</b>
<code>/yanitla &lt;OrderNo&gt; &lt;Message&gt;</code>
<code>/mesajgonder &lt;OrderNo&gt; &lt;Message&gt;</code>
<code>/yanitiptal</code> - cancel a pending reply

<b>Lists &amp; search:</b>
<code>/bekleyenler</code> - pending orders
<code>/okunmamislar</code> - orders with unread messages
<code>/son &lt;N&gt;</code> - last N orders
<code>/ara &lt;Text&gt;</code> - search by order number or product

English aliases: /view /confirm /cancel /archive /unarchive /delete_archived /reply /send_message /cancel_reply /list_pending /list_unread /list_recent /search /help"""


def _display_zone():
    try:
        return ZoneInfo(Config.TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"⚠️ Unknown TIMEZONE {Config.TIMEZONE!r} - falling back to UTC")
        return timezone.utc


def format_timestamp(value: Optional[datetime]) -> str:
    if value is None:
        return "?"
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(_display_zone()).strftime("%d.%m.%Y %H:%M")


def escape(value) -> str:
    return html.escape(str(value if value is not None else ""), quote=False)


def status_label(status: str) -> str:
    return STATUS_LABELS.get(status, status)


def telegram_length(text: str) -> int:
    """Length as Telegram counts it (UTF-16 code units)"""
    return len(text.encode("utf-16-le")) // 2


def clip_html(text: str, limit: int) -> str:
    """Cut escaped text to ``limit`` Telegram characters, ending with an ellipsis"""
    if telegram_length(text) <= limit:
        return text
    kept = []
    used = 0
    for char in text:
        width = 2 if ord(char) > 0xFFFF else 1
        if used + width > limit - 1:
            break
        kept.append(char)
        used += width
    clipped = "".join(kept)
    # never end inside an entity such as &amp;
    entity_start = clipped.rfind("&")
    if entity_start != -1 and ";" not in clipped[entity_start:]:
        clipped = clipped[:entity_start]
    return clipped + "…"


def render_message(message: OrderMessage, max_length: Optional[int] = None) -> str:
    sender = "<b>You</b>" if message.sender == MessageSender.OPERATOR.value else "<b>Customer</b>"
    header = f"{sender} ({format_timestamp(message.timestamp)}):\n"
    body = escape(message.text)
    if max_length is not None:
        body = clip_html(body, max(max_length - telegram_length(header), 1))
    return header + body


def render_transcript(messages: Sequence[OrderMessage], budget: Optional[int] = None) -> str:
    """Render the thread oldest first; when over budget the oldest entries are dropped"""
    if not messages:
        return "<i>No messages for this order yet.</i>"
    blocks = [render_message(message) for message in messages]
    if budget is None:
        return MESSAGE_SEPARATOR.join(blocks)

    kept: List[str] = []
    used = 0
    for message, block in zip(reversed(messages), reversed(blocks)):
        cost = telegram_length(block) + len(MESSAGE_SEPARATOR)
        if used + cost > budget:
            if kept:
                break
            # the newest message alone is over budget: show as much of it as fits
            block = render_message(message, max_length=budget - len(MESSAGE_SEPARATOR))
            cost = telegram_length(block) + len(MESSAGE_SEPARATOR)
        kept.insert(0, block)
        used += cost
    omitted = len(blocks) - len(kept)
    if omitted:
        kept.insert(0, f"<i>… {omitted} older message(s) omitted</i>")
    return MESSAGE_SEPARATOR.join(kept)


def render_order_detail(order: Order) -> str:
    header = (
        f"<b>Order No:</b> <code>{escape(order.order_number)}</code>\n"
        f"<b>Created:</b> {format_timestamp(order.created_at)}\n"
        f"<b>Product:</b> {escape(order.product_name)} (x{order.quantity})\n"
        f"<b>Payment:</b> {escape(order.payment_info)}\n"
        f"<b>Status:</b> {status_label(order.status)}\n"
        f"<b>Archived:</b> {'Yes' if order.is_archived else 'No'}\n"
    )
    if order.transaction_id:
        header += f"<b>TxID:</b> <code>{escape(order.transaction_id)}</code>\n"
    header += "\n<b>Message History:</b>" + MESSAGE_SEPARATOR
    budget = TELEGRAM_MESSAGE_LIMIT - telegram_length(header) - 64
    return header + render_transcript(order.messages, budget=budget)


def render_order_line(order: Order) -> str:
    flags = ""
    if order.has_unread_user_message:
        flags += " 💬"
    if order.is_archived:
        flags += " 📁"
    return (
        f"• <code>{escape(order.order_number)}</code> - {escape(order.product_name)} "
        f"(x{order.quantity}) - {status_label(order.status)}{flags}"
    )


def render_order_list(title: str, orders: Iterable[Order], empty_text: str) -> str:
    orders = list(orders)
    if not orders:
        return f"<b>{escape(title)}</b>\n\n<i>{escape(empty_text)}</i>"
    lines = [f"<b>{escape(title)}</b> ({len(orders)})", ""]
    lines.extend(render_order_line(order) for order in orders)
    text = "\n".join(lines)
    if len(text) > TELEGRAM_MESSAGE_LIMIT:
        text = text[:TELEGRAM_MESSAGE_LIMIT - 2].rsplit("\n", 1)[0] + "\n…"
    return text


# ---------------------------------------------------------------------------
# Operator notifications
# ---------------------------------------------------------------------------

def first_customer_note(order: Order) -> Optional[str]:
    for message in order.messages:
        if message.sender == MessageSender.CUSTOMER.value:
            return message.text
    return None


def render_new_order_notification(order: Order) -> str:
    text = (
        "📦 <b>New Order Received!</b>\n\n"
        f"<b>Order No:</b> <code>{escape(order.order_number)}</code>\n"
        f"<b>Product:</b> {escape(order.product_name)} (x{order.quantity})\n"
        f"<b>Payment:</b> {escape(order.payment_info)}\n"
    )
    if order.transaction_id:
        text += f"<b>TxID:</b> <code>{escape(order.transaction_id)}</code>\n"
    footer = "\n<i>Use the buttons below to take action.</i>"
    note = first_customer_note(order)
    if note:
        label = "<b>Note:</b> "
        budget = TELEGRAM_MESSAGE_LIMIT - telegram_length(text + label + "\n" + footer)
        text += f"{label}{clip_html(escape(note), budget)}\n"
    return text + footer


def render_new_message_notification(order: Order, message_text: str) -> str:
    header = (
        "💬 <b>New Customer Message!</b>\n\n"
        f"<b>Order No:</b> <code>{escape(order.order_number)}</code>\n"
        f"<b>Product:</b> {escape(order.product_name)}\n\n"
        "<b>Message:</b> "
    )
    footer = "\n\n<i>Use the buttons below to take action.</i>"
    budget = TELEGRAM_MESSAGE_LIMIT - telegram_length(header) - telegram_length(footer)
    return header + clip_html(escape(message_text), budget) + footer


def new_order_buttons(order_number: str) -> ButtonRows:
    return [
        [("✅ Confirm", f"confirm:{order_number}"), ("❌ Cancel", f"cancel:{order_number}")],
        [("📄 View Messages", f"view:{order_number}"), ("📁 Archive", f"archive:{order_number}")],
    ]


def new_message_buttons(order_number: str) -> ButtonRows:
    return [
        [("💬 Reply", f"reply_init:{order_number}"), ("📄 View Messages", f"view:{order_number}")],
        [("✅ Confirm", f"confirm:{order_number}"), ("❌ Cancel", f"cancel:{order_number}")],
        [("📁 Archive", f"archive:{order_number}")],
    ]

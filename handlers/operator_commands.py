"""
Operator command grammar

Decodes operator input once at the bot boundary:
- slash commands ("/verb args") into ParsedCommand values
- inline button payloads ("action:EM-XXXXXXXX") into CallbackRequest values

Handlers dispatch on OperatorAction and never re-inspect raw strings.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from config import Config
from utils.exception_handler import ValidationError
from utils.order_numbers import normalize_order_number


class OperatorAction(Enum):
    VIEW = "view"
    CONFIRM = "confirm"
    CANCEL = "cancel"
    ARCHIVE = "archive"
    UNARCHIVE = "unarchive"
    DELETE_ARCHIVED = "delete_archived"
    REPLY = "reply"
    SEND_MESSAGE = "send_message"
    REPLY_INIT = "reply_init"
    CANCEL_REPLY = "cancel_reply"
    LIST_PENDING = "list_pending"
    LIST_UNREAD = "list_unread"
    LIST_RECENT = "list_recent"
    SEARCH = "search"
    HELP = "help"


# Actions reachable from inline buttons
CALLBACK_ACTIONS = {
    OperatorAction.CONFIRM,
    OperatorAction.CANCEL,
    OperatorAction.ARCHIVE,
    OperatorAction.VIEW,
    OperatorAction.REPLY_INIT,
}

# Turkish verbs used by the deployed bot, plus English aliases
COMMAND_VERBS: Dict[str, OperatorAction] = {
    "goruntule": OperatorAction.VIEW,
    "view": OperatorAction.VIEW,
    "onayla": OperatorAction.CONFIRM,
    "confirm": OperatorAction.CONFIRM,
    "iptal": OperatorAction.CANCEL,
    "cancel": OperatorAction.CANCEL,
    "arsivle": OperatorAction.ARCHIVE,
    "archive": OperatorAction.ARCHIVE,
    "arsivdenkaldir": OperatorAction.UNARCHIVE,
    "unarchive": OperatorAction.UNARCHIVE,
    "arsivlisil": OperatorAction.DELETE_ARCHIVED,
    "delete_archived": OperatorAction.DELETE_ARCHIVED,
    "yanitla": OperatorAction.REPLY,
    "reply": OperatorAction.REPLY,
    "mesajgonder": OperatorAction.SEND_MESSAGE,
    "send_message": OperatorAction.SEND_MESSAGE,
    "yanitiptal": OperatorAction.CANCEL_REPLY,
    "cancel_reply": OperatorAction.CANCEL_REPLY,
    "bekleyenler": OperatorAction.LIST_PENDING,
    "list_pending": OperatorAction.LIST_PENDING,
    "okunmamislar": OperatorAction.LIST_UNREAD,
    "list_unread": OperatorAction.LIST_UNREAD,
    "son": OperatorAction.LIST_RECENT,
    "list_recent": OperatorAction.LIST_RECENT,
    "ara": OperatorAction.SEARCH,
    "search": OperatorAction.SEARCH,
    "yardim": OperatorAction.HELP,
    "baslat": OperatorAction.HELP,
    "help": OperatorAction.HELP,
    "start": OperatorAction.HELP,
}

USAGE = {
    OperatorAction.VIEW: "/goruntule <OrderNo>",
    OperatorAction.CONFIRM: "/onayla <OrderNo>",
    OperatorAction.CANCEL: "/iptal <OrderNo>",
    OperatorAction.ARCHIVE: "/arsivle <OrderNo>",
    OperatorAction.UNARCHIVE: "/arsivdenkaldir <OrderNo>",
    OperatorAction.DELETE_ARCHIVED: "/arsivlisil <OrderNo>",
    OperatorAction.REPLY: "/yanitla <OrderNo> <Message>",
    OperatorAction.SEND_MESSAGE: "/mesajgonder <OrderNo> <Message>",
    OperatorAction.LIST_RECENT: "/son <Number>",
    OperatorAction.SEARCH: "/ara <Text>",
}

ORDER_ONLY_ACTIONS = {
    OperatorAction.VIEW,
    OperatorAction.CONFIRM,
    OperatorAction.CANCEL,
    OperatorAction.ARCHIVE,
    OperatorAction.UNARCHIVE,
    OperatorAction.DELETE_ARCHIVED,
}

COMMAND_PATTERN = re.compile(r"^/([A-Za-z_\-]+)(?:@\w+)?(?:\s+(.*))?$", re.DOTALL)
ORDER_ARG_PATTERN = re.compile(r"^(EM-[A-Z0-9]+)$", re.IGNORECASE)
ORDER_TEXT_ARGS_PATTERN = re.compile(r"^(EM-[A-Z0-9]+)\s+(.+)$", re.IGNORECASE | re.DOTALL)
COUNT_ARG_PATTERN = re.compile(r"^\d+$")


@dataclass(frozen=True)
class ParsedCommand:
    action: OperatorAction
    order_number: Optional[str] = None
    text: Optional[str] = None
    count: Optional[int] = None
    usage_error: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        return self.usage_error is None


@dataclass(frozen=True)
class CallbackRequest:
    action: Optional[OperatorAction]
    raw_action: str
    order_number: str


def _usage(action: OperatorAction) -> ParsedCommand:
    return ParsedCommand(action=action, usage_error=f"Usage: {USAGE[action]}")


def parse_command(text: Optional[str]) -> Optional[ParsedCommand]:
    """Parse a slash command; None when the text is not a recognised command"""
    match = COMMAND_PATTERN.match((text or "").strip())
    if not match:
        return None
    verb = match.group(1).lower().replace("-", "_")
    action = COMMAND_VERBS.get(verb)
    if action is None:
        return None
    args = (match.group(2) or "").strip()

    if action in ORDER_ONLY_ACTIONS:
        order_match = ORDER_ARG_PATTERN.match(args)
        if not order_match:
            return _usage(action)
        return ParsedCommand(action=action, order_number=normalize_order_number(order_match.group(1)))

    if action in (OperatorAction.REPLY, OperatorAction.SEND_MESSAGE):
        text_match = ORDER_TEXT_ARGS_PATTERN.match(args)
        if not text_match:
            return _usage(action)
        return ParsedCommand(
            action=action,
            order_number=normalize_order_number(text_match.group(1)),
            text=text_match.group(2).strip(),
        )

    if action == OperatorAction.LIST_RECENT:
        if not COUNT_ARG_PATTERN.match(args) or int(args) <= 0:
            return _usage(action)
        return ParsedCommand(action=action, count=min(int(args), Config.RECENT_ORDERS_MAX))

    if action == OperatorAction.SEARCH:
        if not args:
            return _usage(action)
        return ParsedCommand(action=action, text=args)

    return ParsedCommand(action=action)


def parse_callback(data: Optional[str]) -> CallbackRequest:
    """Parse an inline button payload; raises ValidationError when no order number is present"""
    raw_action, _, raw_number = (data or "").partition(":")
    order_number = normalize_order_number(raw_number)
    if not order_number or not ORDER_ARG_PATTERN.match(order_number):
        raise ValidationError("Order number missing from button data.", field="callback_data")
    try:
        action = OperatorAction(raw_action.strip().lower())
    except ValueError:
        action = None
    if action not in CALLBACK_ACTIONS:
        action = None
    return CallbackRequest(action=action, raw_action=raw_action, order_number=order_number)


def is_command_text(text: Optional[str]) -> bool:
    """Slash-prefixed input is never treated as reply text, recognised or not"""
    return (text or "").lstrip().startswith("/")

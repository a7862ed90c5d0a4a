"""
Exception Handler Module
Provides the order desk error taxonomy, user-facing messages and handler decorators
"""

import logging
import functools
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class OrderDeskError(Exception):
    """Base class for errors raised by order lifecycle operations"""

    kind = "internal"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(OrderDeskError):
    """Malformed input: empty text, bad transaction id, bad quantity or status.

    ``message`` is written for the person who sent the input and is safe to show.
    """

    kind = "validation"

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class NotFoundError(OrderDeskError):
    """No order matched the selector"""

    kind = "not_found"

    def __init__(self, reference: str):
        self.reference = reference
        super().__init__(f"Order not found: {reference}")


class AllocationExhausted(OrderDeskError):
    """Order-number allocation ran out of attempts"""

    kind = "allocation_exhausted"

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(f"Could not allocate a unique order number after {attempts} attempts")


class AuthorizationError(OrderDeskError):
    """Operator action from an unrecognised chat"""

    kind = "authorization"

    def __init__(self, chat_id: Any):
        self.chat_id = chat_id
        super().__init__(f"Unauthorized chat: {chat_id}")


GENERIC_ERROR_MESSAGE = "❌ An error occurred while processing the request. Please try again."


def user_message_for(error: BaseException) -> str:
    """Build the user-facing text for an error from its kind, never from raw internals"""
    if isinstance(error, ValidationError):
        return f"⚠️ {error.message}"
    if isinstance(error, NotFoundError):
        return f"❌ Order {error.reference} was not found."
    if isinstance(error, AllocationExhausted):
        return "❌ The order could not be created right now. Please try again."
    if isinstance(error, AuthorizationError):
        return ""
    return GENERIC_ERROR_MESSAGE


def http_status_for(error: BaseException) -> int:
    if isinstance(error, ValidationError):
        return 400
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, AuthorizationError):
        return 401
    return 500


def safe_telegram_handler(func: Callable) -> Callable:
    """
    Decorator to safely handle telegram handler functions
    Catches exceptions and logs them without crashing the bot
    """

    @functools.wraps(func)
    async def wrapper(*args, **kwargs) -> Any:
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            logger.exception(f"Error in telegram handler {func.__name__}: {type(e).__name__}: {e}")
            # Don't re-raise to prevent bot crashes
            return None

    return wrapper

"""Order number allocation: EM- followed by 4 random bytes as uppercase hex"""

import logging
import secrets
from typing import Callable, Optional

from config import Config
from services.order_store import OrderStore
from utils.exception_handler import AllocationExhausted
from utils.order_numbers import format_order_number

logger = logging.getLogger(__name__)


class OrderNumberAllocator:
    """Draws random order numbers and skips ones already present in the store.

    The pre-check is advisory; the UNIQUE constraint on ``orders.order_number``
    is what rejects a concurrent duplicate. ``OrderLifecycleService.create``
    calls ``draw`` itself so pre-check collisions and constraint rejections
    share one attempt budget.
    """

    def __init__(
        self,
        store: OrderStore,
        max_attempts: Optional[int] = None,
        random_bytes: Callable[[int], bytes] = secrets.token_bytes,
    ):
        self.store = store
        self.max_attempts = max_attempts or Config.ORDER_NUMBER_MAX_ATTEMPTS
        self._random_bytes = random_bytes

    def candidate(self) -> str:
        return format_order_number(self._random_bytes(4))

    async def draw(self, attempt: int = 1) -> Optional[str]:
        """One attempt: a fresh candidate, or None when the store already holds it"""
        order_number = self.candidate()
        existing = await self.store.find_by_number(order_number)
        if existing is None:
            return order_number
        logger.warning(f"⚠️ ORDER_NUMBER_COLLISION: {order_number} already taken (attempt {attempt}/{self.max_attempts})")
        return None

    async def allocate(self) -> str:
        for attempt in range(1, self.max_attempts + 1):
            order_number = await self.draw(attempt)
            if order_number is not None:
                return order_number

        logger.error(f"❌ ORDER_NUMBER_EXHAUSTED: no free order number after {self.max_attempts} attempts")
        raise AllocationExhausted(self.max_attempts)

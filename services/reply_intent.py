"""
Reply Intent Store

Remembers which order the operator's next free-text message should be sent to.
State is process-local and deliberately not persisted: a restart clears any
armed reply.
"""

import asyncio
import logging
from collections import OrderedDict
from typing import Optional

logger = logging.getLogger(__name__)


class ReplyIntentStore:
    """Bounded operator-id -> order-number map with arm/consume/clear"""

    def __init__(self, max_entries: int = 1):
        self.max_entries = max(1, max_entries)
        self._intents: "OrderedDict[str, str]" = OrderedDict()
        self._lock = asyncio.Lock()

    async def arm(self, operator_id, order_number: str) -> Optional[str]:
        """Point the operator's next reply at order_number; returns the order it replaced"""
        key = str(operator_id)
        async with self._lock:
            previous = self._intents.pop(key, None)
            self._intents[key] = order_number
            while len(self._intents) > self.max_entries:
                evicted, _ = self._intents.popitem(last=False)
                logger.warning(f"⚠️ REPLY_INTENT_EVICTED: operator {evicted}")
        logger.info(f"💬 REPLY_INTENT_ARMED: operator {key} -> {order_number}")
        return previous

    async def consume(self, operator_id) -> Optional[str]:
        """Take and clear the armed order number in one step"""
        async with self._lock:
            return self._intents.pop(str(operator_id), None)

    async def clear(self, operator_id) -> bool:
        async with self._lock:
            return self._intents.pop(str(operator_id), None) is not None

    async def peek(self, operator_id) -> Optional[str]:
        async with self._lock:
            return self._intents.get(str(operator_id))

"""
Tests for the reply intent store (services/reply_intent.py)
"""

import asyncio
import pytest

from services.reply_intent import ReplyIntentStore


@pytest.mark.asyncio
class TestReplyIntentStore:

    async def test_arm_then_consume(self):
        intents = ReplyIntentStore()
        assert await intents.arm(4242, "EM-0A1B2C3D") is None

        assert await intents.peek(4242) == "EM-0A1B2C3D"
        assert await intents.consume(4242) == "EM-0A1B2C3D"
        assert await intents.consume(4242) is None

    async def test_rearm_replaces_previous_order(self):
        intents = ReplyIntentStore()
        await intents.arm(4242, "EM-00000001")
        previous = await intents.arm(4242, "EM-00000002")

        assert previous == "EM-00000001"
        assert await intents.peek(4242) == "EM-00000002"

    async def test_clear(self):
        intents = ReplyIntentStore()
        assert await intents.clear(4242) is False
        await intents.arm(4242, "EM-00000001")
        assert await intents.clear(4242) is True
        assert await intents.peek(4242) is None

    async def test_operator_id_type_does_not_matter(self):
        intents = ReplyIntentStore()
        await intents.arm(4242, "EM-00000001")
        assert await intents.consume("4242") == "EM-00000001"

    async def test_store_is_bounded(self):
        intents = ReplyIntentStore(max_entries=2)
        await intents.arm(1, "EM-00000001")
        await intents.arm(2, "EM-00000002")
        await intents.arm(3, "EM-00000003")

        assert await intents.peek(1) is None
        assert await intents.peek(2) == "EM-00000002"
        assert await intents.peek(3) == "EM-00000003"

    async def test_concurrent_consumers_get_the_intent_once(self):
        intents = ReplyIntentStore()
        await intents.arm(4242, "EM-00000001")

        results = await asyncio.gather(*[intents.consume(4242) for _ in range(5)])

        assert results.count("EM-00000001") == 1
        assert results.count(None) == 4

"""
Tests for the operator protocol (handlers/operator_protocol.py)
Button callbacks, text commands, the reply intent slot and operator-only access
"""

import pytest
from unittest.mock import AsyncMock

from handlers.operator_protocol import OperatorProtocol, UNRECOGNIZED_TEXT
from models import MessageSender, OrderStatus
from utils.exception_handler import GENERIC_ERROR_MESSAGE

from conftest import OPERATOR_CHAT_ID

STRANGER_CHAT_ID = 9999


@pytest.mark.asyncio
class TestOperatorAccess:

    async def test_stranger_callback_is_acknowledged_without_effect(self, make_order, protocol, lifecycle):
        order = await make_order()

        reply = await protocol.handle_callback(STRANGER_CHAT_ID, f"confirm:{order.order_number}")

        assert reply is None
        assert (await lifecycle.find(order.order_number)).status == "Pending"

    async def test_stranger_text_is_ignored(self, make_order, protocol, lifecycle):
        order = await make_order()

        assert await protocol.handle_text(STRANGER_CHAT_ID, f"/onayla {order.order_number}") is None
        assert await protocol.handle_text(STRANGER_CHAT_ID, "/yardim") is None
        assert (await lifecycle.find(order.order_number)).status == "Pending"

    async def test_stranger_cannot_arm_reply(self, make_order, protocol, reply_intents):
        order = await make_order()
        await protocol.handle_callback(STRANGER_CHAT_ID, f"reply_init:{order.order_number}")
        assert await reply_intents.peek(STRANGER_CHAT_ID) is None
        assert await reply_intents.peek(OPERATOR_CHAT_ID) is None

    async def test_unconfigured_operator_accepts_nobody(self, lifecycle):
        protocol = OperatorProtocol(lifecycle, None)
        assert protocol.is_operator(OPERATOR_CHAT_ID) is False
        assert await protocol.handle_text(OPERATOR_CHAT_ID, "/yardim") is None

    async def test_chat_id_may_be_configured_as_string(self, lifecycle):
        protocol = OperatorProtocol(lifecycle, " 4242 ")
        assert protocol.is_operator(4242)


@pytest.mark.asyncio
class TestCallbacks:

    async def test_confirm_button(self, make_order, protocol, lifecycle):
        order = await make_order()

        reply = await protocol.handle_callback(OPERATOR_CHAT_ID, f"confirm:{order.order_number}")

        assert "Payment Confirmed" in reply.text
        assert (await lifecycle.find(order.order_number)).status == "Completed"

    async def test_cancel_button(self, make_order, protocol, lifecycle):
        order = await make_order()
        await protocol.handle_callback(OPERATOR_CHAT_ID, f"cancel:{order.order_number}")
        assert (await lifecycle.find(order.order_number)).status == "Cancelled"

    async def test_archive_button(self, make_order, protocol, lifecycle):
        order = await make_order()
        reply = await protocol.handle_callback(OPERATOR_CHAT_ID, f"archive:{order.order_number}")
        assert "archived" in reply.text
        assert (await lifecycle.find(order.order_number)).is_archived is True

    async def test_view_button_renders_thread_without_mutation(self, make_order, protocol, lifecycle):
        order = await make_order(note="is <b>this</b> paid?")
        await lifecycle.append_message(order.order_number, MessageSender.OPERATOR, "yes")

        reply = await protocol.handle_callback(OPERATOR_CHAT_ID, f"view:{order.order_number}")

        assert order.order_number in reply.text
        assert "is &lt;b&gt;this&lt;/b&gt; paid?" in reply.text
        assert reply.text.index("Customer") < reply.text.index("You")
        after = await lifecycle.find(order.order_number)
        assert after.status == "Pending"
        assert len(after.messages) == 2

    async def test_view_button_for_empty_thread(self, make_order, protocol):
        order = await make_order()
        reply = await protocol.handle_callback(OPERATOR_CHAT_ID, f"view:{order.order_number}")
        assert "No messages for this order yet." in reply.text

    async def test_reply_init_arms_without_mutation(self, make_order, protocol, reply_intents, lifecycle):
        order = await make_order(note="hello")

        reply = await protocol.handle_callback(OPERATOR_CHAT_ID, f"reply_init:{order.order_number}")

        assert "/yanitiptal" in reply.text
        assert await reply_intents.peek(OPERATOR_CHAT_ID) == order.order_number
        after = await lifecycle.find(order.order_number)
        assert after.has_unread_user_message is True
        assert len(after.messages) == 1

    async def test_payload_without_order_number(self, protocol):
        reply = await protocol.handle_callback(OPERATOR_CHAT_ID, "confirm")
        assert reply.show_alert is True
        assert reply.callback_answer
        assert reply.text is None

    async def test_unknown_action(self, make_order, protocol, lifecycle):
        order = await make_order()
        reply = await protocol.handle_callback(OPERATOR_CHAT_ID, f"refund:{order.order_number}")
        assert reply.text == "Unknown action button."
        assert (await lifecycle.find(order.order_number)).status == "Pending"

    async def test_button_for_deleted_order(self, protocol):
        reply = await protocol.handle_callback(OPERATOR_CHAT_ID, "confirm:EM-DEADBEEF")
        assert "EM-DEADBEEF" in reply.text
        assert "not found" in reply.text


@pytest.mark.asyncio
class TestTextCommands:

    async def test_view_unknown_order(self, protocol, lifecycle):
        reply = await protocol.handle_text(OPERATOR_CHAT_ID, "/goruntule EM-DEADBEEF")

        assert "not found" in reply.text
        assert "EM-DEADBEEF" in reply.text
        assert await lifecycle.count() == 0

    async def test_help(self, protocol):
        reply = await protocol.handle_text(OPERATOR_CHAT_ID, "/yardim")
        assert "/goruntule" in reply.text
        assert "/bekleyenler" in reply.text

    async def test_usage_error(self, protocol):
        reply = await protocol.handle_text(OPERATOR_CHAT_ID, "/onayla")
        assert reply.text == "Usage: /onayla <OrderNo>"
        assert reply.parse_mode is None

    async def test_confirm_with_lowercase_number(self, make_order, protocol, lifecycle):
        order = await make_order()
        await protocol.handle_text(OPERATOR_CHAT_ID, f"/onayla {order.order_number.lower()}")
        assert (await lifecycle.find(order.order_number)).status == "Completed"

    async def test_status_can_be_corrected(self, make_order, protocol, lifecycle):
        order = await make_order()
        await protocol.handle_text(OPERATOR_CHAT_ID, f"/iptal {order.order_number}")
        await protocol.handle_text(OPERATOR_CHAT_ID, f"/onayla {order.order_number}")
        assert (await lifecycle.find(order.order_number)).status == "Completed"

    async def test_unarchive(self, make_order, protocol, lifecycle):
        order = await make_order()
        await lifecycle.set_archived(order.order_number, True)

        reply = await protocol.handle_text(OPERATOR_CHAT_ID, f"/arsivdenkaldir {order.order_number}")

        assert "removed from the archive" in reply.text
        assert (await lifecycle.find(order.order_number)).is_archived is False

    async def test_delete_archived(self, make_order, protocol, lifecycle):
        order = await make_order()

        refused = await protocol.handle_text(OPERATOR_CHAT_ID, f"/arsivlisil {order.order_number}")
        assert "not archived" in refused.text
        assert await lifecycle.find(order.order_number) is not None

        await lifecycle.set_archived(order.order_number, True)
        deleted = await protocol.handle_text(OPERATOR_CHAT_ID, f"/arsivlisil {order.order_number}")
        assert "permanently deleted" in deleted.text
        assert await lifecycle.find(order.order_number) is None

    async def test_send_message_clears_unread(self, make_order, protocol, lifecycle):
        order = await make_order(note="any update?")

        reply = await protocol.handle_text(OPERATOR_CHAT_ID, f"/mesajgonder {order.order_number} On its way")

        assert "Your message" in reply.text
        after = await lifecycle.find(order.order_number)
        assert after.has_unread_user_message is False
        assert after.messages[-1].text == "On its way"

    async def test_list_pending(self, make_order, protocol, lifecycle):
        pending = await make_order(product_name="Pending Item")
        done = await make_order(product_name="Done Item")
        hidden = await make_order(product_name="Archived Item")
        await lifecycle.transition_status(done.order_number, OrderStatus.COMPLETED)
        await lifecycle.set_archived(hidden.order_number, True)

        reply = await protocol.handle_text(OPERATOR_CHAT_ID, "/bekleyenler")

        assert pending.order_number in reply.text
        assert done.order_number not in reply.text
        assert hidden.order_number not in reply.text

    async def test_list_unread(self, make_order, protocol):
        quiet = await make_order()
        noisy = await make_order(note="hello?")

        reply = await protocol.handle_text(OPERATOR_CHAT_ID, "/okunmamislar")

        assert noisy.order_number in reply.text
        assert quiet.order_number not in reply.text

    async def test_list_empty(self, protocol):
        reply = await protocol.handle_text(OPERATOR_CHAT_ID, "/okunmamislar")
        assert "No unread customer messages." in reply.text

    async def test_list_recent(self, make_order, protocol):
        orders = [await make_order(product_name=f"Item {i}") for i in range(3)]

        reply = await protocol.handle_text(OPERATOR_CHAT_ID, "/son 2")

        assert orders[2].order_number in reply.text
        assert orders[1].order_number in reply.text
        assert orders[0].order_number not in reply.text
        assert reply.text.index(orders[2].order_number) < reply.text.index(orders[1].order_number)

    async def test_search(self, make_order, protocol):
        netflix = await make_order(product_name="Netflix Premium")
        spotify = await make_order(product_name="Spotify Family")

        reply = await protocol.handle_text(OPERATOR_CHAT_ID, "/ara NETFLIX")

        assert netflix.order_number in reply.text
        assert spotify.order_number not in reply.text

    async def test_unexpected_error_is_not_leaked(self, make_order, protocol, lifecycle):
        order = await make_order()
        lifecycle.transition_status = AsyncMock(side_effect=RuntimeError("connection reset by peer"))

        reply = await protocol.handle_text(OPERATOR_CHAT_ID, f"/onayla {order.order_number}")

        assert reply.text == GENERIC_ERROR_MESSAGE
        assert "connection reset" not in reply.text


@pytest.mark.asyncio
class TestReplyIntent:

    async def test_reply_flow(self, make_order, protocol, reply_intents, lifecycle):
        order = await make_order(note="where is my code?")
        await protocol.handle_callback(OPERATOR_CHAT_ID, f"reply_init:{order.order_number}")

        reply = await protocol.handle_text(OPERATOR_CHAT_ID, "  Code: XYZ-42  ")

        assert "Your reply" in reply.text
        assert await reply_intents.peek(OPERATOR_CHAT_ID) is None
        after = await lifecycle.find(order.order_number)
        assert after.messages[-1].text == "Code: XYZ-42"
        assert after.messages[-1].sender == "operator"
        assert after.has_unread_user_message is False

    async def test_recognised_command_leaves_intent_armed(self, make_order, protocol, reply_intents, lifecycle):
        order = await make_order()
        await protocol.handle_callback(OPERATOR_CHAT_ID, f"reply_init:{order.order_number}")

        reply = await protocol.handle_text(OPERATOR_CHAT_ID, "/bekleyenler")

        assert order.order_number in reply.text
        assert await reply_intents.peek(OPERATOR_CHAT_ID) == order.order_number
        assert (await lifecycle.find(order.order_number)).messages == []

    async def test_unknown_slash_text_is_never_sent_as_reply(self, make_order, protocol, reply_intents, lifecycle):
        order = await make_order()
        await protocol.handle_callback(OPERATOR_CHAT_ID, f"reply_init:{order.order_number}")

        reply = await protocol.handle_text(OPERATOR_CHAT_ID, "/notacommand hi")

        assert reply.text == UNRECOGNIZED_TEXT
        assert await reply_intents.peek(OPERATOR_CHAT_ID) == order.order_number
        assert (await lifecycle.find(order.order_number)).messages == []

    async def test_empty_reply_still_clears_intent(self, make_order, protocol, reply_intents, lifecycle):
        order = await make_order()
        await protocol.handle_callback(OPERATOR_CHAT_ID, f"reply_init:{order.order_number}")

        reply = await protocol.handle_text(OPERATOR_CHAT_ID, "   ")

        assert "cannot be empty" in reply.text
        assert await reply_intents.peek(OPERATOR_CHAT_ID) is None
        assert (await lifecycle.find(order.order_number)).messages == []

    async def test_reply_to_deleted_order_clears_intent(self, protocol, reply_intents):
        await protocol.handle_callback(OPERATOR_CHAT_ID, "reply_init:EM-DEADBEEF")

        reply = await protocol.handle_text(OPERATOR_CHAT_ID, "hello")

        assert "not found for reply" in reply.text
        assert await reply_intents.peek(OPERATOR_CHAT_ID) is None

    async def test_cancel_reply(self, make_order, protocol, reply_intents):
        order = await make_order()
        await protocol.handle_callback(OPERATOR_CHAT_ID, f"reply_init:{order.order_number}")

        cancelled = await protocol.handle_text(OPERATOR_CHAT_ID, "/yanitiptal")
        assert cancelled.text == "Reply cancelled."
        assert await reply_intents.peek(OPERATOR_CHAT_ID) is None

        again = await protocol.handle_text(OPERATOR_CHAT_ID, "/yanitiptal")
        assert again.text == "There is no pending reply to cancel."

    async def test_plain_text_without_intent(self, protocol, lifecycle):
        reply = await protocol.handle_text(OPERATOR_CHAT_ID, "hello there")
        assert reply.text == UNRECOGNIZED_TEXT
        assert await lifecycle.count() == 0

    async def test_second_reply_init_retargets(self, make_order, protocol, reply_intents, lifecycle):
        first = await make_order()
        second = await make_order()
        await protocol.handle_callback(OPERATOR_CHAT_ID, f"reply_init:{first.order_number}")
        await protocol.handle_callback(OPERATOR_CHAT_ID, f"reply_init:{second.order_number}")

        await protocol.handle_text(OPERATOR_CHAT_ID, "for the second one")

        assert (await lifecycle.find(first.order_number)).messages == []
        assert (await lifecycle.find(second.order_number)).messages[-1].text == "for the second one"

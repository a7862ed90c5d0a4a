"""
Tests for the order store (services/order_store.py)
Selectors, conditional updates, listing filters and sort orders
"""

import pytest

from models import MessageSender, OrderStatus
from services.order_store import OrderFilter, OrderSelector, OrderSort


class TestOrderSelector:

    def test_coerce_order_number(self):
        selector = OrderSelector.coerce(" em-deadbeef ")
        assert selector.order_number == "EM-DEADBEEF"
        assert selector.order_id is None
        assert selector.reference == "EM-DEADBEEF"

    def test_coerce_internal_id(self):
        selector = OrderSelector.coerce("3f2a9c0d4b5e4f6a8b7c9d0e1f2a3b4c")
        assert selector.order_id == "3f2a9c0d4b5e4f6a8b7c9d0e1f2a3b4c"
        assert selector.order_number is None

    def test_selector_needs_exactly_one_key(self):
        with pytest.raises(ValueError):
            OrderSelector()
        with pytest.raises(ValueError):
            OrderSelector(order_number="EM-DEADBEEF", order_id="abc")


@pytest.mark.asyncio
class TestOrderStoreWrites:

    async def test_update_fields_with_predicate(self, make_order, store):
        order = await make_order()
        selector = OrderSelector.by_number(order.order_number)

        unmatched = await store.update_fields(selector, {"status": "Completed"}, where={"is_archived": True})
        assert unmatched is None
        assert (await store.find(selector)).status == "Pending"

        matched = await store.update_fields(selector, {"status": "Completed"}, where={"is_archived": False})
        assert matched.status == "Completed"

    async def test_update_fields_moves_updated_at(self, make_order, store):
        order = await make_order()
        updated = await store.update_fields(OrderSelector.by_id(order.id), {"is_archived": True})
        assert updated.updated_at >= updated.created_at

    async def test_delete_matching_returns_none_when_predicate_fails(self, make_order, store):
        order = await make_order()
        assert await store.delete_matching(OrderSelector.by_id(order.id), where={"is_archived": True}) is None
        assert await store.find_by_id(order.id) is not None

    async def test_append_to_thread_unknown_order(self, store):
        result = await store.append_to_thread(OrderSelector.by_number("EM-DEADBEEF"), MessageSender.CUSTOMER, "hi")
        assert result is None


@pytest.mark.asyncio
class TestOrderListing:

    async def test_unread_first_then_newest(self, make_order, lifecycle):
        oldest = await make_order(product_name="A")
        middle = await make_order(product_name="B")
        newest = await make_order(product_name="C")
        await lifecycle.append_message(oldest.order_number, MessageSender.CUSTOMER, "help")

        orders = await lifecycle.list(sort=OrderSort.UNREAD_FIRST)

        assert [o.order_number for o in orders] == [
            oldest.order_number,
            newest.order_number,
            middle.order_number,
        ]

    async def test_recent_sort_and_limit(self, make_order, lifecycle):
        created = [await make_order(product_name=f"Item {i}") for i in range(4)]

        orders = await lifecycle.list(OrderFilter(limit=2), OrderSort.RECENT)

        assert [o.order_number for o in orders] == [created[3].order_number, created[2].order_number]

    async def test_filter_by_status_and_archive(self, make_order, lifecycle):
        pending = await make_order()
        completed = await make_order()
        archived = await make_order()
        await lifecycle.transition_status(completed.order_number, OrderStatus.COMPLETED)
        await lifecycle.set_archived(archived.order_number, True)

        pending_active = await lifecycle.list(OrderFilter(status=OrderStatus.PENDING, archived=False))
        assert [o.order_number for o in pending_active] == [pending.order_number]

        archived_only = await lifecycle.list(OrderFilter(archived=True))
        assert [o.order_number for o in archived_only] == [archived.order_number]

    async def test_unread_only_filter(self, make_order, lifecycle):
        quiet = await make_order()
        noisy = await make_order(note="is it paid?")

        unread = await lifecycle.list(OrderFilter(unread_only=True))

        assert [o.order_number for o in unread] == [noisy.order_number]
        assert quiet.order_number not in [o.order_number for o in unread]

    async def test_search_matches_product_and_number(self, make_order, lifecycle):
        netflix = await make_order(product_name="Netflix Premium")
        await make_order(product_name="Spotify Family")

        by_product = await lifecycle.list(OrderFilter(search="netflix"))
        assert [o.order_number for o in by_product] == [netflix.order_number]

        by_number = await lifecycle.list(OrderFilter(search=netflix.order_number[3:].lower()))
        assert netflix.order_number in [o.order_number for o in by_number]

    async def test_search_escapes_wildcards(self, make_order, lifecycle):
        await make_order(product_name="Plain product")
        assert await lifecycle.list(OrderFilter(search="%")) == []
        assert await lifecycle.list(OrderFilter(search="_")) == []

    async def test_count_matching(self, make_order, lifecycle):
        await make_order()
        await make_order(note="hello")
        await make_order(note="hi again")

        assert await lifecycle.count() == 3
        assert await lifecycle.count(OrderFilter(unread_only=True)) == 2

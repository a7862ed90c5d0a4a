"""
Customer Checkout Flow

Customer-facing operations: placing an order, tracking it by number and
posting a message on its thread. Operator notifications are dispatched after
the order is committed and never affect the result returned to the customer.
"""

import logging
from typing import Optional

from config import Config
from models import Order, MessageSender
from services.order_lifecycle import OrderLifecycleService, text_field
from services.order_notifications import NotificationGateway
from services.order_store import OrderSelector
from utils.exception_handler import ValidationError, NotFoundError
from utils.order_numbers import ORDER_NUMBER_PREFIX, normalize_order_number

logger = logging.getLogger(__name__)


class CustomerCheckoutFlow:
    def __init__(
        self,
        lifecycle: OrderLifecycleService,
        notifications: NotificationGateway,
        require_transaction_id: Optional[bool] = None,
    ):
        self.lifecycle = lifecycle
        self.notifications = notifications
        self.require_transaction_id = (
            Config.REQUIRE_TRANSACTION_ID if require_transaction_id is None else require_transaction_id
        )

    async def place_order(
        self,
        product_name: str,
        quantity,
        payment_info: str,
        transaction_id: Optional[str] = None,
        note: Optional[str] = None,
    ) -> Order:
        if self.require_transaction_id and not text_field(transaction_id, "transaction_id", "Transaction ID"):
            raise ValidationError("Transaction ID is required.", field="transaction_id")

        order = await self.lifecycle.create(
            product_name=product_name,
            quantity=quantity,
            payment_info=payment_info,
            transaction_id=transaction_id,
            initial_customer_note=note,
        )
        self.notifications.dispatch_new_order(order)
        return order

    async def track_order(self, order_number: str) -> Order:
        number = normalize_order_number(order_number)
        if not number.startswith(ORDER_NUMBER_PREFIX):
            raise ValidationError("Invalid order number format.", field="order_number")
        order = await self.lifecycle.find(number)
        if order is None:
            raise NotFoundError(number)
        return order

    async def post_message(self, order_id: str, text: Optional[str]) -> Order:
        order_id = text_field(order_id, "order_id", "Order ID")
        if not order_id:
            raise ValidationError("Order ID is required.", field="order_id")
        order = await self.lifecycle.append_message(OrderSelector.by_id(order_id), MessageSender.CUSTOMER, text)
        self.notifications.dispatch_new_customer_message(order, text.strip())
        return order

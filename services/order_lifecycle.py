"""
Order Lifecycle Service

All order-state mutations go through here: creation, status transitions,
archive toggles, delete-if-archived and thread appends. Each operation is a
single store transaction; validation happens before anything is written.

Status transitions are unrestricted (Pending, Completed and Cancelled may each
move to any other) so operators can correct mistakes.
"""

import logging
import re
from typing import List, Optional, Union
from sqlalchemy.exc import IntegrityError

from models import (
    Order, OrderMessage, OrderStatus, MessageSender, new_order_id, utcnow,
    PRODUCT_NAME_MAX_LENGTH, PAYMENT_INFO_MAX_LENGTH,
)
from services.order_number_allocator import OrderNumberAllocator
from services.order_store import OrderStore, OrderSelector, OrderFilter, OrderSort
from utils.exception_handler import ValidationError, NotFoundError, AllocationExhausted

logger = logging.getLogger(__name__)

TRANSACTION_ID_PATTERN = re.compile(r"^(0x[0-9a-fA-F]{64}|[0-9a-fA-F]{64})$")

SelectorLike = Union[OrderSelector, str]


def parse_status(value: Union[OrderStatus, str]) -> OrderStatus:
    """Accept an OrderStatus, its value ('Completed') or its name ('completed')"""
    if isinstance(value, OrderStatus):
        return value
    raw = str(value or "").strip()
    for status in OrderStatus:
        if raw.lower() in (status.value.lower(), status.name.lower()):
            return status
    raise ValidationError(f"Invalid order status: {raw or '(empty)'}", field="status")


def parse_sender(value: Union[MessageSender, str]) -> MessageSender:
    if isinstance(value, MessageSender):
        return value
    try:
        return MessageSender(str(value).strip().lower())
    except ValueError:
        raise ValidationError("Invalid message sender.", field="sender")


def parse_quantity(value) -> int:
    if isinstance(value, bool):
        raise ValidationError("Quantity must be a positive whole number.", field="quantity")
    try:
        quantity = int(str(value).strip())
    except (TypeError, ValueError):
        raise ValidationError("Quantity must be a positive whole number.", field="quantity")
    if quantity <= 0:
        raise ValidationError("Quantity must be a positive whole number.", field="quantity")
    return quantity


def text_field(value, field: str, label: str) -> str:
    """Trimmed text of an optional string input; anything that is not a string is rejected"""
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"{label} must be text.", field=field)
    return value.strip()


def validate_transaction_id(value: Optional[str]) -> Optional[str]:
    """Return the trimmed transaction id, None when absent, or raise on a bad format"""
    txid = text_field(value, "transaction_id", "Transaction ID")
    if not txid:
        return None
    if not TRANSACTION_ID_PATTERN.match(txid):
        raise ValidationError("Invalid Transaction ID format.", field="transaction_id")
    return txid


def _required_text(value: Optional[str], field: str, label: str, max_length: Optional[int] = None) -> str:
    text = text_field(value, field, label)
    if not text:
        raise ValidationError(f"{label} is required.", field=field)
    if max_length is not None and len(text) > max_length:
        raise ValidationError(f"{label} must be at most {max_length} characters.", field=field)
    return text


class OrderLifecycleService:
    """State machine and thread bookkeeping for orders"""

    def __init__(self, store: OrderStore, allocator: Optional[OrderNumberAllocator] = None):
        self.store = store
        self.allocator = allocator or OrderNumberAllocator(store)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create(
        self,
        product_name: str,
        quantity,
        payment_info: str,
        transaction_id: Optional[str] = None,
        initial_customer_note: Optional[str] = None,
    ) -> Order:
        product_name = _required_text(product_name, "product_name", "Product name", PRODUCT_NAME_MAX_LENGTH)
        payment_info = _required_text(payment_info, "payment_info", "Payment method", PAYMENT_INFO_MAX_LENGTH)
        quantity = parse_quantity(quantity)
        transaction_id = validate_transaction_id(transaction_id)
        note = text_field(initial_customer_note, "note", "Note")

        for attempt in range(1, self.allocator.max_attempts + 1):
            order_number = await self.allocator.draw(attempt)
            if order_number is None:
                continue
            created_at = utcnow()
            order = Order(
                id=new_order_id(),
                order_number=order_number,
                product_name=product_name,
                quantity=quantity,
                payment_info=payment_info,
                transaction_id=transaction_id,
                status=OrderStatus.PENDING.value,
                is_archived=False,
                has_unread_user_message=bool(note),
                created_at=created_at,
                updated_at=created_at,
            )
            # Assigned even when empty so the collection is usable once detached
            order.messages = [OrderMessage(
                sender=MessageSender.CUSTOMER.value,
                text=note,
                timestamp=created_at,
            )] if note else []
            try:
                saved = await self.store.insert(order)
            except IntegrityError:
                logger.warning(f"⚠️ ORDER_NUMBER_RACE: {order_number} rejected by unique constraint (attempt {attempt})")
                continue
            logger.info(f"✅ ORDER_CREATED: {saved.order_number} ({saved.product_name} x{saved.quantity})")
            return saved

        logger.error(f"❌ ORDER_NUMBER_EXHAUSTED: no order number could be stored after {self.allocator.max_attempts} attempts")
        raise AllocationExhausted(self.allocator.max_attempts)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def transition_status(self, selector: SelectorLike, new_status: Union[OrderStatus, str]) -> Order:
        status = parse_status(new_status)
        selector = OrderSelector.coerce(selector)
        order = await self.store.update_fields(selector, {"status": status.value})
        if order is None:
            raise NotFoundError(selector.reference)
        logger.info(f"🔄 ORDER_STATUS: {order.order_number} -> {status.value}")
        return order

    async def set_archived(self, selector: SelectorLike, archived: bool) -> Order:
        selector = OrderSelector.coerce(selector)
        order = await self.store.update_fields(selector, {"is_archived": bool(archived)})
        if order is None:
            raise NotFoundError(selector.reference)
        logger.info(f"📁 ORDER_ARCHIVE: {order.order_number} archived={order.is_archived}")
        return order

    async def delete_archived(self, order_id: SelectorLike) -> Order:
        """Permanently delete an archived order.

        NotFoundError covers both a missing order and one that is not archived.
        """
        selector = OrderSelector.coerce(order_id)
        deleted = await self.store.delete_matching(selector, where={"is_archived": True})
        if deleted is None:
            raise NotFoundError(selector.reference)
        logger.info(f"🗑️ ORDER_DELETED: {deleted.order_number}")
        return deleted

    async def append_message(self, selector: SelectorLike, sender: Union[MessageSender, str], text: Optional[str]) -> Order:
        """Append to the thread; a customer message raises the unread flag, an operator message clears it"""
        sender = parse_sender(sender)
        body = text_field(text, "text", "Message text")
        if not body:
            raise ValidationError("Message text cannot be empty.", field="text")
        selector = OrderSelector.coerce(selector)
        order = await self.store.append_to_thread(
            selector,
            sender,
            body,
            flag_updates={"has_unread_user_message": sender == MessageSender.CUSTOMER},
        )
        if order is None:
            raise NotFoundError(selector.reference)
        logger.info(f"💬 ORDER_MESSAGE: {order.order_number} from {sender.value} (thread={len(order.messages)})")
        return order

    async def acknowledge(self, selector: SelectorLike) -> Order:
        """Mark unread customer messages as seen without replying"""
        selector = OrderSelector.coerce(selector)
        order = await self.store.update_fields(selector, {"has_unread_user_message": False})
        if order is None:
            raise NotFoundError(selector.reference)
        return order

    # ------------------------------------------------------------------
    # Read-only projections
    # ------------------------------------------------------------------

    async def find(self, order_number: str) -> Optional[Order]:
        return await self.store.find_by_number(order_number)

    async def get(self, order_id: str) -> Optional[Order]:
        return await self.store.find_by_id(order_id)

    async def require(self, selector: SelectorLike) -> Order:
        selector = OrderSelector.coerce(selector)
        order = await self.store.find(selector)
        if order is None:
            raise NotFoundError(selector.reference)
        return order

    async def list(self, order_filter: Optional[OrderFilter] = None, sort: OrderSort = OrderSort.UNREAD_FIRST) -> List[Order]:
        return await self.store.list(order_filter, sort)

    async def count(self, order_filter: Optional[OrderFilter] = None) -> int:
        return await self.store.count_matching(order_filter)

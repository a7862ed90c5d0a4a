"""
Order Desk - Database Schema
============================

Two tables back the whole desk:
- orders: one row per customer order (immutable product snapshot + lifecycle flags)
- order_messages: the append-only conversation thread attached to each order

Thread entries are separate rows so appends from the customer and the operator
never rewrite each other's data.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict
from sqlalchemy import (
    Column, Integer, String, DateTime, Boolean, Text,
    ForeignKey, Index, CheckConstraint
)
from sqlalchemy.orm import DeclarativeBase, relationship


PRODUCT_NAME_MAX_LENGTH = 255
PAYMENT_INFO_MAX_LENGTH = 255


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_order_id() -> str:
    return uuid.uuid4().hex


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


# ============================================================================
# ENUMS - Business Logic Constants
# ============================================================================

class OrderStatus(Enum):
    """Order lifecycle states; any state may move to any other"""
    PENDING = "Pending"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class MessageSender(Enum):
    CUSTOMER = "customer"
    OPERATOR = "operator"


def _isoformat(value: datetime) -> str:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


class Order(Base):
    """Customer order with its product snapshot, lifecycle flags and thread"""
    __tablename__ = "orders"

    id = Column(String(32), primary_key=True, default=new_order_id)
    order_number = Column(String(16), nullable=False, unique=True)

    # Snapshot of the purchased item at order time
    product_name = Column(String(PRODUCT_NAME_MAX_LENGTH), nullable=False)
    quantity = Column(Integer, nullable=False)
    payment_info = Column(String(PAYMENT_INFO_MAX_LENGTH), nullable=False)
    transaction_id = Column(String(66), nullable=True)

    # Lifecycle
    status = Column(String(20), nullable=False, default=OrderStatus.PENDING.value)
    is_archived = Column(Boolean, nullable=False, default=False)
    has_unread_user_message = Column(Boolean, nullable=False, default=False)

    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    messages = relationship(
        "OrderMessage",
        order_by="OrderMessage.id",
        lazy="selectin",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_orders_quantity_positive"),
        Index("ix_orders_status_archived", "status", "is_archived"),
        Index("ix_orders_unread_created", "has_unread_user_message", "created_at"),
        Index("ix_orders_created", "created_at"),
    )

    def to_dict(self, include_messages: bool = True) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "orderNumber": self.order_number,
            "productName": self.product_name,
            "quantity": self.quantity,
            "paymentInfo": self.payment_info,
            "transactionId": self.transaction_id,
            "status": self.status,
            "isArchived": bool(self.is_archived),
            "hasUnreadUserMessage": bool(self.has_unread_user_message),
            "createdAt": _isoformat(self.created_at),
            "updatedAt": _isoformat(self.updated_at),
        }
        if include_messages:
            data["messages"] = [message.to_dict() for message in self.messages]
        return data

    def __repr__(self):
        return f"<Order(order_number={self.order_number}, status={self.status}, archived={self.is_archived})>"


class OrderMessage(Base):
    """One entry of an order's conversation thread; rows are never updated"""
    __tablename__ = "order_messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(32), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    sender = Column(String(16), nullable=False)
    text = Column(Text, nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_order_messages_order", "order_id", "id"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sender": self.sender,
            "text": self.text,
            "timestamp": _isoformat(self.timestamp),
        }

    def __repr__(self):
        return f"<OrderMessage(order_id={self.order_id}, sender={self.sender})>"

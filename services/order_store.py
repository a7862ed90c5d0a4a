"""
Order Store - persistence layer for orders and their message threads

Every mutating method runs as a single transaction whose first statement is a
conditional UPDATE/DELETE keyed on the selector, so concurrent writers to the
same order serialise on the row instead of overwriting each other.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Union
from sqlalchemy import select, update, delete, func, or_
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from database import get_async_session
from models import Order, OrderMessage, OrderStatus, MessageSender, utcnow
from utils.order_numbers import looks_like_order_number, normalize_order_number

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderSelector:
    """Identifies one order either by its public number or its internal id"""

    order_number: Optional[str] = None
    order_id: Optional[str] = None

    def __post_init__(self):
        if bool(self.order_number) == bool(self.order_id):
            raise ValueError("OrderSelector needs exactly one of order_number or order_id")

    @classmethod
    def by_number(cls, order_number: str) -> "OrderSelector":
        return cls(order_number=normalize_order_number(order_number))

    @classmethod
    def by_id(cls, order_id: str) -> "OrderSelector":
        return cls(order_id=str(order_id).strip())

    @classmethod
    def coerce(cls, value: Union["OrderSelector", str]) -> "OrderSelector":
        """Accept a selector, an order number (EM-...) or an internal id"""
        if isinstance(value, OrderSelector):
            return value
        if looks_like_order_number(value):
            return cls.by_number(value)
        return cls.by_id(value)

    @property
    def reference(self) -> str:
        return self.order_number or self.order_id

    def clause(self):
        if self.order_number:
            return Order.order_number == self.order_number
        return Order.id == self.order_id


class OrderSort(Enum):
    UNREAD_FIRST = "unread_first"  # unread customer messages first, then newest
    RECENT = "recent"  # newest orders first


@dataclass
class OrderFilter:
    status: Optional[OrderStatus] = None
    archived: Optional[bool] = None
    unread_only: bool = False
    search: Optional[str] = None
    limit: Optional[int] = None

    def clauses(self) -> list:
        clauses = []
        if self.status is not None:
            clauses.append(Order.status == self.status.value)
        if self.archived is not None:
            clauses.append(Order.is_archived == self.archived)
        if self.unread_only:
            clauses.append(Order.has_unread_user_message.is_(True))
        term = (self.search or "").strip()
        if term:
            clauses.append(or_(
                Order.order_number.icontains(term, autoescape=True),
                Order.product_name.icontains(term, autoescape=True),
            ))
        return clauses


def _ordering(sort: OrderSort) -> list:
    if sort == OrderSort.UNREAD_FIRST:
        return [Order.has_unread_user_message.desc(), Order.created_at.desc(), Order.order_number.desc()]
    return [Order.created_at.desc(), Order.order_number.desc()]


class OrderStore:
    """Async repository for Order aggregates"""

    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        self._session_factory = session_factory

    def session(self):
        return get_async_session(self._session_factory)

    async def _load(self, session: AsyncSession, clause) -> Optional[Order]:
        result = await session.execute(
            select(Order).where(clause).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def find_by_number(self, order_number: str) -> Optional[Order]:
        async with self.session() as session:
            return await self._load(session, Order.order_number == normalize_order_number(order_number))

    async def find_by_id(self, order_id: str) -> Optional[Order]:
        async with self.session() as session:
            return await self._load(session, Order.id == order_id)

    async def find(self, selector: OrderSelector) -> Optional[Order]:
        async with self.session() as session:
            return await self._load(session, selector.clause())

    async def insert(self, order: Order) -> Order:
        """Persist a new order; IntegrityError propagates on a duplicate order number"""
        async with self.session() as session:
            session.add(order)
            await session.flush()
            logger.debug(f"Inserted order {order.order_number}")
        return order

    async def update_fields(
        self,
        selector: OrderSelector,
        fields: Dict[str, Any],
        where: Optional[Dict[str, Any]] = None,
    ) -> Optional[Order]:
        """Conditionally update columns; returns the updated order or None when nothing matched"""
        conditions = [selector.clause()] + [getattr(Order, name) == value for name, value in (where or {}).items()]
        async with self.session() as session:
            result = await session.execute(
                update(Order)
                .where(*conditions)
                .values(**fields, updated_at=utcnow())
                .returning(Order.id)
                .execution_options(synchronize_session=False)
            )
            order_id = result.scalar_one_or_none()
            if order_id is None:
                return None
            return await self._load(session, Order.id == order_id)

    async def delete_matching(
        self,
        selector: OrderSelector,
        where: Optional[Dict[str, Any]] = None,
    ) -> Optional[Order]:
        """Delete the order only if selector and predicates match at delete time"""
        predicates = [getattr(Order, name) == value for name, value in (where or {}).items()]
        async with self.session() as session:
            order = await self._load(session, selector.clause())
            if order is None:
                return None
            result = await session.execute(
                delete(Order)
                .where(Order.id == order.id, *predicates)
                .returning(Order.id)
                .execution_options(synchronize_session=False)
            )
            if result.scalar_one_or_none() is None:
                return None
            await session.execute(
                delete(OrderMessage)
                .where(OrderMessage.order_id == order.id)
                .execution_options(synchronize_session=False)
            )
            session.expunge(order)
            return order

    async def append_to_thread(
        self,
        selector: OrderSelector,
        sender: MessageSender,
        text: str,
        flag_updates: Optional[Dict[str, Any]] = None,
        timestamp=None,
    ) -> Optional[Order]:
        """Insert one thread entry and apply flag updates in the same transaction"""
        async with self.session() as session:
            # Row-level UPDATE first: concurrent appends to one order queue up here
            result = await session.execute(
                update(Order)
                .where(selector.clause())
                .values(**(flag_updates or {}), updated_at=utcnow())
                .returning(Order.id)
                .execution_options(synchronize_session=False)
            )
            order_id = result.scalar_one_or_none()
            if order_id is None:
                return None
            session.add(OrderMessage(
                order_id=order_id,
                sender=sender.value,
                text=text,
                timestamp=timestamp or utcnow(),
            ))
            await session.flush()
            return await self._load(session, Order.id == order_id)

    async def list(self, order_filter: Optional[OrderFilter] = None, sort: OrderSort = OrderSort.UNREAD_FIRST) -> List[Order]:
        order_filter = order_filter or OrderFilter()
        stmt = select(Order).where(*order_filter.clauses()).order_by(*_ordering(sort))
        if order_filter.limit:
            stmt = stmt.limit(order_filter.limit)
        async with self.session() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def count_matching(self, order_filter: Optional[OrderFilter] = None) -> int:
        order_filter = order_filter or OrderFilter()
        stmt = select(func.count()).select_from(Order).where(*order_filter.clauses())
        async with self.session() as session:
            result = await session.execute(stmt)
            return int(result.scalar_one())

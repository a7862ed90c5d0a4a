"""
Shared fixtures for the order desk test suite

Every test gets its own SQLite database file (aiosqlite driver) with the full
schema, plus a recording notification channel in place of the Telegram bot.
"""

import logging
from typing import List, Optional

import pytest
import pytest_asyncio

from database import build_engine, build_session_factory, create_tables
from handlers.operator_protocol import OperatorProtocol
from services.checkout_service import CustomerCheckoutFlow
from services.order_desk import OrderDeskServices
from services.order_lifecycle import OrderLifecycleService
from services.order_notifications import NotificationChannel, NotificationGateway
from services.order_number_allocator import OrderNumberAllocator
from services.order_store import OrderStore
from services.reply_intent import ReplyIntentStore

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

OPERATOR_CHAT_ID = 4242
VALID_TXID = "a" * 64


class RecordingChannel(NotificationChannel):
    """Captures what would have been pushed to the operator chat"""

    def __init__(self):
        self.sent: List[dict] = []

    async def send(self, text: str, parse_mode: Optional[str] = None, buttons=None) -> None:
        self.sent.append({"text": text, "parse_mode": parse_mode, "buttons": buttons})


class FailingChannel(NotificationChannel):
    def __init__(self, error: Exception):
        self.error = error
        self.attempts = 0

    async def send(self, text: str, parse_mode: Optional[str] = None, buttons=None) -> None:
        self.attempts += 1
        raise self.error


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'order_desk_test.db'}")
    assert await create_tables(engine)
    yield build_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def store(session_factory):
    return OrderStore(session_factory)


@pytest.fixture
def allocator(store):
    return OrderNumberAllocator(store, max_attempts=10)


@pytest.fixture
def lifecycle(store, allocator):
    return OrderLifecycleService(store, allocator)


@pytest.fixture
def channel():
    return RecordingChannel()


@pytest.fixture
def gateway(channel):
    return NotificationGateway(channel)


@pytest.fixture
def reply_intents():
    return ReplyIntentStore()


@pytest.fixture
def protocol(lifecycle, reply_intents):
    return OperatorProtocol(lifecycle, OPERATOR_CHAT_ID, reply_intents)


@pytest.fixture
def checkout(lifecycle, gateway):
    return CustomerCheckoutFlow(lifecycle, gateway, require_transaction_id=True)


@pytest.fixture
def services(store, lifecycle, gateway, checkout, protocol):
    return OrderDeskServices(
        store=store,
        lifecycle=lifecycle,
        notifications=gateway,
        checkout=checkout,
        protocol=protocol,
    )


@pytest.fixture
def make_order(lifecycle):
    """Factory for persisted orders with sensible defaults"""

    async def _make(
        product_name: str = "Steam Gift Card",
        quantity: int = 1,
        payment_info: str = "USDT (TRC20)",
        transaction_id: Optional[str] = VALID_TXID,
        note: Optional[str] = None,
    ):
        return await lifecycle.create(
            product_name=product_name,
            quantity=quantity,
            payment_info=payment_info,
            transaction_id=transaction_id,
            initial_customer_note=note,
        )

    return _make

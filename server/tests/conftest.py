"""
Shared fixtures: a seeded in-memory store and stand-ins for the Slack sink.

Seed data:
- user 1: customer who placed the orders
- user 2: owner of store 10 (where the orders were placed)
- user 3: owner of store 20
- user 4: another customer
- user 9: admin
"""

import asyncio
from typing import List, Optional

import pytest

from delivery.errors import DeliveryError
from delivery.models import NotificationMessage, OrderStatus, Role
from delivery.storage import MemoryStore


CUSTOMER_ID = 1
STORE_OWNER_ID = 2
OTHER_OWNER_ID = 3
OTHER_CUSTOMER_ID = 4
ADMIN_ID = 9
STORE_ID = 10
OTHER_STORE_ID = 20


class FakeSink:
    """Records messages instead of calling Slack; can be told to fail."""

    def __init__(self, fail: bool = False, fail_times: int = 0):
        self.fail = fail
        self.fail_times = fail_times
        self.attempts = 0
        self.messages: List[NotificationMessage] = []

    async def send_message(self, message: NotificationMessage) -> None:
        self.attempts += 1
        await asyncio.sleep(0)
        if self.fail or self.attempts <= self.fail_times:
            raise DeliveryError("Slack API error: invalid_auth", channel="#orders")
        self.messages.append(message)

    @property
    def texts(self) -> List[str]:
        return [m.text for m in self.messages]


class RecordingNotifier:
    """Notifier stand-in that keeps dispatched messages without scheduling tasks."""

    def __init__(self):
        self.dispatched: List[NotificationMessage] = []

    def dispatch(self, messages):
        self.dispatched.extend(messages)
        return []

    async def drain(self, timeout: Optional[float] = None) -> None:
        return None


def seed_store(store: MemoryStore) -> MemoryStore:
    store.add_user(CUSTOMER_ID, Role.USER)
    store.add_user(STORE_OWNER_ID, Role.OWNER)
    store.add_user(OTHER_OWNER_ID, Role.OWNER)
    store.add_user(OTHER_CUSTOMER_ID, Role.USER)
    store.add_user(ADMIN_ID, Role.ADMIN)
    store.add_store(STORE_ID, owner_id=STORE_OWNER_ID)
    store.add_store(OTHER_STORE_ID, owner_id=OTHER_OWNER_ID)
    return store


@pytest.fixture
def store() -> MemoryStore:
    return seed_store(MemoryStore())


@pytest.fixture
def waiting_order(store):
    return store.add_order(user_id=CUSTOMER_ID, store_id=STORE_ID, status=OrderStatus.WAITING)


@pytest.fixture
def sink() -> FakeSink:
    return FakeSink()


@pytest.fixture
def recording_notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def app_state(store, recording_notifier):
    """Point the app at the seeded store and a recording notifier."""
    from delivery.notifications import set_notifier
    from delivery.storage import set_storage

    set_storage(store)
    set_notifier(recording_notifier)
    yield store, recording_notifier
    set_storage(None)
    set_notifier(None)


def client_with_keys(raw_keys: str = ""):
    """TestClient with DELIVERY_API_KEYS_RAW set to `raw_keys`."""
    import os
    from unittest.mock import patch
    from fastapi.testclient import TestClient

    with patch.dict(os.environ, {"DELIVERY_API_KEYS_RAW": raw_keys}, clear=False):
        from delivery.settings import Settings
        settings = Settings()

        with patch("delivery.main.settings", settings):
            with patch("delivery.auth.settings", settings):
                from delivery.main import app
                yield TestClient(app)

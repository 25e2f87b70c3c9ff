import asyncio
from datetime import datetime

import pytest
from mongomock_motor import AsyncMongoMockClient

from queuease.clock import Clock, FixedClock, set_clock
from queuease.database import Database
from queuease.services.events import event_bus
from queuease.services.ledger import TokenLedger

OPENING = datetime(2026, 10, 19, 9, 0, 0)


@pytest.fixture
def clock():
    fixed = FixedClock(OPENING)
    set_clock(fixed)
    yield fixed
    set_clock(Clock())


@pytest.fixture
async def db(clock):
    client = AsyncMongoMockClient()
    Database.client = client
    Database.db = client["queuease_test"]
    await Database.create_indexes()
    yield Database.db
    Database.client = None
    Database.db = None


@pytest.fixture
def events():
    received = []

    async def record(event):
        received.append(event)

    event_bus.subscribe(record)
    yield received
    event_bus.unsubscribe(record)


def yielding(func):
    async def wrapper(cls, *args, **kwargs):
        await asyncio.sleep(0)
        result = await func(cls, *args, **kwargs)
        await asyncio.sleep(0)
        return result
    return wrapper


@pytest.fixture
def interleaved(monkeypatch):
    """Hand control back to the event loop around every ledger read and write.

    The in-memory client never suspends, so without this gathered
    operations would run one after another.
    """
    for name in (
        "find_for_day", "count_partition", "max_sequence",
        "create", "update", "serving_claim", "claim_serving",
    ):
        original = getattr(TokenLedger, name).__func__
        monkeypatch.setattr(TokenLedger, name, classmethod(yielding(original)))

import os
from datetime import datetime, timedelta, timezone
from uuid import uuid4

# Settings are read at import time
os.environ["ENVIRONMENT"] = "test"
os.environ["USE_ARQ_WORKER"] = "false"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"
os.environ["STRIPE_API_KEY"] = "sk_test_dummy"
os.environ["ADMIN_KEY"] = "test-admin-key"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./unused.db"

import httpx
import pytest
import pytest_asyncio

from screenings.db.session import Database
from screenings.main import create_app
from screenings.schemas.event import EventCreate
from screenings.services.event_service import create_event
from helpers import FakePaymentProcessor


@pytest_asyncio.fixture
async def database(tmp_path):
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'screenings.db'}")
    await db.connect()
    await db.create_all()
    yield db
    await db.disconnect()


@pytest.fixture
def processor():
    return FakePaymentProcessor()


@pytest.fixture
def app(database, processor):
    return create_app(database=database, processor=processor)


@pytest_asyncio.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
def make_event(database):
    async def _make(**overrides):
        data = {
            "title": "Night of the Living Dead",
            "starts_at": datetime.now(timezone.utc) + timedelta(days=7),
            "location": "Screen 1",
        }
        data.update(overrides)
        async with database.session() as db:
            return await create_event(db, EventCreate(**data))

    return _make


@pytest.fixture
def user_id():
    return uuid4()

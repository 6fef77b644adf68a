import itertools
from datetime import datetime, timezone

import httpx
import mongomock
import pytest
from fastapi.testclient import TestClient

from actions import ActionDispatcher
from client import AccountClient, DurableStore, EphemeralStore, LocalCart, SessionContext, StorefrontAPI, SyncEngine
from client.cart import Wishlist
from config import Settings
from database import MemoryBackend, MongoBackend, RecordStore
from main import create_app

API_URL = "http://testserver/api"


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def settings():
    return Settings(
        database_url=None,
        store_timezone="UTC",
        cart_max_bytes=45000,
        user_id_prefix="U",
        order_id_prefix="SJ",
        log_dir=None,
        cors_origins=["*"],
        api_url=API_URL,
    )


@pytest.fixture(params=["memory", "mongodb"])
def store(request):
    """Every store-backed test runs against both backends."""
    if request.param == "mongodb":
        return RecordStore(MongoBackend(mongomock.MongoClient()["storefront_test"]))
    return RecordStore(MemoryBackend())


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 3, 5, 14, 7, 30, tzinfo=timezone.utc))


@pytest.fixture
def dispatcher(store, settings, clock):
    counter = itertools.count(1)
    return ActionDispatcher(store, settings, clock=clock, id_factory=lambda prefix: f"{prefix}{next(counter)}")


@pytest.fixture
def app(store, dispatcher, settings):
    return create_app(store=store, dispatcher=dispatcher, app_settings=settings)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def register(dispatcher):
    def _register(name="Ann Lee", email="ann@example.com", password_hash="hash-1", phone=""):
        result = dispatcher.dispatch({
            "action": "registerUser",
            "name": name,
            "email": email,
            "passwordHash": password_hash,
            "phone": phone,
        })
        assert result["success"], result
        return result["userId"]
    return _register


@pytest.fixture
def account_factory(app, tmp_path):
    """Builds an AccountClient talking to the in-process app."""
    def _make(api_cls=StorefrontAPI, interval=300.0, name="device"):
        durable = DurableStore(tmp_path / name / "state.json")
        session = SessionContext(durable, EphemeralStore())
        cart = LocalCart(durable)
        api = api_cls(API_URL, transport=httpx.ASGITransport(app=app))
        sync = SyncEngine(api, session, cart, interval=interval)
        return AccountClient(api, session, cart, sync, Wishlist(durable))
    return _make

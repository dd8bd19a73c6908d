"""Shared test fixtures and configuration."""

import os

import pytest

# Set up test environment variables before importing modules
os.environ.setdefault("API_KEY", "test_api_key_12345")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("PAGARME_WEBHOOK_SECRET", "pagarme_test_secret")
os.environ.setdefault("SHOPIFY_WEBHOOK_SECRET", "shopify_test_secret")
os.environ.setdefault("WEBHOOK_RATE_LIMIT", "10000/minute")
os.environ.setdefault("OPERATOR_RATE_LIMIT", "10000/minute")

import httpx

from chargeback_recon.config import Settings
from chargeback_recon.connectors import SimulatorOrderLookup, SimulatorGateway
from chargeback_recon.database import Base, create_async_engine, get_async_session_factory, get_db
from chargeback_recon.store import InMemoryEventStore

from helpers import API_KEY, PAGARME_SECRET, SHOPIFY_SECRET, make_order


@pytest.fixture
def settings():
    """Settings with both webhook secrets and auto-reconcile off."""
    return Settings(
        pagarme_webhook_secret=PAGARME_SECRET,
        shopify_webhook_secret=SHOPIFY_SECRET,
        auto_reconcile=False,
    )


@pytest.fixture
def store():
    return InMemoryEventStore(capacity=100)


@pytest.fixture
def orders():
    """Two orders for a@x.com: one within tolerance of 150.00, one far off."""
    return [
        make_order("#1001", "149.00", tracking=True),
        make_order("#1002", "300.00"),
    ]


@pytest.fixture
def lookup(orders):
    return SimulatorOrderLookup(orders)


@pytest.fixture
def gateway():
    return SimulatorGateway()


@pytest.fixture
async def db_engine():
    """Create an in-memory SQLite database for testing."""
    engine = create_async_engine(
        database_url="sqlite+aiosqlite:///:memory:",
        echo=False
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_session(db_engine):
    """Create a database session for testing."""
    session_factory = get_async_session_factory(db_engine)
    async with session_factory() as session:
        yield session


@pytest.fixture
def auth_headers():
    """Return authenticated operator headers."""
    return {"Authorization": f"Bearer {API_KEY}"}


@pytest.fixture
async def client(settings, store, lookup, gateway, db_engine):
    """Async client against the app with every collaborator overridden."""
    from chargeback_recon.api import app
    from chargeback_recon.dependencies import (
        get_settings_dep,
        get_event_store,
        get_order_lookup,
        get_gateway,
    )

    session_factory = get_async_session_factory(db_engine)

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_settings_dep] = lambda: settings
    app.dependency_overrides[get_event_store] = lambda: store
    app.dependency_overrides[get_order_lookup] = lambda: lookup
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_db] = override_get_db

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()

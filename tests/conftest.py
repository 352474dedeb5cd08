"""Pytest configuration and fixtures."""

import os

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

# Set test environment variables before importing app modules
os.environ.setdefault("PASSWORD_HASH_ITERATIONS", "1000")
os.environ.setdefault("TOKEN_SECRET", "test-secret")

from stock_service.catalog import ItemCatalog
from stock_service.database import create_engine_and_session_factory, create_tables
from stock_service.directory import PrincipalDirectory
from stock_service.ledger import TransactionLedger
from stock_service.main import create_app
from stock_service.reporting import StatsReporter
from stock_service.security import TokenSigner
from stock_service.stock import StockCoordinator


@pytest.fixture
def database_url(tmp_path):
    """Fresh SQLite file per test."""
    return f"sqlite+aiosqlite:///{tmp_path / 'stock_test.db'}"


@pytest.fixture
def signer():
    return TokenSigner("test-secret", ttl_seconds=24 * 3600)


@pytest_asyncio.fixture
async def session_factory(database_url):
    engine, factory = create_engine_and_session_factory(database_url)
    await create_tables(engine)
    yield factory
    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def ledger(db):
    return TransactionLedger(db)


@pytest.fixture
def directory(db, signer):
    return PrincipalDirectory(db, signer)


@pytest.fixture
def catalog(db, ledger):
    return ItemCatalog(db, ledger)


@pytest.fixture
def coordinator(db, ledger):
    return StockCoordinator(db, ledger)


@pytest.fixture
def reporter(db):
    return StatsReporter(db)


@pytest_asyncio.fixture
async def alice_id(directory):
    return await directory.register("alice", "a@x.com", "pw")


@pytest_asyncio.fixture
async def bob_id(directory):
    return await directory.register("bob", "b@x.com", "pw")


@pytest.fixture
def client(database_url):
    """TestClient running the app lifespan (table creation) against a temp database."""
    app = create_app(database_url=database_url, token_secret="test-secret")
    with TestClient(app) as test_client:
        yield test_client


def register_and_login(client: TestClient, username: str = "alice", email: str = "a@x.com", password: str = "pw") -> dict:
    """Returns Authorization headers for a freshly registered user."""
    response = client.post("/api/auth/register", json={"username": username, "email": email, "password": password})
    assert response.status_code == 201
    response = client.post("/api/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['token']}"}


@pytest.fixture
def auth_headers(client):
    return register_and_login(client)

"""Shared pytest fixtures for chatmigrate tests."""

import pytest
from httpx import ASGITransport, AsyncClient

from chatmigrate.db.connection import Database
from chatmigrate.importer.router import get_import_service
from chatmigrate.importer.service import ImportService
from chatmigrate.main import app
from chatmigrate.upload.cache import ConversationListCache
from chatmigrate.upload.store import ImportSessionStore
from tests.fixtures import FakeSleep, ScriptedDestinationClient


@pytest.fixture
async def db():
    """In-memory database for tests."""
    database = await Database.connect(":memory:")
    yield database
    await database.close()


@pytest.fixture
def destination():
    """Scripted destination server with no existing conversations."""
    return ScriptedDestinationClient()


@pytest.fixture
def fake_sleep():
    return FakeSleep()


@pytest.fixture
async def cache(db, destination):
    return ConversationListCache(db, destination)


@pytest.fixture
async def session_store(db):
    return ImportSessionStore(db)


@pytest.fixture
async def import_service(destination, cache, session_store, fake_sleep):
    service = ImportService(destination, cache, session_store, sleep=fake_sleep)
    yield service
    await service.close()


@pytest.fixture
async def client(import_service):
    """Async test client with the import service wired into the app."""
    app.dependency_overrides[get_import_service] = lambda: import_service
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client
    app.dependency_overrides.clear()

"""Chatmigrate FastAPI application entry point."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import httpx
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from chatmigrate.config import ImportSettings
from chatmigrate.db.connection import Database
from chatmigrate.importer.router import get_import_service
from chatmigrate.importer.router import router as import_router
from chatmigrate.importer.service import ImportService
from chatmigrate.upload.cache import ConversationListCache
from chatmigrate.upload.errors import UploadError
from chatmigrate.upload.http_client import HttpDestinationClient
from chatmigrate.upload.store import ImportSessionStore

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage database and destination client lifecycle and service wiring."""
    # Load .env from backend/ directory (tokens stay out of shell profile)
    load_dotenv(Path(__file__).resolve().parent.parent / ".env")
    settings = ImportSettings.from_env()

    db = await Database.connect(settings.database_path)

    headers = {"Authorization": f"Bearer {settings.api_token}"} if settings.api_token else None
    http = httpx.AsyncClient(
        base_url=settings.destination_url,
        headers=headers,
        timeout=settings.request_timeout,
    )
    client = HttpDestinationClient(http)

    # Size limit is advertised once by the destination; no limit if unreachable
    max_file_size = None
    try:
        startup = await client.fetch_startup_config()
        max_file_size = startup.conversation_import_max_file_size
    except UploadError as e:
        logger.warning("Could not fetch destination startup config: %s", e)

    cache = ConversationListCache(db, client)
    store = ImportSessionStore(db)
    import_svc = ImportService(
        client,
        cache,
        store,
        max_file_size=max_file_size,
        chunk_threshold=settings.chunk_threshold,
        poll_interval=settings.poll_interval,
        poll_max_attempts=settings.poll_max_attempts,
        idle_ttl=settings.session_idle_ttl,
    )
    app.dependency_overrides[get_import_service] = lambda: import_svc

    app.state.db = db
    app.state.settings = settings
    yield

    await import_svc.close()
    await http.aclose()
    await db.close()


app = FastAPI(
    title="Chatmigrate",
    description=(
        "Preview, select and upload conversation exports from LibreChat,"
        " ChatGPT and Claude into a chat server"
    ),
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(import_router)


@app.get("/api/health")
async def health() -> dict:
    return {"status": "ok", "version": "0.1.0"}

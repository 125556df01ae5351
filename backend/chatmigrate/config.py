"""Runtime settings, read from the environment (.env is loaded at startup)."""

import os

from pydantic import BaseModel

from chatmigrate.importer.chunker import DEFAULT_CHUNK_THRESHOLD
from chatmigrate.importer.service import DEFAULT_IDLE_TTL
from chatmigrate.upload.polling import DEFAULT_MAX_POLL_ATTEMPTS, DEFAULT_POLL_INTERVAL


class ImportSettings(BaseModel):
    destination_url: str = "http://localhost:3080"
    api_token: str | None = None
    database_path: str = "chatmigrate.db"
    chunk_threshold: int = DEFAULT_CHUNK_THRESHOLD
    poll_interval: float = DEFAULT_POLL_INTERVAL
    poll_max_attempts: int = DEFAULT_MAX_POLL_ATTEMPTS
    request_timeout: float = 300.0
    session_idle_ttl: float = DEFAULT_IDLE_TTL

    @classmethod
    def from_env(cls) -> "ImportSettings":
        """Build settings from CHATMIGRATE_* variables; unset ones keep defaults."""
        fields = {
            "destination_url": "CHATMIGRATE_DESTINATION_URL",
            "api_token": "CHATMIGRATE_API_TOKEN",
            "database_path": "CHATMIGRATE_DATABASE_PATH",
            "chunk_threshold": "CHATMIGRATE_CHUNK_THRESHOLD",
            "poll_interval": "CHATMIGRATE_POLL_INTERVAL",
            "poll_max_attempts": "CHATMIGRATE_POLL_MAX_ATTEMPTS",
            "request_timeout": "CHATMIGRATE_REQUEST_TIMEOUT",
            "session_idle_ttl": "CHATMIGRATE_SESSION_IDLE_TTL",
        }
        values = {
            name: os.environ[var] for name, var in fields.items() if os.environ.get(var)
        }
        return cls.model_validate(values)

"""Persistence of upload session snapshots."""

import json
from datetime import UTC, datetime

from chatmigrate.db.connection import Database
from chatmigrate.upload.client import ItemImportResult
from chatmigrate.upload.state import UploadSession, UploadStatus
from chatmigrate.utils.json import json_list


class ImportSessionStore:
    def __init__(self, db: Database) -> None:
        self._db = db

    async def save(self, session_id: str, session: UploadSession) -> None:
        """Upsert the latest snapshot for a session."""
        now = datetime.now(UTC).isoformat()
        failed = json.dumps([item.model_dump(by_alias=True) for item in session.failed_items])
        await self._db.execute(
            """
            INSERT INTO import_sessions (
                session_id, file_name, status, total_chunks, current_chunk,
                poll_attempt, message, warning, error, error_kind, confirmed,
                imported_count, failed_items, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(session_id) DO UPDATE SET
                file_name = excluded.file_name,
                status = excluded.status,
                total_chunks = excluded.total_chunks,
                current_chunk = excluded.current_chunk,
                poll_attempt = excluded.poll_attempt,
                message = excluded.message,
                warning = excluded.warning,
                error = excluded.error,
                error_kind = excluded.error_kind,
                confirmed = excluded.confirmed,
                imported_count = excluded.imported_count,
                failed_items = excluded.failed_items,
                updated_at = excluded.updated_at
            """,
            (
                session_id,
                session.file_name,
                session.status.value,
                session.total_chunks,
                session.current_chunk,
                session.poll_attempt,
                session.message,
                session.warning,
                session.error,
                session.error_kind,
                int(session.confirmed),
                session.imported_count,
                failed,
                now,
                now,
            ),
        )

    async def get(self, session_id: str) -> UploadSession | None:
        row = await self._db.fetchone(
            "SELECT * FROM import_sessions WHERE session_id = ?", (session_id,)
        )
        if row is None:
            return None
        return UploadSession(
            file_name=row["file_name"],
            status=UploadStatus(row["status"]),
            total_chunks=row["total_chunks"],
            current_chunk=row["current_chunk"],
            poll_attempt=row["poll_attempt"],
            message=row["message"],
            warning=row["warning"],
            error=row["error"],
            error_kind=row["error_kind"],
            confirmed=bool(row["confirmed"]),
            imported_count=row["imported_count"],
            failed_items=tuple(
                ItemImportResult.model_validate(item) for item in json_list(row["failed_items"])
            ),
        )

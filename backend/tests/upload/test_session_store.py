"""Tests for persisted upload session snapshots."""

from chatmigrate.upload.client import ItemImportResult
from chatmigrate.upload.state import UploadSession, UploadStatus


class TestImportSessionStore:
    async def test_unknown_session(self, session_store):
        assert await session_store.get("missing") is None

    async def test_roundtrip(self, session_store):
        session = UploadSession(
            file_name="conversations.json",
            status=UploadStatus.COMPLETE,
            total_chunks=3,
            current_chunk=3,
            poll_attempt=2,
            message="done",
            confirmed=True,
            imported_count=4,
            failed_items=(
                ItemImportResult(index=2, conversation_id="c2", title="Two", error="bad"),
            ),
        )
        await session_store.save("s1", session)
        loaded = await session_store.get("s1")
        assert loaded == session

    async def test_save_overwrites(self, session_store):
        await session_store.save("s1", UploadSession(file_name="a.json", status=UploadStatus.UPLOADING))
        await session_store.save("s1", UploadSession(file_name="a.json", status=UploadStatus.ERROR, error="x"))
        loaded = await session_store.get("s1")
        assert loaded.status == UploadStatus.ERROR
        assert loaded.error == "x"

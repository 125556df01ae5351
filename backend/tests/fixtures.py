"""Shared test helpers: export builders and scripted collaborators."""

import asyncio
from typing import Any

from chatmigrate.upload.client import (
    DestinationClient,
    SelectiveImportResponse,
    StartupConfig,
    UploadResponse,
)


# ---------------------------------------------------------------------------
# Export builders
# ---------------------------------------------------------------------------

def make_chatgpt_conversation(
    conv_id: str = "conv-1",
    title: str | None = "Test Conversation",
    user_text: str = "What is Python?",
    model_slug: str | None = "gpt-4o",
    create_time: float | None = 1705276800.0,
) -> dict:
    """ChatGPT export entry: system, user and assistant nodes plus a structural root."""
    assistant_metadata = {"model_slug": model_slug} if model_slug else {}
    return {
        "id": conv_id,
        "title": title,
        "create_time": create_time,
        "mapping": {
            "root": {"id": "root", "message": None, "parent": None, "children": ["sys"]},
            "sys": {
                "id": "sys",
                "message": {
                    "author": {"role": "system"},
                    "content": {"parts": ["You are helpful."]},
                    "metadata": {},
                },
            },
            "u1": {
                "id": "u1",
                "message": {
                    "author": {"role": "user"},
                    "content": {"parts": [user_text]},
                    "metadata": {},
                },
            },
            "a1": {
                "id": "a1",
                "message": {
                    "author": {"role": "assistant"},
                    "content": {"parts": ["A programming language."]},
                    "metadata": assistant_metadata,
                },
            },
        },
    }


def make_claude_conversation(
    uuid: str = "claude-uuid-1",
    name: str | None = "Claude Chat",
    text: str = "Hello Claude",
    created_at: str = "2024-01-15T10:00:00.000000Z",
) -> dict:
    return {
        "uuid": uuid,
        "name": name,
        "created_at": created_at,
        "chat_messages": [
            {
                "sender": "human",
                "text": "",
                "content": [{"type": "text", "text": text}],
            },
            {
                "sender": "assistant",
                "text": "Hi there",
                "content": [{"type": "text", "text": "Hi there"}],
            },
        ],
    }


def make_librechat_export(
    conversation_id: str = "lc-conv-1",
    title: str = "LibreChat Conversation",
    messages: list[dict] | None = None,
    endpoint: str | None = "openAI",
) -> dict:
    if messages is None:
        messages = [
            {
                "messageId": "m1",
                "isCreatedByUser": True,
                "text": "First question",
                "createdAt": "2024-02-01T12:00:00.000Z",
            },
            {"messageId": "m2", "isCreatedByUser": False, "text": "An answer"},
        ]
    data = {
        "conversationId": conversation_id,
        "title": title,
        "messages": messages,
    }
    if endpoint:
        data["endpoint"] = endpoint
    return data


def make_conversation_items(count: int, title_length: int = 30) -> list[dict]:
    """Small uniform items for chunking tests."""
    return [{"id": f"conv-{i:02d}", "title": "x" * title_length} for i in range(count)]


# ---------------------------------------------------------------------------
# Scripted collaborators
# ---------------------------------------------------------------------------

class ScriptedDestinationClient(DestinationClient):
    """In-memory destination that replays queued responses and records calls.

    Queued entries that are exceptions are raised instead of returned. Once a
    queue is empty every call succeeds with a plain success message.
    `ids_after_list` maps a 1-based listing call number to ids that appear at
    the destination from that call on.
    """

    def __init__(
        self,
        *,
        existing_ids: set[str] | None = None,
        upload_results: list[Any] | None = None,
        import_results: list[Any] | None = None,
        max_file_size: int | None = None,
    ) -> None:
        self.existing_ids: set[str] = set(existing_ids or ())
        self.upload_results = list(upload_results or [])
        self.import_results = list(import_results or [])
        self.max_file_size = max_file_size
        self.ids_after_list: dict[int, set[str]] = {}
        self.uploads: list[tuple[str, bytes]] = []
        self.imports: list[list[Any]] = []
        self.list_calls = 0

    async def upload_file(self, file_name: str, content: bytes) -> UploadResponse:
        self.uploads.append((file_name, content))
        return _next(self.upload_results, UploadResponse(message="Import successful"))

    async def import_conversations(self, conversations: list[Any]) -> SelectiveImportResponse:
        self.imports.append(list(conversations))
        default = SelectiveImportResponse(
            message="Import successful",
            success=[
                {"index": i, "conversationId": f"imported-{i}", "title": ""}
                for i in range(len(conversations))
            ],
        )
        return _next(self.import_results, default)

    async def list_conversation_ids(self) -> set[str]:
        self.list_calls += 1
        self.existing_ids |= self.ids_after_list.pop(self.list_calls, set())
        return set(self.existing_ids)

    async def fetch_startup_config(self) -> StartupConfig:
        return StartupConfig(conversation_import_max_file_size=self.max_file_size)


def _next(queue: list[Any], default: Any) -> Any:
    if not queue:
        return default
    result = queue.pop(0)
    if isinstance(result, Exception):
        raise result
    return result


class FakeSleep:
    """Records requested delays and yields to the loop instead of waiting."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        await asyncio.sleep(0)


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

"""Pydantic schemas for the import API."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel

from chatmigrate.importer.models import ConversationPreview
from chatmigrate.upload.client import ItemImportResult


class ConversationPreviewSchema(BaseModel):
    id: str
    conversation_id: str
    title: str
    created_at: datetime
    model: str
    message_count: int
    first_message_preview: str
    is_duplicate: bool

    @classmethod
    def from_preview(cls, preview: ConversationPreview) -> "ConversationPreviewSchema":
        return cls(
            id=preview.id,
            conversation_id=preview.conversation_id,
            title=preview.title,
            created_at=preview.created_at,
            model=preview.model,
            message_count=preview.message_count,
            first_message_preview=preview.first_message_preview,
            is_duplicate=preview.is_duplicate,
        )


class ImportPreviewResponse(BaseModel):
    session_id: str
    format: Literal["librechat", "chatgpt", "claude"]
    total_count: int
    duplicate_count: int
    importable_count: int
    conversations: list[ConversationPreviewSchema]


class ModeRequest(BaseModel):
    mode: Literal["full", "batch", "selective"]
    start: int | None = None
    end: int | None = None


class ToggleRequest(BaseModel):
    preview_id: str


class VisibleSelectionRequest(BaseModel):
    query: str = ""
    date_filter: Literal["all", "7days", "30days"] = "all"


class UploadStatusResponse(BaseModel):
    session_id: str
    file_name: str
    status: Literal["idle", "uploading", "polling", "complete", "error"]
    is_polling: bool
    total_chunks: int | None
    current_chunk: int | None
    poll_attempt: int
    max_poll_attempts: int
    progress: int
    show_progress: bool
    confirmed: bool
    message: str | None
    warning: str | None
    error: str | None
    error_kind: str | None
    imported_count: int | None
    failed_items: list[ItemImportResult]


class FlowResponse(BaseModel):
    session_id: str
    step: str
    mode: Literal["full", "batch", "selective"] | None
    selected_ids: list[str]
    selected_count: int
    max_selection: int
    warning: str | None = None
    upload: UploadStatusResponse | None = None

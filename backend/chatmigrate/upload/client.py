"""Destination client interface and wire types.

The orchestrator, the conversation cache and the import service only see
DestinationClient; HttpDestinationClient is the production implementation.
"""

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

PROCESSING_MARKER = "processing"


def is_processing_message(message: str | None) -> bool:
    """Whether a server message means the import continues in the background."""
    if not message:
        return False
    return PROCESSING_MARKER in message.strip().lower()


class UploadResponse(BaseModel):
    """Reply to a single file or chunk upload."""

    status_code: int = 200
    message: str | None = None

    @property
    def is_processing(self) -> bool:
        return is_processing_message(self.message)


class ItemImportResult(BaseModel):
    """Outcome for one conversation of a selective import."""

    model_config = ConfigDict(populate_by_name=True)

    index: int
    conversation_id: str = Field(alias="conversationId")
    title: str = ""
    error: str | None = None


class SelectiveImportResponse(BaseModel):
    message: str | None = None
    success: list[ItemImportResult] = Field(default_factory=list)
    failed: list[ItemImportResult] = Field(default_factory=list)

    @property
    def is_processing(self) -> bool:
        return is_processing_message(self.message)


class StartupConfig(BaseModel):
    """The parts of the destination's startup configuration the importer reads."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    conversation_import_max_file_size: int | None = Field(
        default=None, alias="conversationImportMaxFileSize"
    )


class DestinationClient(ABC):
    """Capabilities the import pipeline needs from the destination server."""

    @abstractmethod
    async def upload_file(self, file_name: str, content: bytes) -> UploadResponse:
        """Send one file (or chunk) as a multipart `file` field.

        Raises TransientNetworkError, UnsupportedImportTypeError or
        UploadRejectedError.
        """
        ...

    @abstractmethod
    async def import_conversations(self, conversations: list[Any]) -> SelectiveImportResponse:
        """Send raw conversation objects for a curated import."""
        ...

    @abstractmethod
    async def list_conversation_ids(self) -> set[str]:
        """All conversation ids that already exist at the destination."""
        ...

    @abstractmethod
    async def fetch_startup_config(self) -> StartupConfig:
        ...

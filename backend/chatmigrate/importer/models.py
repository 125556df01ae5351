"""Intermediate representation for parsed export files.

Every extractor produces ConversationPreview objects, which the selection
flow and the upload orchestrator consume. The raw source object rides along
untouched so a curated subset can be uploaded without re-reading the file.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

ImportFormat = Literal["librechat", "chatgpt", "claude"]

PREVIEW_TEXT_LIMIT = 100
UNTITLED = "Untitled Conversation"


@dataclass(frozen=True)
class ConversationPreview:
    """Lightweight summary of one source conversation."""

    id: str  # "<format>-<index>", local sequence key
    conversation_id: str  # source-native id, used for duplicate detection
    title: str
    created_at: datetime
    model: str
    message_count: int
    first_message_preview: str
    is_duplicate: bool = False
    raw_data: Any = field(default=None, repr=False, compare=False)


@dataclass(frozen=True)
class ParseResult:
    format: ImportFormat
    conversations: list[ConversationPreview]
    total_count: int

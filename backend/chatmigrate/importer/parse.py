"""Top-level entry point: raw export file text to conversation previews."""

import json
import logging

from chatmigrate.importer.models import ConversationPreview, ParseResult
from chatmigrate.importer.parsers.chatgpt import parse_chatgpt
from chatmigrate.importer.parsers.claude import parse_claude
from chatmigrate.importer.parsers.detection import (
    InvalidJsonError,
    UnsupportedFormatError,
    detect_format,
)
from chatmigrate.importer.parsers.librechat import parse_librechat

logger = logging.getLogger(__name__)

_TEXT_FIELDS = ("conversation_id", "title", "model", "first_message_preview")


def _check_preview(preview: ConversationPreview) -> None:
    for field in _TEXT_FIELDS:
        if not isinstance(getattr(preview, field), str):
            raise UnsupportedFormatError(
                f"Conversation {preview.id} has a malformed {field}"
            )


def parse_import_file(json_string: str | bytes) -> ParseResult:
    """Parse an export file and build one preview per conversation.

    Raises InvalidJsonError for malformed input and UnsupportedFormatError
    for JSON that matches no known export schema, including a recognised
    export with a malformed entry.
    """
    try:
        data = json.loads(json_string)
    except ValueError as e:
        raise InvalidJsonError("Invalid JSON file") from e

    fmt = detect_format(data)
    conversations: list[ConversationPreview]
    try:
        if fmt == "chatgpt":
            conversations = parse_chatgpt(data)
        elif fmt == "claude":
            conversations = parse_claude(data)
        else:
            conversations = parse_librechat(data)
    except (AttributeError, KeyError, TypeError) as e:
        logger.warning("Malformed %s export: %s", fmt, e)
        raise UnsupportedFormatError(f"Malformed {fmt} export") from e

    for preview in conversations:
        _check_preview(preview)

    return ParseResult(
        format=fmt,
        conversations=conversations,
        total_count=len(conversations),
    )

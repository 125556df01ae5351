"""Auto-detect import format from parsed JSON data."""

from typing import Any

from chatmigrate.importer.models import ImportFormat


class ImportFormatError(Exception):
    """Raised when an import file cannot be read as a supported export."""


class InvalidJsonError(ImportFormatError):
    """The file is not valid JSON."""


class UnsupportedFormatError(ImportFormatError):
    """The file is valid JSON but matches none of the known export schemas."""


def detect_format(data: Any) -> ImportFormat:
    """Detect import format from parsed JSON structure.

    Returns "librechat", "chatgpt", or "claude".
    Raises UnsupportedFormatError for anything else.
    """
    # LibreChat exports one conversation per file
    if (
        isinstance(data, dict)
        and "conversationId" in data
        and ("messages" in data or "messagesTree" in data)
    ):
        return "librechat"

    if isinstance(data, list) and len(data) > 0:
        first = data[0]
        if isinstance(first, dict):
            if "mapping" in first:
                return "chatgpt"
            if "chat_messages" in first:
                return "claude"

    raise UnsupportedFormatError("Unsupported import format")

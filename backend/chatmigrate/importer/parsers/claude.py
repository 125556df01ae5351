"""Preview extractor for Claude.ai conversation exports.

Claude.ai's export is an array of conversations with a `chat_messages` list.
Message content is an array of typed blocks (text, tool_use, ...); older
exports put the text in a flat `text` field instead.
"""

from datetime import UTC, datetime
from typing import Any

from chatmigrate.importer.models import PREVIEW_TEXT_LIMIT, UNTITLED, ConversationPreview
from chatmigrate.utils.timestamps import parse_iso_timestamp

DEFAULT_MODEL = "claude"


def _message_text(message: dict) -> str:
    """Text of the first text block, falling back to the flat text field."""
    for block in message.get("content") or []:
        if isinstance(block, dict) and block.get("type") == "text":
            text = block.get("text")
            if text:
                return text
            break
    return message.get("text") or ""


def _parse_single(conv: dict, index: int) -> ConversationPreview:
    messages = conv.get("chat_messages") or []
    first_human = next(
        (m for m in messages if isinstance(m, dict) and m.get("sender") == "human"),
        None,
    )
    preview = _message_text(first_human) if first_human else ""

    return ConversationPreview(
        id=f"claude-{index}",
        conversation_id=conv.get("uuid") or f"unknown-{index}",
        title=conv.get("name") or UNTITLED,
        created_at=parse_iso_timestamp(conv.get("created_at")) or datetime.now(UTC),
        model=DEFAULT_MODEL,
        message_count=len(messages),
        first_message_preview=preview[:PREVIEW_TEXT_LIMIT],
        raw_data=conv,
    )


def parse_claude(data: list[Any]) -> list[ConversationPreview]:
    """Build one preview per conversation in a Claude.ai export array."""
    return [_parse_single(conv, i) for i, conv in enumerate(data)]

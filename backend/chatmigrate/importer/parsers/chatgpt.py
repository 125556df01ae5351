"""Preview extractor for ChatGPT conversations.json exports.

ChatGPT's export is an array of conversations, each holding a `mapping` dict
of tree nodes. Structural nodes carry `message: null`; only nodes with a
message and a non-system author count as messages.
"""

import json
from datetime import UTC, datetime
from typing import Any

from chatmigrate.importer.models import PREVIEW_TEXT_LIMIT, UNTITLED, ConversationPreview
from chatmigrate.utils.timestamps import from_epoch_seconds

DEFAULT_MODEL = "gpt-3.5-turbo"


def _messages(mapping: dict) -> list[dict]:
    """Message objects of all non-structural nodes, in mapping order."""
    result = []
    for entry in mapping.values():
        if not isinstance(entry, dict):
            continue
        message = entry.get("message")
        if isinstance(message, dict):
            result.append(message)
    return result


def _role(message: dict) -> str | None:
    author = message.get("author") or {}
    return author.get("role")


def _extract_model(messages: list[dict]) -> str:
    for message in messages:
        slug = (message.get("metadata") or {}).get("model_slug")
        if slug:
            return slug
    return DEFAULT_MODEL


def _first_user_text(messages: list[dict]) -> str:
    """First content part of the first user message that has one."""
    for message in messages:
        if _role(message) != "user":
            continue
        parts = (message.get("content") or {}).get("parts")
        if isinstance(parts, list) and parts:
            first = parts[0]
            text = first if isinstance(first, str) else json.dumps(first)
            return text[:PREVIEW_TEXT_LIMIT]
    return ""


def _parse_single(conv: dict, index: int) -> ConversationPreview:
    mapping = conv.get("mapping") or {}
    messages = _messages(mapping)

    return ConversationPreview(
        id=f"chatgpt-{index}",
        conversation_id=conv.get("id") or conv.get("conversation_id") or f"unknown-{index}",
        title=conv.get("title") or UNTITLED,
        created_at=from_epoch_seconds(conv.get("create_time")) or datetime.now(UTC),
        model=_extract_model(messages),
        message_count=sum(1 for m in messages if _role(m) != "system"),
        first_message_preview=_first_user_text(messages),
        raw_data=conv,
    )


def parse_chatgpt(data: list[Any]) -> list[ConversationPreview]:
    """Build one preview per conversation in a ChatGPT export array."""
    return [_parse_single(conv, i) for i, conv in enumerate(data)]

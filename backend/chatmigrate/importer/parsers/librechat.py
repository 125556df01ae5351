"""Preview extractor for LibreChat's own single-conversation export."""

from datetime import UTC, datetime

from chatmigrate.importer.models import PREVIEW_TEXT_LIMIT, UNTITLED, ConversationPreview
from chatmigrate.utils.timestamps import parse_iso_timestamp


def parse_librechat(data: dict) -> list[ConversationPreview]:
    """Build the single preview of a LibreChat export object.

    `messagesTree` wins over `messages` whenever it is present.
    """
    messages = data.get("messagesTree")
    if messages is None:
        messages = data.get("messages") or []
    first_user = next(
        (m for m in messages if isinstance(m, dict) and m.get("isCreatedByUser")),
        None,
    )

    created_at = None
    preview = ""
    if first_user is not None:
        created_at = parse_iso_timestamp(first_user.get("createdAt"))
        preview = (first_user.get("text") or "")[:PREVIEW_TEXT_LIMIT]

    return [
        ConversationPreview(
            id="librechat-0",
            conversation_id=str(data["conversationId"]),
            title=data.get("title") or UNTITLED,
            created_at=created_at or datetime.now(UTC),
            model=data.get("endpoint") or data.get("model") or "unknown",
            message_count=len(messages),
            first_message_preview=preview,
            raw_data=data,
        )
    ]

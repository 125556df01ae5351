"""Duplicate marking against the destination's existing conversation ids."""

from collections.abc import Collection, Iterable
from dataclasses import replace

from chatmigrate.importer.models import ConversationPreview


def mark_duplicates(
    previews: list[ConversationPreview], existing_ids: Collection[str]
) -> list[ConversationPreview]:
    """Return new previews with is_duplicate set from existing_ids membership."""
    return [
        replace(preview, is_duplicate=preview.conversation_id in existing_ids)
        for preview in previews
    ]


def count_duplicates(previews: Iterable[ConversationPreview]) -> int:
    return sum(1 for p in previews if p.is_duplicate)

"""Local cache of the destination's conversation ids.

Used for duplicate marking and for confirming that a polled import landed.
invalidate() only flips a generation counter, so it never blocks and any
number of invalidations collapse into a single refetch on the next read.
Concurrent reads during a refetch share the same in-flight fetch.
"""

import asyncio
import logging
from datetime import UTC, datetime

from chatmigrate.db.connection import Database
from chatmigrate.upload.client import DestinationClient

logger = logging.getLogger(__name__)


class ConversationListCache:
    def __init__(self, db: Database, client: DestinationClient) -> None:
        self._db = db
        self._client = client
        self._generation = 1
        self._fresh_generation = 0
        self._refresh_task: asyncio.Task[None] | None = None

    @property
    def stale(self) -> bool:
        return self._fresh_generation != self._generation

    def invalidate(self) -> None:
        """Mark the cached list out of date. Idempotent."""
        self._generation += 1

    async def existing_ids(self) -> set[str]:
        """Conversation ids at the destination, refetching if invalidated."""
        if self.stale:
            await self._refresh()
        rows = await self._db.fetchall("SELECT conversation_id FROM known_conversations")
        return {row["conversation_id"] for row in rows}

    async def _refresh(self) -> None:
        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.create_task(self._fetch_and_store())
        await asyncio.shield(self._refresh_task)

    async def _fetch_and_store(self) -> None:
        generation = self._generation
        ids = await self._client.list_conversation_ids()
        fetched_at = datetime.now(UTC).isoformat()
        await self._db.replace_rows(
            "DELETE FROM known_conversations",
            "INSERT INTO known_conversations (conversation_id, fetched_at) VALUES (?, ?)",
            [(conversation_id, fetched_at) for conversation_id in sorted(ids)],
        )
        # An invalidation that arrived mid-fetch keeps the cache stale.
        self._fresh_generation = generation
        logger.debug("Cached %d destination conversation ids", len(ids))

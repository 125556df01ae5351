"""Tests for the destination conversation id cache."""

import asyncio

from chatmigrate.upload.cache import ConversationListCache
from tests.fixtures import ScriptedDestinationClient


class TestConversationListCache:
    async def test_first_read_fetches_and_persists(self, db):
        destination = ScriptedDestinationClient(existing_ids={"a", "b"})
        cache = ConversationListCache(db, destination)
        assert cache.stale
        assert await cache.existing_ids() == {"a", "b"}
        assert not cache.stale

        rows = await db.fetchall("SELECT conversation_id FROM known_conversations")
        assert {row["conversation_id"] for row in rows} == {"a", "b"}

    async def test_fresh_cache_does_not_refetch(self, cache, destination):
        await cache.existing_ids()
        await cache.existing_ids()
        assert destination.list_calls == 1

    async def test_invalidations_coalesce_into_one_refetch(self, cache, destination):
        await cache.existing_ids()
        cache.invalidate()
        cache.invalidate()
        cache.invalidate()
        destination.existing_ids.add("new")
        assert await cache.existing_ids() == {"new"}
        assert destination.list_calls == 2

    async def test_concurrent_reads_share_one_fetch(self, cache, destination):
        first, second = await asyncio.gather(cache.existing_ids(), cache.existing_ids())
        assert first == second == set()
        assert destination.list_calls == 1

    async def test_refetch_replaces_rows(self, cache, destination):
        destination.existing_ids = {"a", "b"}
        await cache.existing_ids()
        destination.existing_ids = {"c"}
        cache.invalidate()
        assert await cache.existing_ids() == {"c"}

    async def test_invalidation_during_fetch_keeps_cache_stale(self, db):
        class InvalidatingDestination(ScriptedDestinationClient):
            async def list_conversation_ids(self):
                cache.invalidate()
                return await super().list_conversation_ids()

        cache = ConversationListCache(db, InvalidatingDestination())
        await cache.existing_ids()
        assert cache.stale

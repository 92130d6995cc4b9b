"""
Tests for schema setup, category seeding and the category cache.
"""

import asyncio

import pytest

from feedpipe.core.categories import DEFAULT_CATEGORIES, iter_category_rows
from feedpipe.models.database import Database
from feedpipe.services.classifier import CategoryCache
from feedpipe.services.ingestion.base import StoreUnavailableError
from feedpipe.services.stores import CategoryStore


class TestDatabase:

    def test_seeding_is_idempotent_and_ordered(self, database_url):
        async def scenario():
            database = Database(database_url)
            try:
                await database.create_tables()
                first = await database.seed_categories(iter_category_rows())
                second = await database.seed_categories(iter_category_rows())
                rows = await CategoryStore(database).list()
                return first, second, rows
            finally:
                await database.dispose()

        first, second, rows = asyncio.run(scenario())

        assert first == len(DEFAULT_CATEGORIES)
        assert second == 0
        assert [row.id for row in rows] == [c.id for c in DEFAULT_CATEGORIES]
        assert "general" in {row.id for row in rows}

    def test_store_errors_after_drop(self, database_url):
        async def scenario():
            database = Database(database_url)
            try:
                await database.create_tables()
                await database.drop_tables()
                await CategoryStore(database).list()
            finally:
                await database.dispose()

        with pytest.raises(StoreUnavailableError):
            asyncio.run(scenario())


class TestCategoryCache:

    def test_reloads_after_ttl_and_invalidate(self, database_url):
        now = [0.0]

        async def scenario():
            database = Database(database_url)
            try:
                await database.create_tables()
                store = CategoryStore(database)
                cache = CategoryCache(store, ttl_seconds=60, clock=lambda: now[0])

                empty = await cache.get()
                await database.seed_categories(iter_category_rows())
                still_cached = await cache.get()
                now[0] = 61.0
                reloaded = await cache.get()
                cache.invalidate()
                again = await cache.known_ids()
                return empty, still_cached, reloaded, again
            finally:
                await database.dispose()

        empty, still_cached, reloaded, again = asyncio.run(scenario())

        assert empty == {}
        assert still_cached == {}
        assert len(reloaded) == len(DEFAULT_CATEGORIES)
        assert "sports_athletics" in again

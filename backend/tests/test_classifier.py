"""
Tests for the keyword classifier and the category cache.
"""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock

from feedpipe.core.categories import DEFAULT_CATEGORIES, GENERAL_CATEGORY_ID
from feedpipe.services.classifier import CategoryCache, KeywordCategoryClassifier


CATEGORIES = {
    "all": ["news"],
    "general": ["news", "zimbabwe"],
    "politics_governance": ["parliament", "mdc", "election"],
    "sports_athletics": ["warriors", "football", "cup"],
}


class TestKeywordCategoryClassifier:
    """Tests for keyword scoring."""

    def setup_method(self):
        self.classifier = KeywordCategoryClassifier(CATEGORIES)

    def test_best_scoring_category_wins(self):
        category = self.classifier.classify(
            "Warriors qualify for the cup",
            "Football fans celebrate in Harare",
        )
        assert category == "sports_athletics"

    def test_long_keywords_weigh_more(self):
        # "parliament" (2) beats "cup" (1)
        assert self.classifier.classify("Parliament debates cup final", None) == "politics_governance"

    def test_ties_keep_the_earlier_category(self):
        # "mdc" (1) vs "cup" (1)
        assert self.classifier.classify("MDC cup", "") == "politics_governance"

    def test_general_and_all_are_never_matched(self):
        assert self.classifier.classify("Zimbabwe news today", None) == GENERAL_CATEGORY_ID

    def test_custom_fallback(self):
        classifier = KeywordCategoryClassifier(CATEGORIES, fallback="local_news")
        assert classifier.classify("Nothing relevant", "") == "local_news"

    def test_default_categories_include_general(self):
        ids = [c.id for c in DEFAULT_CATEGORIES]
        assert GENERAL_CATEGORY_ID in ids
        assert len(ids) == len(set(ids))


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestCategoryCache:
    """Tests for TTL-based reloading."""

    def setup_method(self):
        self.clock = FakeClock()
        self.store = SimpleNamespace(list=AsyncMock(return_value=[
            SimpleNamespace(id="general", keywords=["news"]),
            SimpleNamespace(id="sports_athletics", keywords=["football"]),
        ]))
        self.cache = CategoryCache(self.store, ttl_seconds=60, clock=self.clock)

    def test_loads_once_within_ttl(self):
        async def scenario():
            first = await self.cache.get()
            self.clock.now += 30
            second = await self.cache.get()
            return first, second

        first, second = asyncio.run(scenario())

        assert first == {"general": ["news"], "sports_athletics": ["football"]}
        assert second == first
        assert self.store.list.await_count == 1

    def test_reloads_after_ttl(self):
        async def scenario():
            await self.cache.get()
            self.clock.now += 61
            return await self.cache.known_ids()

        ids = asyncio.run(scenario())

        assert ids == {"general", "sports_athletics"}
        assert self.store.list.await_count == 2

    def test_invalidate_forces_reload(self):
        async def scenario():
            await self.cache.get()
            self.cache.invalidate()
            await self.cache.get()

        asyncio.run(scenario())
        assert self.store.list.await_count == 2

"""
Category classification for ingested articles.

The pipeline only depends on the `CategoryClassifier` protocol; the keyword
classifier here is the default implementation, fed by a `CategoryCache` that
owns the category rows and decides when to reload them.
"""

import time
from typing import Callable, Optional, Protocol

import structlog

from feedpipe.core.categories import GENERAL_CATEGORY_ID
from feedpipe.services.stores import CategoryStore

logger = structlog.get_logger(__name__)

SKIPPED_CATEGORY_IDS = {"all", GENERAL_CATEGORY_ID}


class CategoryClassifier(Protocol):
    """Best-effort, side-effect-free mapping from text to a category id."""

    def classify(self, title: str, description: Optional[str]) -> str:
        ...


class KeywordCategoryClassifier:
    """
    Scores each category by the keywords contained in title + description.

    Keywords longer than three characters weigh 2, shorter ones 1. The
    highest score wins; ties keep the category listed first.
    """

    def __init__(
        self,
        categories: dict[str, list[str]],
        fallback: str = GENERAL_CATEGORY_ID,
    ):
        self.fallback = fallback
        self._keywords = {
            category_id: [k.strip().lower() for k in keywords if k and k.strip()]
            for category_id, keywords in categories.items()
            if category_id not in SKIPPED_CATEGORY_IDS
        }

    def classify(self, title: str, description: Optional[str]) -> str:
        content = f"{title} {description or ''}".lower()

        best_match = self.fallback
        best_score = 0
        for category_id, keywords in self._keywords.items():
            score = sum(
                2 if len(keyword) > 3 else 1
                for keyword in keywords
                if keyword in content
            )
            if score > best_score:
                best_score = score
                best_match = category_id

        return best_match


class CategoryCache:
    """
    In-memory copy of the category table with a time-to-live.

    `get()` reloads from the store once the TTL has elapsed; `invalidate()`
    forces the next call to reload.
    """

    def __init__(
        self,
        store: CategoryStore,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._categories: Optional[dict[str, list[str]]] = None
        self._loaded_at: Optional[float] = None

    def _is_fresh(self) -> bool:
        if self._categories is None or self._loaded_at is None:
            return False
        return self._clock() - self._loaded_at < self.ttl_seconds

    async def get(self) -> dict[str, list[str]]:
        """Category id -> keywords, in display order."""
        if not self._is_fresh():
            rows = await self.store.list()
            self._categories = {row.id: list(row.keywords or []) for row in rows}
            self._loaded_at = self._clock()
            logger.debug("Category cache reloaded", categories=len(self._categories))
        return self._categories

    async def known_ids(self) -> set[str]:
        return set(await self.get())

    def invalidate(self) -> None:
        self._categories = None
        self._loaded_at = None

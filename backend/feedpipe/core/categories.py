"""
Default article categories and the keywords used to classify into them.

The `general` category is the fallback for anything the classifier cannot
place, so it must always be present in the store.
"""

from dataclasses import dataclass
from typing import Iterator


@dataclass(frozen=True)
class CategoryDefinition:
    """A category id, display name and its matching vocabulary."""

    id: str
    name: str
    keywords: tuple[str, ...] = ()

    def to_row(self) -> dict:
        return {"id": self.id, "name": self.name, "keywords": list(self.keywords)}


GENERAL_CATEGORY_ID = "general"


DEFAULT_CATEGORIES: tuple[CategoryDefinition, ...] = (
    CategoryDefinition(
        id="politics_governance",
        name="Politics & Governance",
        keywords=(
            "politics", "government", "parliament", "election", "party", "minister",
            "president", "policy", "zanu", "mdc", "opposition", "mnangagwa", "chamisa",
            "cabinet", "senate", "constituency", "voter", "ballot", "democracy",
            "governance", "corruption",
        ),
    ),
    CategoryDefinition(
        id="finance_investing",
        name="Finance & Investing",
        keywords=(
            "finance", "investment", "money", "stock market", "trading", "portfolio",
            "savings", "bank", "loan", "credit", "debt", "budget", "financial planning",
            "retirement", "pension", "insurance", "real estate", "property", "wealth",
            "economy", "inflation", "currency",
        ),
    ),
    CategoryDefinition(
        id="tech_gadgets",
        name="Technology & Gadgets",
        keywords=(
            "technology", "tech", "gadget", "smartphone", "iphone", "android", "laptop",
            "computer", "tablet", "smart watch", "headphones", "innovation", "startup",
            "app", "software", "hardware", "device", "apple", "google", "microsoft",
            "samsung",
        ),
    ),
    CategoryDefinition(
        id="sports_athletics",
        name="Sports & Athletics",
        keywords=(
            "sports", "football", "soccer", "cricket", "rugby", "basketball", "tennis",
            "golf", "athletics", "marathon", "olympics", "world cup", "championship",
            "tournament", "athlete", "coach", "league", "match", "warriors",
        ),
    ),
    CategoryDefinition(
        id="entertainment",
        name="Entertainment",
        keywords=(
            "music", "song", "album", "artist", "musician", "concert", "movie", "film",
            "cinema", "actor", "actress", "celebrity", "festival", "gospel", "dancehall",
        ),
    ),
    CategoryDefinition(
        id="local_news",
        name="Local News",
        keywords=(
            "local", "harare", "bulawayo", "mutare", "gweru", "masvingo", "chitungwiza",
            "kwekwe", "kadoma", "municipal", "council", "mayor", "community",
            "residents", "infrastructure", "services",
        ),
    ),
    CategoryDefinition(
        id="world_news",
        name="World News",
        keywords=(
            "world", "international", "global", "foreign", "diplomatic",
            "united nations", "europe", "america", "asia", "summit", "treaty",
            "ambassador", "embassy", "conflict", "war", "crisis",
        ),
    ),
    CategoryDefinition(
        id="agriculture",
        name="Agriculture",
        keywords=(
            "agriculture", "farming", "crop", "livestock", "tobacco", "maize", "cotton",
            "farmer", "harvest", "irrigation", "rural", "commercial farming",
        ),
    ),
    CategoryDefinition(
        id="health",
        name="Health",
        keywords=(
            "health", "hospital", "medical", "doctor", "patient", "medicine",
            "treatment", "disease", "covid", "vaccination", "clinic", "healthcare",
        ),
    ),
    CategoryDefinition(
        id="education",
        name="Education",
        keywords=(
            "education", "school", "university", "student", "teacher", "learning",
            "examination", "zimsec", "tertiary", "primary", "secondary",
        ),
    ),
    CategoryDefinition(
        id="crime",
        name="Crime",
        keywords=(
            "crime", "police", "arrest", "court", "justice", "theft", "murder",
            "robbery", "investigation", "criminal", "prison", "sentence",
        ),
    ),
    CategoryDefinition(
        id="environment",
        name="Environment",
        keywords=(
            "environment", "climate", "conservation", "pollution", "wildlife",
            "deforestation", "recycling", "renewable energy", "sustainability",
            "drought",
        ),
    ),
    CategoryDefinition(
        id=GENERAL_CATEGORY_ID,
        name="General",
        keywords=("news", "zimbabwe", "africa", "breaking", "latest", "update", "report"),
    ),
)


def iter_category_rows() -> Iterator[dict]:
    """Yield category rows suitable for `Database.seed_categories`."""
    for category in DEFAULT_CATEGORIES:
        yield category.to_row()

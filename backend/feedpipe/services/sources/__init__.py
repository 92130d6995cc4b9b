"""
Source onboarding and quality tracking.
"""

from feedpipe.services.sources.discovery import SourceDiscovery
from feedpipe.services.sources.registry import SourceRegistry, source_id_from_name
from feedpipe.services.sources.scorer import SourceQualityScorer, clamp_score
from feedpipe.services.sources.validator import SourceValidator

__all__ = [
    "SourceDiscovery",
    "SourceQualityScorer",
    "SourceRegistry",
    "SourceValidator",
    "clamp_score",
    "source_id_from_name",
]

"""
Incremental source quality scoring.

Every processed fetch feeds exactly one `FetchOutcome` into `apply`, which
nudges the reliability and freshness scores and recomputes the composite
quality score. All scores stay within [0, 100].
"""

from datetime import datetime
from typing import Optional

from feedpipe.config import ScoringWeights
from feedpipe.models.database import DBSource
from feedpipe.services.ingestion.base import FetchOutcome
from feedpipe.utils.time import as_utc, utcnow

SCORE_MIN = 0.0
SCORE_MAX = 100.0


def clamp_score(value: float) -> float:
    return max(SCORE_MIN, min(SCORE_MAX, value))


class SourceQualityScorer:
    """
    Updates a source's scores from fetch outcomes.

    Works on anything with the `DBSource` score attributes, so the same code
    scores ORM rows and plain test doubles.
    """

    def __init__(self, weights: Optional[ScoringWeights] = None):
        self.weights = weights or ScoringWeights()

    def apply(
        self,
        source: DBSource,
        outcome: FetchOutcome,
        now: Optional[datetime] = None,
    ) -> DBSource:
        now = now or utcnow()
        w = self.weights

        reliability = source.reliability_score if source.reliability_score is not None else 50.0

        if outcome.success:
            source.reliability_score = clamp_score(reliability + w.reliability_success_delta)
            source.freshness_score = clamp_score(
                min(outcome.articles_found * w.freshness_per_article + w.freshness_base, SCORE_MAX)
            )
            source.last_error = None
            source.success_count = (source.success_count or 0) + 1
            source.last_successful_fetch = now
        else:
            # Only penalise down to the floor; a lower value is left as is
            if reliability > w.reliability_floor:
                reliability = max(w.reliability_floor, reliability - w.reliability_failure_delta)
            source.reliability_score = clamp_score(reliability)
            source.last_error = outcome.error
            source.error_count = (source.error_count or 0) + 1

        source.quality_score = self.compute_quality(source, now)
        return source

    def compute_quality(self, source: DBSource, now: Optional[datetime] = None) -> float:
        """Weighted composite of reliability, freshness, success ratio and recency."""
        now = now or utcnow()
        w = self.weights

        successes = source.success_count or 0
        errors = source.error_count or 0
        attempts = successes + errors
        success_ratio = successes / attempts if attempts else 0.0

        quality = (
            w.weight_reliability * (source.reliability_score or 0.0)
            + w.weight_freshness * (source.freshness_score or 0.0)
            + w.weight_success_ratio * (success_ratio * 100)
            + w.weight_recency * self.recency_decay(source.last_successful_fetch, now)
        )
        return round(clamp_score(quality), 2)

    def recency_decay(self, last_success: Optional[datetime], now: datetime) -> float:
        """100 right after a good fetch, falling linearly to 0."""
        if last_success is None:
            return 0.0
        days = (as_utc(now) - as_utc(last_success)).total_seconds() / 86400
        per_day = SCORE_MAX / self.weights.recency_decay_days
        return clamp_score(SCORE_MAX - per_day * max(days, 0.0))

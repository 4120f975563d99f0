"""Utility functions for calculating score statistics."""

import logging
import math
import statistics
from numbers import Real
from typing import Any, Iterable, Sequence

from score_analytics.core.subjects import LevelThresholds, ScoreLevel
from score_analytics.schemas.analytics import (
    AggregationType,
    DescriptiveStats,
    LevelBucketStat,
    LevelPercentages,
)

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLDS = LevelThresholds()


def round_half_away(value: float, digits: int = 2) -> float:
    """Round half away from zero, e.g. 0.125 -> 0.13 and -0.125 -> -0.13."""
    factor = 10**digits
    rounded = math.floor(abs(value) * factor + 0.5) / factor
    return -rounded if value < 0 and rounded else rounded


def is_valid_score(value: Any) -> bool:
    """Return True for finite real numbers (bools are not scores)."""
    if isinstance(value, bool) or not isinstance(value, Real):
        return False
    return math.isfinite(value)


def valid_scores(scores: Iterable[Any]) -> list[float]:
    """
    Return the numeric entries of ``scores`` in their original order.

    Non-numeric, NaN and infinite entries are skipped and logged as anomalies.
    """
    result: list[float] = []
    for value in scores:
        if is_valid_score(value):
            result.append(float(value))
        else:
            logger.warning(f"Skipping invalid score value: {value!r}")
    return result


def mean_of(scores: Sequence[float]) -> float:
    """Unrounded arithmetic mean, 0.0 for an empty sequence."""
    if not scores:
        return 0.0
    return statistics.fmean(scores)


def classify_score(score: float, thresholds: LevelThresholds = DEFAULT_THRESHOLDS) -> ScoreLevel:
    return thresholds.level_for(score)


def compute_level_buckets(
    scores: Iterable[Any],
    aggregation_type: AggregationType = AggregationType.BOTH,
    thresholds: LevelThresholds = DEFAULT_THRESHOLDS,
) -> LevelBucketStat:
    """
    Count scores per level.

    Args:
        scores: Score values; invalid entries are skipped and not counted in ``total``
        aggregation_type: ``count`` omits percentages
        thresholds: Level boundaries

    Returns:
        LevelBucketStat with counts and, unless ``count`` aggregation, percentages
    """
    counts = {level: 0 for level in ScoreLevel}
    for value in valid_scores(scores):
        counts[thresholds.level_for(value)] += 1

    total = sum(counts.values())
    result = LevelBucketStat(
        excellent=counts[ScoreLevel.EXCELLENT],
        good=counts[ScoreLevel.GOOD],
        average=counts[ScoreLevel.AVERAGE],
        poor=counts[ScoreLevel.POOR],
        total=total,
    )

    if aggregation_type in (AggregationType.PERCENTAGE, AggregationType.BOTH):
        if total > 0:
            result.percentages = LevelPercentages(
                **{level.value: round_half_away(count / total * 100) for level, count in counts.items()}
            )
        else:
            result.percentages = LevelPercentages()

    return result


def compute_descriptive_stats(scores: Iterable[Any]) -> DescriptiveStats:
    """
    Calculate descriptive statistics for a list of scores.

    Variance is the population variance (divisor N). The mode is the most
    frequent value, ties going to the value seen first. All values are
    rounded to 2 decimals once, after computation. Empty input returns zeros.
    """
    values = valid_scores(scores)
    if not values:
        return DescriptiveStats()

    mean = statistics.fmean(values)
    median = statistics.median(values)
    mode = statistics.mode(values)
    variance = statistics.pvariance(values, mu=mean)
    std_dev = math.sqrt(variance)

    return DescriptiveStats(
        mean=round_half_away(mean),
        median=round_half_away(median),
        mode=round_half_away(mode),
        variance=round_half_away(variance),
        standard_deviation=round_half_away(std_dev),
        min=round_half_away(min(values)),
        max=round_half_away(max(values)),
    )

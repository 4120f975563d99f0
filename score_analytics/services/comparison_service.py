"""Service for comparing a subject's filtered cohort against the whole population."""

import logging

import numpy as np

from score_analytics.core.subjects import SubjectRegistry
from score_analytics.schemas.analytics import ComparisonResult
from score_analytics.services.score_data_source import ScoreDataSource
from score_analytics.utils.statistics_utils import round_half_away, valid_scores

logger = logging.getLogger(__name__)


def _average(scores: list[float]) -> float:
    values = valid_scores(scores)
    if not values:
        return 0.0
    return float(np.mean(values))


class ComparisonService:
    """
    Rank subjects by their unfiltered average and compare one subject's filtered
    average against its own unfiltered baseline.

    Unfiltered averages are memoized per instance, so one instance should serve
    a single request.
    """

    def __init__(self, data_source: ScoreDataSource, registry: SubjectRegistry):
        self.data_source = data_source
        self.registry = registry
        self._averages: dict[str, float] = {}

    async def unfiltered_average(self, subject: str) -> float:
        if subject not in self._averages:
            records = await self.data_source.fetch_all(subject)
            self._averages[subject] = _average([record.value for record in records])
        return self._averages[subject]

    async def rank_subjects(self) -> list[tuple[str, float]]:
        """Registry subjects with their unfiltered averages, best first; ties keep registry order."""
        averages = [(subject, await self.unfiltered_average(subject)) for subject in self.registry.subjects]
        return sorted(averages, key=lambda item: item[1], reverse=True)

    async def compare_subject(self, subject: str, filtered_scores: list[float]) -> ComparisonResult:
        """
        Compare the filtered cohort of ``subject`` with the unfiltered population.

        Args:
            subject: Subject code
            filtered_scores: Score values of the filtered cohort

        Returns:
            ComparisonResult, every field rounded to 2 decimals
        """
        overall_average = await self.unfiltered_average(subject)
        subject_average = _average(filtered_scores)
        difference = subject_average - overall_average
        percentage_difference = difference / overall_average * 100 if overall_average else 0.0

        ranking = await self.rank_subjects()
        total_subjects = len(ranking)
        position = next((i + 1 for i, (code, _) in enumerate(ranking) if code == subject), total_subjects)
        percentile = (
            int(round_half_away((total_subjects - position + 1) / total_subjects * 100, 0)) if total_subjects else 0
        )

        logger.debug(f"Subject {subject} ranked {position}/{total_subjects} (average {overall_average:.4f})")

        return ComparisonResult(
            subject_average=round_half_away(subject_average),
            overall_average=round_half_away(overall_average),
            difference=round_half_away(difference),
            percentage_difference=round_half_away(percentage_difference),
            rank_position=position,
            total_subjects=total_subjects,
            percentile=percentile,
        )

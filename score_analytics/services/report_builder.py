"""Build per-subject and overall score reports."""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone

from score_analytics.config import settings
from score_analytics.core.subjects import DEFAULT_REGISTRY, SubjectRegistry
from score_analytics.schemas.analytics import (
    AdvancedReport,
    ChartDataItem,
    DescriptiveStats,
    ReportFilter,
    ReportSummary,
    SortBy,
    SortOrder,
    SubjectReport,
)
from score_analytics.services.comparison_service import ComparisonService
from score_analytics.services.filter_compiler import (
    PredicateSet,
    compile_filter,
    describe_filter,
    resolve_subjects,
)
from score_analytics.services.score_data_source import ScoreDataSource
from score_analytics.utils.statistics_utils import (
    compute_descriptive_stats,
    compute_level_buckets,
    mean_of,
    round_half_away,
    valid_scores,
)

logger = logging.getLogger(__name__)


class AnalyticsProcessingError(Exception):
    """Raised when an overall report cannot be assembled."""

    pass


@dataclass
class SubjectOutcome:
    """Result of analysing one subject: exactly one of ``report`` and ``error`` is set."""

    subject: str
    report: SubjectReport | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.report is not None


def _sort_key(sort_by: SortBy):
    if sort_by == SortBy.TOTAL_STUDENTS:
        return lambda report: report.statistics.total
    if sort_by == SortBy.EXCELLENT_COUNT:
        return lambda report: report.statistics.excellent
    if sort_by == SortBy.AVERAGE_SCORE:
        return lambda report: report.average_score
    return lambda report: report.subject_display_name


def sort_reports(reports: list[SubjectReport], sort_by: SortBy, sort_order: SortOrder) -> list[SubjectReport]:
    """Sort subject reports; equal keys stay in ascending display-name order."""
    by_name = sorted(reports, key=lambda report: report.subject_display_name)
    if sort_by == SortBy.SUBJECT_NAME:
        return by_name if sort_order == SortOrder.ASC else list(reversed(by_name))
    return sorted(by_name, key=_sort_key(sort_by), reverse=sort_order == SortOrder.DESC)


def build_chart_data(reports: list[SubjectReport]) -> list[ChartDataItem]:
    return [
        ChartDataItem(
            subject=report.subject_display_name,
            excellent=report.statistics.excellent,
            good=report.statistics.good,
            average=report.statistics.average,
            poor=report.statistics.poor,
            total=report.statistics.total,
            average_score=report.average_score,
            percentages=report.statistics.percentages,
        )
        for report in reports
    ]


class ReportBuilder:
    """
    Assemble subject reports for a filter.

    A failure inside one subject never fails the whole report: optional parts
    (descriptive statistics, comparison, top performers) are omitted, and a
    subject whose analysis raises is logged and left out.
    """

    def __init__(
        self,
        data_source: ScoreDataSource,
        registry: SubjectRegistry = DEFAULT_REGISTRY,
        top_n: int | None = None,
        concurrency: int | None = None,
    ):
        self.data_source = data_source
        self.registry = registry
        self.top_n = top_n if top_n is not None else settings.top_performers_per_subject
        self.concurrency = max(1, concurrency if concurrency is not None else settings.report_concurrency)
        self.comparison = ComparisonService(data_source, registry)

    def _empty_subject_report(self, subject: str, report_filter: ReportFilter) -> SubjectReport:
        return SubjectReport(
            subject=subject,
            subject_display_name=self.registry.display_name(subject),
            statistics=compute_level_buckets([], report_filter.aggregation_type, self.registry.thresholds),
        )

    async def build_subject_report(
        self, subject: str, report_filter: ReportFilter, predicates: PredicateSet | None = None
    ) -> SubjectReport:
        """
        Analyse one subject under the filter.

        Args:
            subject: Subject code
            report_filter: Request filter
            predicates: Compiled predicates; compiled from ``report_filter`` when omitted

        Returns:
            SubjectReport carrying the raw filtered scores for pooled statistics
        """
        if predicates is None:
            predicates = compile_filter(report_filter, self.registry)
        records = await self.data_source.fetch(predicates.for_subject(subject))
        scores = valid_scores(record.value for record in records)
        logger.debug(f"Found {len(scores)} scores for subject {subject}")
        if not scores:
            return self._empty_subject_report(subject, report_filter)

        statistics = compute_level_buckets(scores, report_filter.aggregation_type, self.registry.thresholds)

        statistical_analysis = None
        if report_filter.include_statistics:
            try:
                statistical_analysis = compute_descriptive_stats(scores)
            except Exception as e:
                logger.warning(f"Error calculating statistics for {subject}: {e}")

        comparison = None
        if report_filter.include_comparison:
            try:
                comparison = await self.comparison.compare_subject(subject, scores)
            except Exception as e:
                logger.warning(f"Error calculating comparison for {subject}: {e}")

        try:
            top = await self.data_source.fetch_top_n(subject, self.top_n)
            top_performers = [registration_number for registration_number, _ in top]
        except Exception as e:
            logger.warning(f"Error getting top performers for {subject}: {e}")
            top_performers = []

        return SubjectReport(
            subject=subject,
            subject_display_name=self.registry.display_name(subject),
            statistics=statistics,
            statistical_analysis=statistical_analysis,
            comparison=comparison,
            average_score=round_half_away(mean_of(scores)),
            top_performers=top_performers,
            scores=scores,
        )

    async def _analyse_subjects(
        self, subjects: list[str], report_filter: ReportFilter, predicates: PredicateSet
    ) -> list[SubjectOutcome]:
        semaphore = asyncio.Semaphore(self.concurrency)

        async def analyse(subject: str) -> SubjectOutcome:
            async with semaphore:
                try:
                    report = await self.build_subject_report(subject, report_filter, predicates)
                    return SubjectOutcome(subject=subject, report=report)
                except Exception as e:
                    return SubjectOutcome(subject=subject, error=e)

        return list(await asyncio.gather(*(analyse(subject) for subject in subjects)))

    async def build_overall_report(self, report_filter: ReportFilter) -> AdvancedReport:
        """
        Build the advanced report for every subject selected by the filter.

        Raises:
            AnalyticsProcessingError: If the report cannot be assembled
        """
        start_time = time.perf_counter()
        try:
            predicates = compile_filter(report_filter, self.registry)
            subjects = resolve_subjects(report_filter, self.registry)
            logger.debug(f"Analysing subjects: {subjects}")

            if subjects and await self.data_source.count(predicates) == 0:
                logger.debug("No scores match the filter; skipping per-subject analysis")
                outcomes = [
                    SubjectOutcome(subject=subject, report=self._empty_subject_report(subject, report_filter))
                    for subject in subjects
                ]
            else:
                outcomes = await self._analyse_subjects(subjects, report_filter, predicates)

            reports: list[SubjectReport] = []
            pooled_scores: list[float] = []
            for outcome in outcomes:
                if not outcome.ok:
                    logger.warning(f"Error processing subject {outcome.subject}: {outcome.error}")
                    continue
                report = outcome.report
                if report_filter.min_student_count and report.statistics.total < report_filter.min_student_count:
                    logger.debug(f"Dropping subject {outcome.subject}: {report.statistics.total} scores")
                    continue
                reports.append(report)
                pooled_scores.extend(report.scores)

            logger.debug(f"Processed {len(reports)} of {len(subjects)} subjects")

            reports = sort_reports(reports, report_filter.sort_by, report_filter.sort_order)

            overall_statistics: DescriptiveStats | None = None
            if report_filter.include_statistics and pooled_scores:
                try:
                    overall_statistics = compute_descriptive_stats(pooled_scores)
                except Exception as e:
                    logger.warning(f"Error calculating overall statistics: {e}")

            total_students = await self.data_source.count_students()
            total_scores = await self.data_source.count_scores()
            average_score = mean_of([report.average_score for report in reports])

            summary = ReportSummary(
                total_students=total_students,
                total_scores=total_scores,
                average_score=round_half_away(average_score),
                filtered_students=sum(report.statistics.total for report in reports),
                applied_filters=describe_filter(report_filter),
                report_generated_at=datetime.now(timezone.utc),
                processing_time_ms=int((time.perf_counter() - start_time) * 1000),
            )

            report = AdvancedReport(
                subjects=reports,
                summary=summary,
                chart_data=build_chart_data(reports),
                overall_statistics=overall_statistics,
            )
        except Exception as e:
            logger.error(f"Error generating advanced statistics: {e}", exc_info=True)
            raise AnalyticsProcessingError("Analytics processing failed") from e

        logger.info(f"Fresh statistics generated in {report.summary.processing_time_ms}ms")
        return report

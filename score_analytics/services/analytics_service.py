"""Cached analytics reports over subject scores."""

import logging
import time
from datetime import datetime, timezone

from pydantic import TypeAdapter, ValidationError

from score_analytics.config import settings
from score_analytics.core.subjects import DEFAULT_REGISTRY, SubjectRegistry
from score_analytics.schemas.analytics import (
    AdvancedReport,
    BasicReport,
    BasicReportFilter,
    BasicSubjectStatistics,
    BasicSummary,
    DashboardOverview,
    FilterValidationResponse,
    LevelCounts,
    LevelPercentages,
    ReportFilter,
    ReportMetadata,
    TopPerformer,
)
from score_analytics.services.cache_service import CacheService, cache_service
from score_analytics.services.filter_compiler import describe_filter, filter_warnings, resolve_subjects
from score_analytics.services.report_builder import ReportBuilder
from score_analytics.services.score_data_source import ScoreDataSource
from score_analytics.utils.cache_utils import (
    generate_dashboard_key,
    generate_namespace_pattern,
    generate_report_key,
    generate_top_performers_key,
)
from score_analytics.utils.statistics_utils import compute_level_buckets, mean_of, round_half_away, valid_scores

logger = logging.getLogger(__name__)

_top_performers_adapter = TypeAdapter(list[TopPerformer])


class SubjectNotFoundError(Exception):
    """Raised when a subject code is not in the registry."""

    pass


def _elapsed_ms(start_time: float) -> int:
    return int((time.perf_counter() - start_time) * 1000)


class AnalyticsService:
    """Cache-aside access to analytics reports."""

    def __init__(
        self,
        data_source: ScoreDataSource,
        cache: CacheService = cache_service,
        registry: SubjectRegistry = DEFAULT_REGISTRY,
        builder: ReportBuilder | None = None,
    ):
        self.data_source = data_source
        self.cache = cache
        self.registry = registry
        self.builder = builder or ReportBuilder(data_source, registry)

    def _metadata(self, report_filter: ReportFilter, cache_hit: bool, processing_time_ms: int) -> ReportMetadata:
        return ReportMetadata(
            cache_hit=cache_hit,
            cache_store=self.cache.store_name,
            processing_time_ms=processing_time_ms,
            cache_ttl=settings.cache_ttl,
            filters_applied=len(describe_filter(report_filter)),
            data_source=self.data_source.name,
        )

    async def _get_cached_report(self, key: str) -> AdvancedReport | None:
        cached = await self.cache.get(key)
        if cached is None:
            return None
        try:
            return AdvancedReport.model_validate_json(cached)
        except ValidationError as e:
            logger.warning(f"Discarding unreadable cache entry {key}: {e}")
            return None

    async def get_advanced_statistics(self, report_filter: ReportFilter) -> AdvancedReport:
        """
        Return the advanced report for a filter, computing and caching it on a miss.

        Filters that differ only in list order, duplicates or numeric spelling
        share one cache entry.
        """
        start_time = time.perf_counter()
        cache_key = generate_report_key(settings.cache_prefix, report_filter)

        report = await self._get_cached_report(cache_key)
        if report is not None:
            logger.info(f"Cache HIT for advanced stats: {cache_key}")
            # the entry may have been stored under another spelling of the same filter
            report.summary.applied_filters = describe_filter(report_filter)
            report.metadata = self._metadata(report_filter, True, _elapsed_ms(start_time))
            return report

        logger.info(f"Cache MISS for advanced stats: {cache_key}")
        report = await self.builder.build_overall_report(report_filter)
        report.metadata = self._metadata(report_filter, False, _elapsed_ms(start_time))
        await self.cache.set(cache_key, report.model_dump_json(), ttl=settings.cache_ttl)
        return report

    async def get_basic_statistics(self, basic_filter: BasicReportFilter) -> BasicReport:
        report_filter = ReportFilter(subjects=basic_filter.subjects, format=basic_filter.format)
        report = await self.get_advanced_statistics(report_filter)

        return BasicReport(
            subjects=[
                BasicSubjectStatistics(
                    subject=subject.subject,
                    subject_display_name=subject.subject_display_name,
                    statistics=LevelCounts(
                        excellent=subject.statistics.excellent,
                        good=subject.statistics.good,
                        average=subject.statistics.average,
                        poor=subject.statistics.poor,
                        total=subject.statistics.total,
                    ),
                    percentages=subject.statistics.percentages or LevelPercentages(),
                )
                for subject in report.subjects
            ],
            summary=BasicSummary(
                total_students=report.summary.total_students,
                total_scores=report.summary.total_scores,
                average_score=report.summary.average_score,
                report_generated_at=report.summary.report_generated_at,
            ),
            chart_data=report.chart_data,
        )

    async def get_subject_comparison(
        self, subjects: list[str] | None = None, include_statistics: bool = True
    ) -> AdvancedReport:
        report_filter = ReportFilter(
            subjects=subjects,
            include_comparison=True,
            include_statistics=include_statistics,
        )
        return await self.get_advanced_statistics(report_filter)

    async def get_top_performers(self, subject: str, limit: int = 10) -> list[TopPerformer]:
        """
        Best scores of a subject regardless of any filter.

        Args:
            subject: Subject code
            limit: Number of performers, clamped to 1..top_performers_max_limit

        Raises:
            SubjectNotFoundError: If the subject is unknown
        """
        if subject not in self.registry:
            raise SubjectNotFoundError(f"Subject '{subject}' not found")

        limit = min(max(limit, 1), settings.top_performers_max_limit)
        cache_key = generate_top_performers_key(settings.cache_prefix, subject, limit)

        cached = await self.cache.get(cache_key)
        if cached is not None:
            try:
                performers = _top_performers_adapter.validate_json(cached)
                logger.info(f"Cache HIT for top performers: {cache_key}")
                return performers
            except ValidationError as e:
                logger.warning(f"Discarding unreadable cache entry {cache_key}: {e}")

        logger.info(f"Cache MISS for top performers: {cache_key}")
        rows = await self.data_source.fetch_top_n(subject, limit)
        performers = [
            TopPerformer(
                registration_number=registration_number,
                score=score,
                subject=subject,
                subject_display_name=self.registry.display_name(subject),
            )
            for registration_number, score in rows
        ]
        await self.cache.set(
            cache_key, _top_performers_adapter.dump_json(performers).decode(), ttl=settings.cache_ttl_long
        )
        return performers

    async def get_dashboard_overview(self) -> DashboardOverview:
        cache_key = generate_dashboard_key(settings.cache_prefix)

        cached = await self.cache.get(cache_key)
        if cached is not None:
            try:
                overview = DashboardOverview.model_validate_json(cached)
                logger.info(f"Cache HIT for dashboard: {cache_key}")
                return overview
            except ValidationError as e:
                logger.warning(f"Discarding unreadable cache entry {cache_key}: {e}")

        logger.info(f"Cache MISS for dashboard: {cache_key}")
        scores = valid_scores(await self.data_source.all_scores())
        overview = DashboardOverview(
            summary=BasicSummary(
                total_students=await self.data_source.count_students(),
                total_scores=await self.data_source.count_scores(),
                average_score=round_half_away(mean_of(scores)),
                report_generated_at=datetime.now(timezone.utc),
            ),
            overall_statistics=compute_level_buckets(scores, thresholds=self.registry.thresholds),
        )
        await self.cache.set(cache_key, overview.model_dump_json(), ttl=settings.cache_ttl_long)
        return overview

    def validate_filters(self, report_filter: ReportFilter) -> FilterValidationResponse:
        """Report how a filter will be applied without running it."""
        return FilterValidationResponse(
            valid=True,
            filter=report_filter,
            applied_filters=describe_filter(report_filter),
            subjects_to_analyze=resolve_subjects(report_filter, self.registry),
            warnings=filter_warnings(report_filter, self.registry),
        )

    async def invalidate_cache(self) -> int:
        """Drop every cached analytics entry and return how many were removed."""
        pattern = generate_namespace_pattern(settings.cache_prefix)
        cleared = await self.cache.clear_prefix(pattern.rstrip("*"))
        logger.info(f"Analytics cache invalidated ({cleared} keys)")
        return cleared

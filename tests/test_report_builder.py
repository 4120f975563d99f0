"""
Tests for services/report_builder.py: per-subject reports, partial failures, overall assembly.
"""

import pytest

from score_analytics.schemas.analytics import ReportFilter, SortBy, SortOrder
from score_analytics.services.report_builder import AnalyticsProcessingError, ReportBuilder

from tests.conftest import InMemoryScoreDataSource, make_records


@pytest.fixture
def builder(data_source, registry):
    return ReportBuilder(data_source, registry, top_n=3, concurrency=1)


class TestBuildSubjectReport:
    async def test_level_stats_and_average(self, builder):
        report = await builder.build_subject_report("toan", ReportFilter())

        assert report.subject_display_name == "Math"
        assert (report.statistics.excellent, report.statistics.good) == (1, 1)
        assert (report.statistics.average, report.statistics.poor) == (1, 1)
        assert report.statistics.percentages.excellent == 25.0
        assert report.average_score == 6.0
        assert report.statistical_analysis is None
        assert report.comparison is None

    async def test_score_range_filter(self, builder):
        report = await builder.build_subject_report("hoa_hoc", ReportFilter(min_score=5, max_score=10))
        assert report.statistics.total == 3

    async def test_optional_sections(self, builder):
        report_filter = ReportFilter(include_statistics=True, include_comparison=True)
        report = await builder.build_subject_report("vat_li", report_filter)

        assert report.statistical_analysis.mean == 7.5
        assert report.statistical_analysis.standard_deviation == 0.87
        assert report.comparison.rank_position == 1

    async def test_top_performers_ignore_filter(self, builder):
        report = await builder.build_subject_report("toan", ReportFilter(max_score=6))
        assert report.statistics.total == 2
        assert report.top_performers == ["S001", "S002", "S003"]

    async def test_empty_subject(self, builder):
        report = await builder.build_subject_report("toan", ReportFilter(min_score=9.5))

        assert report.statistics.total == 0
        assert report.average_score == 0.0
        assert report.top_performers is None

    async def test_raw_scores_not_serialized(self, builder):
        report = await builder.build_subject_report("toan", ReportFilter())
        assert report.scores == [9.0, 7.0, 5.0, 3.0]
        assert "scores" not in report.model_dump()

    async def test_comparison_failure_omits_comparison_only(self, registry):
        class NoBaseline(InMemoryScoreDataSource):
            async def fetch_all(self, subject):
                raise RuntimeError("baseline query failed")

        builder = ReportBuilder(NoBaseline(make_records()), registry)
        report = await builder.build_subject_report("toan", ReportFilter(include_comparison=True))

        assert report.comparison is None
        assert report.statistics.total == 4

    async def test_top_performer_failure_gives_empty_list(self, registry):
        class NoTopPerformers(InMemoryScoreDataSource):
            async def fetch_top_n(self, subject, n):
                raise RuntimeError("timeout")

        builder = ReportBuilder(NoTopPerformers(make_records()), registry)
        report = await builder.build_subject_report("toan", ReportFilter())

        assert report.top_performers == []


class TestBuildOverallReport:
    async def test_default_sort_by_display_name(self, builder):
        report = await builder.build_overall_report(ReportFilter())
        assert [s.subject_display_name for s in report.subjects] == ["Chemistry", "Math", "Physics"]
        assert [c.subject for c in report.chart_data] == ["Chemistry", "Math", "Physics"]

    async def test_summary(self, builder):
        report = await builder.build_overall_report(ReportFilter())

        assert report.summary.total_students == 5
        assert report.summary.total_scores == 13
        assert report.summary.filtered_students == 13
        # mean of 5.6, 6.0 and 7.5
        assert report.summary.average_score == 6.37
        assert report.summary.applied_filters == []
        assert report.overall_statistics is None

    async def test_min_student_count_drops_subjects_and_their_scores(self, builder):
        report_filter = ReportFilter(min_student_count=5, include_statistics=True)
        report = await builder.build_overall_report(report_filter)

        assert [s.subject for s in report.subjects] == ["hoa_hoc"]
        assert report.overall_statistics.mean == 5.6
        assert report.summary.filtered_students == 5
        assert report.summary.applied_filters == ["minStudents: 5"]

    async def test_subject_dropped_below_min_student_count(self, builder):
        report_filter = ReportFilter(subjects=["hoa_hoc"], min_score=5, max_score=10, min_student_count=5)
        report = await builder.build_overall_report(report_filter)

        assert report.subjects == []
        assert report.summary.filtered_students == 0
        assert report.summary.average_score == 0.0

    async def test_pooled_overall_statistics(self, builder):
        report = await builder.build_overall_report(ReportFilter(subjects=["toan", "vat_li"], include_statistics=True))

        assert report.overall_statistics.min == 3.0
        assert report.overall_statistics.max == 9.0
        assert report.overall_statistics.mode == 8.0

    async def test_sort_by_total_desc_ties_by_display_name(self, builder):
        report_filter = ReportFilter(sort_by=SortBy.TOTAL_STUDENTS, sort_order=SortOrder.DESC)
        report = await builder.build_overall_report(report_filter)
        assert [s.subject for s in report.subjects] == ["hoa_hoc", "toan", "vat_li"]

    async def test_sort_by_average_asc(self, builder):
        report_filter = ReportFilter(sort_by=SortBy.AVERAGE_SCORE)
        report = await builder.build_overall_report(report_filter)
        assert [s.average_score for s in report.subjects] == [5.6, 6.0, 7.5]

    async def test_sort_by_name_desc(self, builder):
        report_filter = ReportFilter(sort_order=SortOrder.DESC)
        report = await builder.build_overall_report(report_filter)
        assert [s.subject_display_name for s in report.subjects] == ["Physics", "Math", "Chemistry"]

    async def test_failing_subject_is_skipped(self, registry):
        class BrokenPhysics(InMemoryScoreDataSource):
            async def fetch(self, predicates):
                if predicates.subjects == ("vat_li",):
                    raise RuntimeError("query failed")
                return await super().fetch(predicates)

        builder = ReportBuilder(BrokenPhysics(make_records()), registry)
        report = await builder.build_overall_report(ReportFilter())

        assert [s.subject for s in report.subjects] == ["hoa_hoc", "toan"]
        assert report.summary.filtered_students == 9

    async def test_concurrent_fan_out_keeps_results(self, data_source, registry):
        builder = ReportBuilder(data_source, registry, concurrency=3)
        report = await builder.build_overall_report(ReportFilter())
        assert len(report.subjects) == 3

    async def test_empty_cohort_skips_per_subject_queries(self, builder, data_source):
        report = await builder.build_overall_report(ReportFilter(subjects=["toan", "vat_li"], min_score=9.5))

        assert data_source.calls["count"] == 1
        assert data_source.calls["fetch"] == 0
        assert data_source.calls["fetch_top_n"] == 0
        assert [(s.subject, s.statistics.total, s.top_performers) for s in report.subjects] == [
            ("toan", 0, None),
            ("vat_li", 0, None),
        ]
        assert report.summary.filtered_students == 0

    async def test_unknown_subjects_give_empty_report(self, builder):
        report = await builder.build_overall_report(ReportFilter(subjects=["bogus"]))
        assert report.subjects == []
        assert report.chart_data == []

    async def test_assembly_failure_raises_processing_error(self, registry):
        class NoCounts(InMemoryScoreDataSource):
            async def count_students(self):
                raise RuntimeError("connection reset")

        builder = ReportBuilder(NoCounts(make_records()), registry)
        with pytest.raises(AnalyticsProcessingError, match="Analytics processing failed"):
            await builder.build_overall_report(ReportFilter())

"""
Tests for services/filter_compiler.py.
"""

import pytest
from pydantic import ValidationError

from score_analytics.core.subjects import DEFAULT_REGISTRY
from score_analytics.schemas.analytics import ReportFilter
from score_analytics.services.filter_compiler import (
    PredicateSet,
    compile_filter,
    describe_filter,
    filter_warnings,
    resolve_subjects,
)
from score_analytics.services.score_data_source import ScoreRecord


def record(value: float, subject: str = "toan", code: str | None = "N1") -> ScoreRecord:
    return ScoreRecord(subject=subject, value=value, student_id="S", foreign_language_code=code)


class TestReportFilter:
    def test_min_greater_than_max_rejected(self):
        with pytest.raises(ValidationError):
            ReportFilter(min_score=8, max_score=5)

    def test_out_of_range_score_rejected(self):
        with pytest.raises(ValidationError):
            ReportFilter(min_score=11)

    def test_min_student_count_must_be_positive(self):
        with pytest.raises(ValidationError):
            ReportFilter(min_student_count=0)

    def test_levels_lowercased(self):
        assert ReportFilter(score_levels=["Excellent", " GOOD "]).score_levels == ["excellent", "good"]


class TestCompileFilter:
    def test_score_range_is_inclusive(self, registry):
        predicates = compile_filter(ReportFilter(min_score=5, max_score=10), registry)
        matched = [v for v in [3, 4, 5, 6, 10] if predicates.matches(record(v))]
        assert matched == [5, 6, 10]

    def test_levels_are_or_combined(self, registry):
        predicates = compile_filter(ReportFilter(score_levels=["excellent", "poor"]), registry)
        assert len(predicates.level_ranges) == 2
        assert [v for v in [9, 7, 5, 3] if predicates.matches(record(v))] == [9, 3]

    def test_levels_and_range_are_and_combined(self, registry):
        predicates = compile_filter(ReportFilter(score_levels=["good", "excellent"], max_score=8.5), registry)
        assert [v for v in [9, 8, 7, 5] if predicates.matches(record(v))] == [8, 7]

    def test_unknown_levels_dropped(self, registry):
        predicates = compile_filter(ReportFilter(score_levels=["excellent", "legendary"]), registry)
        assert len(predicates.level_ranges) == 1

    def test_only_unknown_levels_gives_no_level_predicate(self, registry):
        predicates = compile_filter(ReportFilter(score_levels=["legendary"]), registry)
        assert predicates.level_ranges == ()
        assert predicates.matches(record(1.0))

    def test_language_codes(self, registry):
        predicates = compile_filter(ReportFilter(foreign_language_codes=["N1"]), registry)
        assert predicates.matches(record(5, code="N1"))
        assert not predicates.matches(record(5, code="N2"))
        assert not predicates.matches(record(5, code=None))

    def test_min_student_count_is_not_a_row_predicate(self, registry):
        assert compile_filter(ReportFilter(min_student_count=50), registry) == compile_filter(
            ReportFilter(), registry
        )

    def test_for_subject_narrows(self, registry):
        predicates = compile_filter(ReportFilter(), registry).for_subject("vat_li")
        assert predicates.matches(record(5, subject="vat_li"))
        assert not predicates.matches(record(5, subject="toan"))

    def test_empty_subject_tuple_matches_nothing(self):
        assert not PredicateSet(subjects=()).matches(record(5))


class TestResolveSubjects:
    def test_all_subjects_when_unspecified(self, registry):
        assert resolve_subjects(ReportFilter(), registry) == ["toan", "vat_li", "hoa_hoc"]

    def test_request_order_kept_and_unknown_dropped(self, registry):
        report_filter = ReportFilter(subjects=["hoa_hoc", "bogus", "toan", "hoa_hoc"])
        assert resolve_subjects(report_filter, registry) == ["hoa_hoc", "toan"]

    def test_only_unknown_subjects_resolves_to_empty(self, registry):
        assert resolve_subjects(ReportFilter(subjects=["bogus"]), registry) == []


class TestDescribeFilter:
    def test_fixed_field_order(self):
        report_filter = ReportFilter(
            min_student_count=50,
            score_levels=["excellent", "good"],
            max_score=10,
            min_score=5,
            foreign_language_codes=["N1", "N2"],
            subjects=["toan", "vat_li"],
        )
        assert describe_filter(report_filter) == [
            "subjects: toan, vat_li",
            "languages: N1, N2",
            "minScore: 5",
            "maxScore: 10",
            "levels: excellent, good",
            "minStudents: 50",
        ]

    def test_repeated_values_listed_once(self):
        report_filter = ReportFilter(subjects=["vat_li", "toan", "toan"], score_levels=["good", "good"])
        assert describe_filter(report_filter) == ["subjects: vat_li, toan", "levels: good"]

    def test_fractional_scores(self):
        assert describe_filter(ReportFilter(min_score=5.5)) == ["minScore: 5.5"]

    def test_empty_filter(self):
        assert describe_filter(ReportFilter()) == []


class TestFilterWarnings:
    def test_warns_about_ignored_entries(self):
        report_filter = ReportFilter(subjects=["toan", "bogus"], score_levels=["legendary"], foreign_language_codes=["X9"])
        warnings = filter_warnings(report_filter, DEFAULT_REGISTRY)
        assert "Unknown subjects ignored: bogus" in warnings
        assert "Unsupported score levels ignored: legendary" in warnings
        assert any("X9" in warning for warning in warnings)

    def test_no_warnings_for_valid_filter(self):
        report_filter = ReportFilter(subjects=["toan"], score_levels=["good"], foreign_language_codes=["N1"])
        assert filter_warnings(report_filter, DEFAULT_REGISTRY) == []

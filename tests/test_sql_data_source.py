"""
Tests for the SQL score data source and the student service against SQLite.
"""

import pytest

from score_analytics.core.subjects import ScoreLevel
from score_analytics.schemas.analytics import ReportFilter
from score_analytics.schemas.student import StudentListQuery, StudentSearchQuery
from score_analytics.services.filter_compiler import PredicateSet, compile_filter
from score_analytics.services.score_data_source import SqlScoreDataSource
from score_analytics.services.student_service import StudentNotFoundError, StudentService

from tests.conftest import make_records


def as_tuples(records):
    return sorted((r.subject, r.value, r.student_id, r.foreign_language_code) for r in records)


class TestSqlScoreDataSource:
    @pytest.mark.parametrize(
        "report_filter",
        [
            ReportFilter(),
            ReportFilter(min_score=5, max_score=8),
            ReportFilter(score_levels=["excellent", "poor"]),
            ReportFilter(foreign_language_codes=["N2"], score_levels=["good"]),
            ReportFilter(subjects=["hoa_hoc"], min_score=4),
        ],
    )
    async def test_matches_in_memory_predicates(self, seeded_session, registry, report_filter):
        source = SqlScoreDataSource(seeded_session)
        predicates = compile_filter(report_filter, registry)

        expected = [r for r in make_records() if predicates.matches(r)]
        assert as_tuples(await source.fetch(predicates)) == as_tuples(expected)
        assert await source.count(predicates) == len(expected)

    async def test_fetch_all_ignores_filters(self, seeded_session):
        records = await SqlScoreDataSource(seeded_session).fetch_all("hoa_hoc")
        assert [r.value for r in records] == [3.0, 4.0, 5.0, 6.0, 10.0]

    async def test_top_n_ties_in_insertion_order(self, seeded_session):
        top = await SqlScoreDataSource(seeded_session).fetch_top_n("vat_li", 3)
        assert top == [("S001", 8.0), ("S002", 8.0), ("S003", 8.0)]

    async def test_totals(self, seeded_session):
        source = SqlScoreDataSource(seeded_session)
        assert await source.count_students() == 5
        assert await source.count_scores() == 13
        assert sorted(await source.all_scores()) == sorted(r.value for r in make_records())

    async def test_empty_subject_tuple_returns_nothing(self, seeded_session):
        assert await SqlScoreDataSource(seeded_session).fetch(PredicateSet(subjects=())) == []


class TestStudentService:
    async def test_get_by_registration_number(self, seeded_session, registry):
        student = await StudentService(seeded_session, registry).get_by_registration_number("S001")

        assert student.foreign_language_code == "N1"
        assert [(s.subject, s.score) for s in student.scores] == [("toan", 9.0), ("vat_li", 8.0), ("hoa_hoc", 3.0)]
        assert student.scores[0].subject_display_name == "Math"
        assert student.scores[0].level.value == "excellent"

    async def test_unknown_registration_number(self, seeded_session):
        with pytest.raises(StudentNotFoundError):
            await StudentService(seeded_session).get_by_registration_number("X999")

    async def test_search_with_pagination(self, seeded_session):
        result = await StudentService(seeded_session).search(StudentSearchQuery(registration_number="S00", limit=2, page=2))

        assert result.total == 5
        assert result.total_pages == 3
        assert [s.registration_number for s in result.data] == ["S003", "S004"]

    async def test_search_by_language_and_score(self, seeded_session):
        query = StudentSearchQuery(foreign_language_code="N2", min_score=8.5)
        result = await StudentService(seeded_session).search(query)
        assert result.total == 0

        query = StudentSearchQuery(min_score=9.5)
        result = await StudentService(seeded_session).search(query)
        assert [s.registration_number for s in result.data] == ["S005"]

    async def test_top_by_combination(self, seeded_session, registry):
        ranking = await StudentService(seeded_session, registry).get_top_by_combination("a", limit=2)

        assert [(item.rank, item.student.registration_number, item.total_score) for item in ranking] == [
            (1, "S001", 20.0),
            (2, "S002", 19.0),
        ]
        assert len(ranking[0].student.scores) == 3

    async def test_unknown_combination(self, seeded_session, registry):
        with pytest.raises(ValueError):
            await StudentService(seeded_session, registry).get_top_by_combination("Z")

    async def test_overview_statistics(self, seeded_session):
        overview = await StudentService(seeded_session).get_overview_statistics()

        assert overview.total_students == 5
        assert overview.total_scores == 13
        assert overview.average_score == 6.31

    async def test_list_students_by_subject_and_level(self, seeded_session, registry):
        query = StudentListQuery(subject="toan", score_level=ScoreLevel.GOOD)
        result = await StudentService(seeded_session, registry).list_students(query)

        assert result.total == 1
        assert [s.registration_number for s in result.data] == ["S002"]

    async def test_list_students_level_matches_any_subject(self, seeded_session, registry):
        query = StudentListQuery(score_level=ScoreLevel.EXCELLENT)
        result = await StudentService(seeded_session, registry).list_students(query)

        assert [s.registration_number for s in result.data] == ["S001", "S002", "S003", "S005"]

    async def test_list_students_paginated_by_registration_number(self, seeded_session, registry):
        query = StudentListQuery(subject="vat_li", min_score=8, limit=2, page=2)
        result = await StudentService(seeded_session, registry).list_students(query)

        assert result.total == 3
        assert result.total_pages == 2
        assert [s.registration_number for s in result.data] == ["S003"]

    async def test_list_students_unfiltered(self, seeded_session):
        result = await StudentService(seeded_session).list_students(StudentListQuery())
        assert result.total == 5
        assert result.data[0].registration_number == "S001"

    async def test_performance_best_first(self, seeded_session, registry):
        service = StudentService(seeded_session, registry)
        first = await service.get_performance("S001", page=1, limit=2)
        second = await service.get_performance("S001", page=2, limit=2)

        assert first.total == 3
        assert first.total_pages == 2
        assert [(item.subject, item.score) for item in first.data] == [("toan", 9.0), ("vat_li", 8.0)]
        assert first.data[0].subject_display_name == "Math"
        assert [(item.subject, item.level.value) for item in second.data] == [("hoa_hoc", "poor")]

    async def test_performance_unknown_student(self, seeded_session):
        with pytest.raises(StudentNotFoundError):
            await StudentService(seeded_session).get_performance("X999")

    async def test_list_students_conditions_apply_to_one_score(self, seeded_session, registry):
        # S001 has a poor hoa_hoc score but no poor toan score
        query = StudentListQuery(subject="toan", score_level=ScoreLevel.POOR)
        result = await StudentService(seeded_session, registry).list_students(query)

        assert [s.registration_number for s in result.data] == ["S004"]

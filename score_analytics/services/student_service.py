"""Service for student lookup, search and combination rankings."""

import logging
from datetime import datetime, timezone

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from score_analytics.core.subjects import DEFAULT_REGISTRY, ScoreLevel, SubjectRegistry
from score_analytics.models import Student, SubjectScore
from score_analytics.schemas.student import (
    CombinationRankingItem,
    OverviewStatistics,
    StudentListQuery,
    StudentPerformanceItem,
    StudentPerformanceResponse,
    StudentResponse,
    StudentSearchQuery,
    StudentSearchResponse,
    SubjectScoreResponse,
)
from score_analytics.utils.statistics_utils import round_half_away

logger = logging.getLogger(__name__)


class StudentNotFoundError(Exception):
    """Raised when no student has the requested registration number."""

    pass


def _total_pages(total: int, limit: int) -> int:
    return (total + limit - 1) // limit if total > 0 else 0


class StudentService:
    def __init__(self, session: AsyncSession, registry: SubjectRegistry = DEFAULT_REGISTRY):
        self.session = session
        self.registry = registry

    def to_response(self, student: Student, subjects: tuple[str, ...] | None = None) -> StudentResponse:
        """Map a student with loaded scores to its response schema, optionally keeping only ``subjects``."""
        scores = sorted(student.scores, key=lambda s: s.id)
        if subjects is not None:
            scores = [s for s in scores if s.subject in subjects]
        return StudentResponse(
            id=student.id,
            registration_number=student.registration_number,
            foreign_language_code=student.foreign_language_code,
            scores=[
                SubjectScoreResponse(
                    subject=s.subject,
                    subject_display_name=self.registry.display_name(s.subject),
                    score=s.score,
                    level=self.registry.thresholds.level_for(s.score),
                )
                for s in scores
            ],
        )

    async def get_by_registration_number(self, registration_number: str) -> StudentResponse:
        stmt = (
            select(Student)
            .options(selectinload(Student.scores))
            .where(Student.registration_number == registration_number)
        )
        result = await self.session.execute(stmt)
        student = result.scalar_one_or_none()
        if student is None:
            raise StudentNotFoundError(f"Student with registration number {registration_number} not found")
        return self.to_response(student)

    async def search(self, query: StudentSearchQuery) -> StudentSearchResponse:
        """
        Search students by partial registration number, language code and score range.

        A student matches the score range if any of their scores falls inside it.
        """
        stmt = select(Student)
        if query.registration_number:
            stmt = stmt.where(Student.registration_number.contains(query.registration_number))
        if query.foreign_language_code:
            stmt = stmt.where(Student.foreign_language_code == query.foreign_language_code)
        if query.min_score is not None or query.max_score is not None:
            stmt = stmt.where(self._score_exists(min_score=query.min_score, max_score=query.max_score))

        total, students = await self._paginate(stmt.order_by(Student.id), query.page, query.limit)
        return StudentSearchResponse(
            data=[self.to_response(student) for student in students],
            total=total,
            page=query.page,
            limit=query.limit,
            total_pages=_total_pages(total, query.limit),
        )

    def _score_exists(
        self,
        subject: str | None = None,
        min_score: float | None = None,
        max_score: float | None = None,
        level: ScoreLevel | None = None,
    ):
        """EXISTS clause for a single score row of the student satisfying every given condition."""
        score_stmt = select(SubjectScore.id).where(SubjectScore.student_id == Student.id)
        if subject is not None:
            score_stmt = score_stmt.where(SubjectScore.subject == subject)
        if min_score is not None:
            score_stmt = score_stmt.where(SubjectScore.score >= min_score)
        if max_score is not None:
            score_stmt = score_stmt.where(SubjectScore.score <= max_score)
        if level is not None:
            low, high = self.registry.thresholds.range_for(level)
            if low is not None:
                score_stmt = score_stmt.where(SubjectScore.score >= low)
            if high is not None:
                score_stmt = score_stmt.where(SubjectScore.score < high)
        return score_stmt.exists()

    async def _paginate(self, stmt: Select, page: int, limit: int) -> tuple[int, list[Student]]:
        count_result = await self.session.execute(select(func.count()).select_from(stmt.order_by(None).subquery()))
        total = count_result.scalar() or 0

        offset = (page - 1) * limit
        result = await self.session.execute(stmt.options(selectinload(Student.scores)).offset(offset).limit(limit))
        return total, list(result.scalars().all())

    async def list_students(self, query: StudentListQuery) -> StudentSearchResponse:
        """
        Page through students ordered by registration number.

        Subject, score range and level all apply to the same score row: a
        student is listed when one of their scores satisfies every condition.
        """
        stmt = select(Student)
        if any(v is not None for v in (query.subject, query.min_score, query.max_score, query.score_level)):
            stmt = stmt.where(
                self._score_exists(query.subject, query.min_score, query.max_score, query.score_level)
            )

        total, students = await self._paginate(stmt.order_by(Student.registration_number), query.page, query.limit)
        logger.debug(f"Student list page {query.page}: {len(students)} of {total}")
        return StudentSearchResponse(
            data=[self.to_response(student) for student in students],
            total=total,
            page=query.page,
            limit=query.limit,
            total_pages=_total_pages(total, query.limit),
        )

    async def get_performance(
        self, registration_number: str, page: int = 1, limit: int = 10
    ) -> StudentPerformanceResponse:
        """
        Page through one student's scores, best first.

        Raises:
            StudentNotFoundError: If no student has the registration number
        """
        student_id = (
            await self.session.execute(select(Student.id).where(Student.registration_number == registration_number))
        ).scalar_one_or_none()
        if student_id is None:
            raise StudentNotFoundError(f"Student with registration number {registration_number} not found")

        total = (
            await self.session.execute(
                select(func.count(SubjectScore.id)).where(SubjectScore.student_id == student_id)
            )
        ).scalar() or 0
        result = await self.session.execute(
            select(SubjectScore)
            .where(SubjectScore.student_id == student_id)
            .order_by(SubjectScore.score.desc(), SubjectScore.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )

        return StudentPerformanceResponse(
            registration_number=registration_number,
            data=[
                StudentPerformanceItem(
                    subject=score.subject,
                    subject_display_name=self.registry.display_name(score.subject),
                    score=score.score,
                    level=self.registry.thresholds.level_for(score.score),
                )
                for score in result.scalars().all()
            ],
            total=total,
            page=page,
            limit=limit,
            total_pages=_total_pages(total, limit),
        )

    async def get_top_by_combination(self, combination: str = "A", limit: int = 10) -> list[CombinationRankingItem]:
        """
        Rank students by their total score over a subject combination.

        Only students with a score in every subject of the combination are ranked.

        Raises:
            ValueError: If the combination is unknown
        """
        subjects = self.registry.combinations.get(combination.upper())
        if subjects is None:
            raise ValueError(f"Unknown combination: {combination}")

        total_score = func.sum(SubjectScore.score).label("total_score")
        ranking_stmt = (
            select(SubjectScore.student_id, total_score)
            .where(SubjectScore.subject.in_(subjects))
            .group_by(SubjectScore.student_id)
            .having(func.count(func.distinct(SubjectScore.subject)) == len(subjects))
            .order_by(total_score.desc(), SubjectScore.student_id)
            .limit(limit)
        )
        ranking = (await self.session.execute(ranking_stmt)).all()
        if not ranking:
            return []

        student_ids = [student_id for student_id, _ in ranking]
        result = await self.session.execute(
            select(Student).options(selectinload(Student.scores)).where(Student.id.in_(student_ids))
        )
        students = {student.id: student for student in result.scalars().all()}

        return [
            CombinationRankingItem(
                rank=position,
                total_score=round_half_away(total),
                student=self.to_response(students[student_id], subjects),
            )
            for position, (student_id, total) in enumerate(ranking, start=1)
        ]

    async def get_overview_statistics(self) -> OverviewStatistics:
        total_students = (await self.session.execute(select(func.count(Student.id)))).scalar() or 0
        total_scores = (await self.session.execute(select(func.count(SubjectScore.id)))).scalar() or 0
        average = (await self.session.execute(select(func.avg(SubjectScore.score)))).scalar()

        return OverviewStatistics(
            total_students=total_students,
            total_scores=total_scores,
            average_score=round_half_away(float(average)) if average is not None else 0.0,
            last_updated=datetime.now(timezone.utc),
        )

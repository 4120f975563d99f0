"""Row-level access to subject scores."""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from score_analytics.models import Student, SubjectScore
from score_analytics.services.filter_compiler import PredicateSet


@dataclass(frozen=True)
class ScoreRecord:
    subject: str
    value: float
    student_id: str  # registration number
    foreign_language_code: str | None = None


class ScoreDataSource(ABC):
    """Source of score rows consumed by the analytics engines."""

    name: str = "unknown"

    @abstractmethod
    async def fetch(self, predicates: PredicateSet) -> list[ScoreRecord]:
        """Rows matching the predicates, in insertion order."""

    @abstractmethod
    async def count(self, predicates: PredicateSet) -> int:
        """Number of rows matching the predicates."""

    async def fetch_all(self, subject: str) -> list[ScoreRecord]:
        """Every row of a subject, ignoring any report filter."""
        return await self.fetch(PredicateSet(subjects=(subject,)))

    @abstractmethod
    async def fetch_top_n(self, subject: str, n: int) -> list[tuple[str, float]]:
        """``(registration_number, score)`` pairs, best score first, ties in insertion order."""

    @abstractmethod
    async def count_students(self) -> int:
        pass

    @abstractmethod
    async def count_scores(self) -> int:
        pass

    @abstractmethod
    async def all_scores(self) -> list[float]:
        pass


class SqlScoreDataSource(ScoreDataSource):
    """ScoreDataSource backed by the ``students`` and ``subject_scores`` tables."""

    name = "postgresql"

    def __init__(self, session: AsyncSession):
        self.session = session

    @staticmethod
    def _apply_predicates(stmt, predicates: PredicateSet):
        """Apply subject, score range, language and level predicates to a query."""
        if predicates.subjects is not None:
            stmt = stmt.where(SubjectScore.subject.in_(predicates.subjects))
        if predicates.min_score is not None:
            stmt = stmt.where(SubjectScore.score >= predicates.min_score)
        if predicates.max_score is not None:
            stmt = stmt.where(SubjectScore.score <= predicates.max_score)
        if predicates.foreign_language_codes:
            stmt = stmt.where(Student.foreign_language_code.in_(predicates.foreign_language_codes))
        if predicates.level_ranges:
            conditions = []
            for score_range in predicates.level_ranges:
                bounds = []
                if score_range.low is not None:
                    bounds.append(SubjectScore.score >= score_range.low)
                if score_range.high is not None:
                    bounds.append(SubjectScore.score < score_range.high)
                conditions.append(and_(*bounds))
            stmt = stmt.where(or_(*conditions))
        return stmt

    async def fetch(self, predicates: PredicateSet) -> list[ScoreRecord]:
        stmt = (
            select(
                SubjectScore.subject,
                SubjectScore.score,
                Student.registration_number,
                Student.foreign_language_code,
            )
            .join(Student, SubjectScore.student_id == Student.id)
            .order_by(SubjectScore.id)
        )
        stmt = self._apply_predicates(stmt, predicates)
        result = await self.session.execute(stmt)
        return [
            ScoreRecord(
                subject=subject,
                value=score,
                student_id=registration_number,
                foreign_language_code=foreign_language_code,
            )
            for subject, score, registration_number, foreign_language_code in result.all()
        ]

    async def count(self, predicates: PredicateSet) -> int:
        stmt = select(func.count(SubjectScore.id)).join(Student, SubjectScore.student_id == Student.id)
        stmt = self._apply_predicates(stmt, predicates)
        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def fetch_top_n(self, subject: str, n: int) -> list[tuple[str, float]]:
        stmt = (
            select(Student.registration_number, SubjectScore.score)
            .join(Student, SubjectScore.student_id == Student.id)
            .where(SubjectScore.subject == subject)
            .order_by(SubjectScore.score.desc(), SubjectScore.id)
            .limit(n)
        )
        result = await self.session.execute(stmt)
        return [(registration_number, score) for registration_number, score in result.all()]

    async def count_students(self) -> int:
        result = await self.session.execute(select(func.count(Student.id)))
        return result.scalar() or 0

    async def count_scores(self) -> int:
        result = await self.session.execute(select(func.count(SubjectScore.id)))
        return result.scalar() or 0

    async def all_scores(self) -> list[float]:
        result = await self.session.execute(select(SubjectScore.score))
        return list(result.scalars().all())
